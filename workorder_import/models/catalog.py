from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

class CanonicalField(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    label: str
    required: bool = False
    numeric: bool = False
    # Lowercase header variants, tried in order by the auto-mapper
    synonyms: List[str] = Field(default_factory=list)

class FieldCatalog(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    fields: List[CanonicalField]

    def required_field_names(self) -> List[str]:
        return [f.name for f in self.fields if f.required]

    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def field_by_name(self, name: str) -> Optional[CanonicalField]:
        return next((f for f in self.fields if f.name == name), None)

# Order matters: the auto-mapper binds a header to the first field whose
# synonyms match, so more specific fields must come before broader ones.
WORK_ORDER_CATALOG = FieldCatalog(
    name="WorkOrder",
    version="1.0",
    fields=[
        CanonicalField(
            name="customerWoId",
            label="Work Order ID",
            required=True,
            synonyms=["wo id", "work order id", "workorderid", "customer_wo_id", "customerwoid", "wo_id", "woid"],
        ),
        CanonicalField(
            name="customerId",
            label="Customer ID",
            required=True,
            synonyms=["customer id", "customerid", "customer_id", "cust id", "custid", "cust_id", "account"],
        ),
        CanonicalField(
            name="customerName",
            label="Customer Name",
            required=True,
            synonyms=["customer name", "customername", "customer_name", "name", "cust name", "custname", "account name"],
        ),
        CanonicalField(
            name="address",
            label="Address",
            required=True,
            synonyms=["address", "street", "street address", "location", "service address"],
        ),
        CanonicalField(name="city", label="City", synonyms=["city", "town"]),
        CanonicalField(name="state", label="State", synonyms=["state", "province"]),
        CanonicalField(name="zip", label="ZIP", synonyms=["zip", "zipcode", "zip code", "postal", "postal code"]),
        CanonicalField(
            name="phone",
            label="Phone",
            synonyms=["phone", "telephone", "tel", "contact phone", "phone number"],
        ),
        CanonicalField(name="email", label="Email", synonyms=["email", "e-mail", "mail", "contact email"]),
        CanonicalField(name="route", label="Route", synonyms=["route", "route id", "route_id", "routeid"]),
        CanonicalField(
            name="zone",
            label="Zone",
            synonyms=["zone", "zone id", "zone_id", "zoneid", "area", "district"],
        ),
        CanonicalField(
            name="serviceType",
            label="Service Type",
            required=True,
            synonyms=["service type", "servicetype", "service_type", "type", "utility", "utility type", "meter type"],
        ),
        CanonicalField(
            name="oldMeterId",
            label="Old Meter ID",
            synonyms=["old meter", "old meter id", "oldmeterid", "old_meter_id", "current meter", "existing meter", "old_meter"],
        ),
        CanonicalField(
            name="oldMeterReading",
            label="Old Meter Reading",
            numeric=True,
            synonyms=["old meter reading", "old reading", "oldmeterreading", "old_meter_reading", "current reading", "existing reading"],
        ),
        CanonicalField(
            name="newMeterId",
            label="New Meter ID",
            synonyms=["new meter id", "newmeterid", "new_meter_id", "replacement meter id"],
        ),
        CanonicalField(
            name="newMeterReading",
            label="New Meter Reading",
            numeric=True,
            synonyms=["new meter reading", "new reading", "newmeterreading", "new_meter_reading", "replacement reading"],
        ),
        CanonicalField(
            name="oldGps",
            label="Old GPS",
            synonyms=["old gps", "old_gps", "oldgps", "current gps", "existing gps", "old coordinates"],
        ),
        CanonicalField(
            name="newGps",
            label="New GPS",
            synonyms=["new gps", "new_gps", "newgps", "new coordinates"],
        ),
        CanonicalField(
            name="oldMeterType",
            label="Old Meter Type",
            synonyms=["old meter type", "old_meter_type", "oldmetertype", "current meter type", "existing meter type"],
        ),
        CanonicalField(
            name="newMeterType",
            label="New Meter Type",
            synonyms=["new meter type", "new_meter_type", "newmetertype", "replacement meter type"],
        ),
        CanonicalField(name="status", label="Status", synonyms=["status", "condition", "wo status"]),
        CanonicalField(
            name="scheduledDate",
            label="Scheduled Date",
            synonyms=[
                "scheduled date", "scheduled_date", "scheduleddate", "schedule date", "schedule",
                "due date", "due_date", "scheduled datetime", "scheduled_datetime",
            ],
        ),
        CanonicalField(
            name="trouble",
            label="Trouble",
            synonyms=["trouble", "issue", "problem", "trouble code", "trouble_code"],
        ),
        CanonicalField(name="notes", label="Notes", synonyms=["notes", "comments", "remarks", "description"]),
        CanonicalField(
            name="assignedTo",
            label="Assigned To",
            synonyms=["assigned", "assignedto", "assigned to", "technician", "worker", "assignee", "tech"],
        ),
        CanonicalField(
            name="createdBy",
            label="Created By",
            synonyms=["created by", "created_by", "createdby", "creator", "created by user"],
        ),
        CanonicalField(
            name="completedAt",
            label="Completed At",
            synonyms=[
                "completed at", "completed_at", "completedat", "completion date",
                "completion_date", "completed date", "completed_date",
            ],
        ),
    ],
)

def get_catalog() -> FieldCatalog:
    return WORK_ORDER_CATALOG
