import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from workorder_import.api.routes import router
from workorder_import.core.config import settings
from workorder_import.core.logging_config import configure_logging
from workorder_import.db.database import init_db
from workorder_import.services.import_executor import get_executor
from workorder_import.services.scheduler import Scheduler

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    init_db()

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = Scheduler(get_executor())
        scheduler.start()
    else:
        logger.info("Scheduler disabled, only manual and ad-hoc imports will run")
    app.state.scheduler = scheduler

    yield

    if scheduler is not None:
        scheduler.stop()

# Initialize the FastAPI application
app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG, lifespan=lifespan)

# in dev we allow ALL origins.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api")
