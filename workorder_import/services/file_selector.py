import logging
from typing import Optional

from workorder_import.core.protocols import DirectoryListingProvider
from workorder_import.models.schedule import FileRef
from workorder_import.services.glob_matcher import compile_pattern

logger = logging.getLogger(__name__)

class FileSelector:
    """
    Chooses the file a scheduled run should import: the newest file in the
    project's drop location that matches the schedule's pattern and is newer
    than the one already processed.
    """

    def __init__(self, provider: DirectoryListingProvider):
        self.provider = provider

    def select(self, schedule) -> Optional[FileRef]:
        matches = compile_pattern(schedule.processed_file_pattern)
        candidates = [f for f in self.provider.list(schedule.project_id) if matches(f.name)]

        processed = schedule.last_processed_file
        if processed:
            marker = next((f for f in candidates if f.name == processed), None)
            candidates = [f for f in candidates if f.name != processed]
            # Never move the marker back to an older file
            if marker is not None:
                candidates = [f for f in candidates if f.mtime > marker.mtime]

        if not candidates:
            logger.info(f"Schedule {schedule.id}: no new file to process")
            return None

        # Newest first; name breaks ties so the choice is stable
        chosen = max(candidates, key=lambda f: (f.mtime, f.name))
        logger.info(f"Schedule {schedule.id}: selected '{chosen.name}'")
        return chosen
