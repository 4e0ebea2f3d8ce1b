import logging
import os
from datetime import datetime, timezone
from typing import List, Optional

from workorder_import.core.config import settings
from workorder_import.models.schedule import FileRef

logger = logging.getLogger(__name__)

class LocalDropLocation:
    """
    Drop locations on the local filesystem: one directory per project under
    DROP_DIR, e.g. drop/42/meter_jan.csv.
    """

    def __init__(self, root: Optional[str] = None):
        self.root = root or settings.DROP_DIR

    def project_dir(self, project_id: int) -> str:
        return os.path.join(self.root, str(project_id))

    def list(self, project_id: int) -> List[FileRef]:
        directory = self.project_dir(project_id)
        if not os.path.isdir(directory):
            return []

        files: List[FileRef] = []
        with os.scandir(directory) as entries:
            for entry in entries:
                if not entry.is_file():
                    continue
                stat = entry.stat()
                files.append(FileRef(
                    name=entry.name,
                    mtime=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).replace(tzinfo=None),
                    size=stat.st_size,
                ))
        return files

    def read(self, project_id: int, name: str) -> bytes:
        # Names come from list(); refuse anything that escapes the project dir
        if os.path.basename(name) != name:
            raise FileNotFoundError(f"Invalid file name {name!r}")
        path = os.path.join(self.project_dir(project_id), name)
        if not os.path.exists(path):
            raise FileNotFoundError(f"No file named {name} in drop location of project {project_id}")
        with open(path, "rb") as f:
            return f.read()
