from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

from flask import current_app, url_for
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)

MAX_FILENAME_LENGTH = 100


class LocalDocumentStore:
    """Document store on the local filesystem.

    References are posix paths relative to the storage root, e.g.
    ``burial-permits/3/death_certificate_1718000000000_form.pdf``. The first
    two segments are always the folder and the uploading user id.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    @classmethod
    def from_app(cls) -> "LocalDocumentStore":
        configured = Path(current_app.config.get("DOCUMENT_STORAGE_DIR") or "storage")
        if not configured.is_absolute():
            configured = Path(current_app.instance_path) / configured
        return cls(configured)

    def store(self, file_obj: FileStorage, folder: str, user_id: int, label: str) -> str:
        if not file_obj or not file_obj.filename:
            raise ValueError(f"Document {label} is required")
        timestamp = int(datetime.now(timezone.utc).timestamp() * 1000)
        # Tail keeps the extension; references must fit the 255-char proof column.
        filename = (secure_filename(file_obj.filename) or "document.bin")[-MAX_FILENAME_LENGTH:]
        reference = PurePosixPath(folder, str(user_id), f"{label}_{timestamp}_{filename}").as_posix()
        absolute = self.root / reference
        absolute.parent.mkdir(parents=True, exist_ok=True)
        file_obj.save(absolute)
        logger.info("Stored document %s", reference)
        return reference

    def path_for(self, reference: str) -> Path:
        absolute = (self.root / reference).resolve()
        if self.root.resolve() not in absolute.parents:
            raise ValueError("Invalid document reference")
        if not absolute.exists():
            raise ValueError("Document file not found")
        return absolute

    def discard(self, reference: str) -> None:
        try:
            path = self.path_for(reference)
        except ValueError:
            return
        path.unlink(missing_ok=True)
        logger.info("Discarded document %s", reference)

    def resolve(self, reference: str) -> str:
        return url_for("cemetery.view_document", reference=reference)

    @staticmethod
    def uploader_of(reference: str) -> int | None:
        parts = PurePosixPath(reference).parts
        if len(parts) < 2 or not parts[1].isdigit():
            return None
        return int(parts[1])
