"""
Attachment blob store — local directory backend.

The workflow only keeps the metadata returned by ``put``; bytes live on disk
under ``UPLOAD_DIR`` with a collision-free, sanitised name.
"""

import logging
import mimetypes
import os
import uuid
from datetime import datetime, timezone

from flask import current_app
from werkzeug.utils import secure_filename

from suggestion_hub.core.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class AttachmentStore:
    """put(file) → metadata, get(metadata) → bytes, delete(metadata)."""

    def __init__(self, upload_dir):
        self.upload_dir = os.path.abspath(upload_dir)

    def _resolve(self, stored_name):
        path = os.path.abspath(os.path.join(self.upload_dir, stored_name))
        if os.path.dirname(path) != self.upload_dir:
            raise NotFoundError(resource="Attachment", resource_id=stored_name)
        return path

    def put(self, file):
        """Persist a werkzeug ``FileStorage`` and return its metadata."""
        original = file.filename or ""
        if not original:
            raise ValidationError("Uploaded file has no name")
        safe = secure_filename(original) or "upload"
        attachment_id = uuid.uuid4().hex
        stored_name = f"{attachment_id}_{safe}"

        os.makedirs(self.upload_dir, exist_ok=True)
        path = self._resolve(stored_name)
        file.save(path)
        size = os.path.getsize(path)
        mimetype = file.mimetype or mimetypes.guess_type(original)[0] or "application/octet-stream"

        logger.info("Attachment stored: %s (%d bytes)", stored_name, size)
        return {
            "id": attachment_id,
            "filename": stored_name,
            "originalname": original,
            "path": stored_name,
            "mimetype": mimetype,
            "size": size,
            "uploadedAt": datetime.now(timezone.utc).isoformat(),
        }

    def get(self, metadata):
        path = self._resolve(metadata.get("path") or metadata.get("filename") or "")
        if not os.path.isfile(path):
            raise NotFoundError(resource="Attachment", resource_id=metadata.get("id"))
        with open(path, "rb") as fh:
            return fh.read()

    def delete(self, metadata):
        """Remove the blob; a missing file is not an error."""
        path = self._resolve(metadata.get("path") or metadata.get("filename") or "")
        try:
            os.remove(path)
        except FileNotFoundError:
            logger.info("Attachment blob already gone: %s", path)


def get_attachment_store():
    return current_app.extensions["attachment_store"]
