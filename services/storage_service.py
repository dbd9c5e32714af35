"""
Object storage for uploaded spreadsheets.

Files live in a Supabase Storage bucket under
import-files/client_<id>/session_<id>/<timestamp><ext>.
Every call is attempted once; failures surface as StorageError.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
import structlog

from config import get_storage_client, settings
from exceptions import StorageError

logger = structlog.get_logger(__name__)

CONTENT_TYPES = {
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".xlsm": "application/vnd.ms-excel.sheet.macroEnabled.12",
    ".csv": "text/csv",
}


class StorageService:
    """Upload, download and delete import files."""

    def __init__(self):
        self.client = get_storage_client()
        self.bucket = settings.storage_bucket

    @staticmethod
    def build_key(
        client_id: str,
        session_id: str,
        file_name: str,
        now: Optional[datetime] = None
    ) -> str:
        """Storage key for a session's uploaded file."""
        now = now or datetime.now(timezone.utc)
        extension = Path(file_name or "").suffix.lower()
        timestamp = int(now.timestamp() * 1000)
        return f"import-files/client_{client_id}/session_{session_id}/{timestamp}{extension}"

    @staticmethod
    def build_sample_key(template_id: str, file_name: str, now: Optional[datetime] = None) -> str:
        """Storage key for a template's sample file."""
        now = now or datetime.now(timezone.utc)
        extension = Path(file_name or "").suffix.lower()
        return f"template-samples/template_{template_id}/{int(now.timestamp() * 1000)}{extension}"

    def upload(self, key: str, content: bytes) -> str:
        """
        Store bytes under key.

        Raises:
            StorageError: If the upload fails
        """
        content_type = CONTENT_TYPES.get(Path(key).suffix.lower(), "application/octet-stream")
        logger.info("storage_uploading", key=key, size=len(content))

        try:
            self.client.storage.from_(self.bucket).upload(
                key,
                content,
                file_options={"content-type": content_type, "upsert": "true"},
            )
        except Exception as e:
            logger.error("storage_upload_failed", key=key, error=str(e))
            raise StorageError("upload", str(e), details={"key": key}) from e

        logger.info("storage_uploaded", key=key)
        return key

    def download(self, key: str) -> bytes:
        """
        Fetch bytes stored under key.

        Raises:
            StorageError: If the download fails
        """
        logger.info("storage_downloading", key=key)

        try:
            content = self.client.storage.from_(self.bucket).download(key)
        except Exception as e:
            logger.error("storage_download_failed", key=key, error=str(e))
            raise StorageError("download", str(e), details={"key": key}) from e

        if not content:
            raise StorageError("download", "stored file is empty", details={"key": key})
        return content

    def delete(self, key: str) -> None:
        """
        Remove an object.

        Raises:
            StorageError: If the delete fails
        """
        try:
            self.client.storage.from_(self.bucket).remove([key])
        except Exception as e:
            logger.error("storage_delete_failed", key=key, error=str(e))
            raise StorageError("delete", str(e), details={"key": key}) from e

        logger.info("storage_deleted", key=key)


# Singleton instance
_storage_service: Optional[StorageService] = None


def get_storage_service() -> StorageService:
    """Get or create storage service instance."""
    global _storage_service
    if _storage_service is None:
        _storage_service = StorageService()
    return _storage_service
