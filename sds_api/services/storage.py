from __future__ import annotations

import io
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, BinaryIO, Optional

from azure.core.exceptions import AzureError, ResourceExistsError
from azure.storage.blob import BlobSasPermissions, BlobServiceClient, ContentSettings, generate_blob_sas

from ..config import AzureSettings, settings

logger = logging.getLogger(__name__)

DOWNLOAD_URL_TTL = timedelta(minutes=60)


class StorageError(RuntimeError):
    pass


@dataclass
class StoredFile:
    blob_path: str
    stored: bool


class StorageService:
    """Azure Blob Storage for document payloads.

    Without a connection string the service runs in dev mode: uploads only
    produce a synthetic path and signed URLs are placeholders.
    """

    def __init__(self, config: Optional[AzureSettings] = None, client: Any = None) -> None:
        self.config = config or settings.azure
        self.container = self.config.storage_container
        self._client = client

    def is_configured(self) -> bool:
        return bool(self.config.storage_connection_string) or self._client is not None

    @property
    def client(self) -> BlobServiceClient:
        if self._client is None:
            if not self.config.storage_connection_string:
                raise StorageError("AZURE_STORAGE_CONNECTION_STRING not configured")
            self._client = BlobServiceClient.from_connection_string(self.config.storage_connection_string)
        return self._client

    def _build_path(self, company_code: str, filename: str) -> str:
        return f"{company_code}/{uuid.uuid4()}-{filename}"

    def upload_fileobj(
        self,
        company_code: str,
        file_obj: BinaryIO | bytes,
        filename: str,
        content_type: str,
    ) -> StoredFile:
        if not self.is_configured():
            return StoredFile(blob_path=f"{company_code}/dev-{int(time.time() * 1000)}-{filename}", stored=False)

        buffer: BinaryIO
        if isinstance(file_obj, (bytes, bytearray)):
            buffer = io.BytesIO(file_obj)
        else:
            buffer = file_obj
            buffer.seek(0)

        blob_path = self._build_path(company_code, filename)
        try:
            container = self.client.get_container_client(self.container)
            try:
                container.create_container()
            except ResourceExistsError:
                pass
            container.upload_blob(
                name=blob_path,
                data=buffer,
                overwrite=True,
                content_settings=ContentSettings(content_type=content_type),
            )
        except AzureError as exc:
            raise StorageError(f"Failed to upload to blob storage: {exc}") from exc

        logger.info("blob_uploaded container=%s path=%s", self.container, blob_path)
        return StoredFile(blob_path=blob_path, stored=True)

    def generate_signed_url(self, blob_path: str, ttl: timedelta = DOWNLOAD_URL_TTL) -> str:
        """Read-only SAS URL for a blob; it expires but cannot be revoked early."""
        if not self.is_configured():
            return f"#dev-placeholder-{blob_path}"

        try:
            blob = self.client.get_blob_client(container=self.container, blob=blob_path)
            sas = generate_blob_sas(
                account_name=blob.account_name,
                container_name=self.container,
                blob_name=blob_path,
                account_key=self.client.credential.account_key,
                permission=BlobSasPermissions(read=True),
                expiry=datetime.now(timezone.utc) + ttl,
            )
        except (AzureError, AttributeError) as exc:
            raise StorageError(f"Failed to generate signed URL: {exc}") from exc
        return f"{blob.url}?{sas}"

    def generate_share_url(self, blob_path: str, expires_in_days: int) -> str:
        return self.generate_signed_url(blob_path, timedelta(days=expires_in_days))


def get_storage_service() -> StorageService:
    return StorageService()
