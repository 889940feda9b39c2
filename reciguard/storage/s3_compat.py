import io
import logging
import uuid
from dataclasses import dataclass

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import StorageError
from ..settings import settings
from .image_processing import (
    OUTPUT_CONTENT_TYPE,
    OUTPUT_EXTENSION,
    prepare_image,
)

logger = logging.getLogger("reciguard.storage")


@dataclass
class PutResult:
    key: str
    public_url: str


class S3CompatStore:
    """Image store backed by any S3-compatible bucket (S3, R2, MinIO)."""

    def __init__(
        self,
        endpoint_url: str,
        region_name: str,
        access_key_id: str,
        secret_access_key: str,
        bucket: str,
        public_base_url: str,
    ):
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        self.s3 = boto3.client(
            service_name="s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region_name,
        )

    def put_bytes(self, *, key: str, content_type: str, data: bytes) -> PutResult:
        try:
            self.s3.put_object(Bucket=self.bucket, Key=key, Body=io.BytesIO(data), ContentType=content_type)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Upload of {key} failed: {e}") from e
        return PutResult(key=key, public_url=f"{self.public_base_url}/{key}")

    def upload(self, data: bytes) -> str:
        """Store an uploaded image and return its public URL as the reference."""
        key = f"images/{uuid.uuid4()}.{OUTPUT_EXTENSION}"
        result = self.put_bytes(key=key, content_type=OUTPUT_CONTENT_TYPE, data=prepare_image(data))
        logger.info(f"Uploaded image {result.key} ({len(data)} bytes in)")
        return result.public_url

    def key_for(self, reference: str) -> str:
        prefix = f"{self.public_base_url}/"
        return reference[len(prefix):] if reference.startswith(prefix) else reference

    def delete(self, reference: str) -> None:
        # DeleteObject succeeds for missing keys, so this is idempotent
        key = self.key_for(reference)
        try:
            self.s3.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Delete of {key} failed: {e}") from e
        logger.info(f"Deleted image {key}")


def get_store() -> S3CompatStore:
    return S3CompatStore(
        endpoint_url=settings.object_store_endpoint,
        region_name=settings.object_store_region,
        access_key_id=settings.object_store_access_key_id,
        secret_access_key=settings.object_store_secret_access_key,
        bucket=settings.object_store_bucket,
        public_base_url=settings.object_public_base_url,
    )
