"""S3-compatible storage for rendered pins."""

import logging

import boto3

from ..utils import short_uuid

logger = logging.getLogger(__name__)


def normalize_endpoint(endpoint: str) -> str:
    """Accept endpoints with or without a scheme."""
    if endpoint.startswith(("http://", "https://")):
        return endpoint.rstrip("/")
    return f"https://{endpoint.rstrip('/')}"


class PinStorage:
    """Uploads pin JPEGs and returns their public URLs."""

    def __init__(
        self,
        bucket: str,
        endpoint: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        public_base_url: str | None = None,
        s3_client=None,
    ):
        self.bucket = bucket
        self.endpoint = normalize_endpoint(endpoint) if endpoint else None
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self.s3 = s3_client or boto3.client(
            "s3",
            endpoint_url=self.endpoint,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name="auto" if self.endpoint else None,
        )

    @staticmethod
    def pin_key(campaign_id: str, pin_index: int) -> str:
        return f"campaigns/{campaign_id}/pin-{pin_index}-{short_uuid()}.jpg"

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        if self.endpoint:
            return f"{self.endpoint}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.amazonaws.com/{key}"

    def upload_pin(self, campaign_id: str, pin_index: int, data: bytes) -> str:
        """
        Upload one rendered pin.

        Args:
            campaign_id: Owning campaign
            pin_index: Row index of the pin
            data: JPEG bytes

        Returns:
            Public URL of the uploaded object
        """
        key = self.pin_key(campaign_id, pin_index)
        self.s3.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType="image/jpeg",
            ACL="public-read",
        )
        logger.debug(f"Uploaded {key} ({len(data)} bytes)")
        return self.public_url(key)
