"""
Object-store and URL-signer backends.

The storage helpers only need three calls from a backend: ``put``, ``get``
and ``sign``. The boto3 implementations below cover AWS S3 and S3-compatible
providers (pass ``endpoint_url`` for the latter); tests substitute in-memory
fakes implementing the same protocols.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import boto3
from botocore.config import Config

from shared.config import Settings, get_settings


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageConfig:
    bucket: str
    region: str = "us-east-1"
    endpoint_url: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    signed_url_expires_seconds: int = 3600

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "StorageConfig":
        settings = settings or get_settings()
        if not settings.aws_bucket_name.strip():
            raise RuntimeError("AWS_BUCKET_NAME is not configured")
        return cls(
            bucket=settings.aws_bucket_name,
            region=settings.aws_region,
            endpoint_url=settings.aws_endpoint_url or None,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
            signed_url_expires_seconds=settings.signed_url_expires_seconds,
        )


class ObjectStore(Protocol):
    def put(self, bucket: str, key: str, body: bytes, content_type: Optional[str] = None) -> None:
        ...

    def get(self, bucket: str, key: str) -> bytes:
        ...


class UrlSigner(Protocol):
    def sign(self, bucket: str, key: str, expires_seconds: int) -> str:
        ...


def create_s3_client(config: StorageConfig):
    session_kwargs: Dict[str, Any] = {}
    if config.access_key_id and config.secret_access_key:
        session_kwargs["aws_access_key_id"] = config.access_key_id
        session_kwargs["aws_secret_access_key"] = config.secret_access_key
    logger.debug("creating s3 client", extra={"bucket": config.bucket})
    # SigV4 puts X-Amz-Date / X-Amz-Expires on presigned URLs
    return boto3.client(
        "s3",
        region_name=config.region,
        endpoint_url=config.endpoint_url,
        config=Config(signature_version="s3v4"),
        **session_kwargs,
    )


class Boto3ObjectStore:
    def __init__(self, client) -> None:
        self.client = client

    def put(self, bucket: str, key: str, body: bytes, content_type: Optional[str] = None) -> None:
        params: Dict[str, Any] = {"Bucket": bucket, "Key": key, "Body": body}
        if content_type:
            params["ContentType"] = content_type
        self.client.put_object(**params)

    def get(self, bucket: str, key: str) -> bytes:
        response = self.client.get_object(Bucket=bucket, Key=key)
        body = response["Body"]
        try:
            return body.read()
        finally:
            body.close()


class Boto3UrlSigner:
    def __init__(self, client) -> None:
        self.client = client

    def sign(self, bucket: str, key: str, expires_seconds: int) -> str:
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": bucket, "Key": key},
            ExpiresIn=expires_seconds,
        )
