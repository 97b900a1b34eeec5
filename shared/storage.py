import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Union
from urllib.parse import parse_qs, unquote, urlsplit

from shared.backends import (
    Boto3ObjectStore,
    Boto3UrlSigner,
    ObjectStore,
    StorageConfig,
    UrlSigner,
    create_s3_client,
)
from shared.schemas import SignedUrlRequest, UploadRequest


logger = logging.getLogger(__name__)

AMZ_DATE_PARAM = "X-Amz-Date"
AMZ_EXPIRES_PARAM = "X-Amz-Expires"
AMZ_DATE_FORMAT = "%Y%m%dT%H%M%SZ"


class InvalidStorageInput(ValueError):
    pass


@dataclass(frozen=True)
class ParsedUrl:
    path: str
    query: str


@dataclass(frozen=True)
class RawKey:
    key: str


def get_s3_key(base_path: str, user_id: str, file_name: str) -> str:
    return f"{base_path}/{user_id}/{file_name}"


def parse_storage_location(value: str) -> Union[ParsedUrl, RawKey]:
    """Classify ``value`` as a full URL or an already-resolved object key.

    Only inputs carrying both a scheme and a host count as URLs; anything
    else (including relative paths such as ``images/u1/a.png``) is a key.
    """
    try:
        parts = urlsplit(value)
    except ValueError:
        return RawKey(key=value)
    if not parts.scheme or not parts.netloc:
        return RawKey(key=value)
    return ParsedUrl(path=parts.path, query=parts.query)


def extract_key_from_s3_url(url_or_key: str) -> str:
    if not url_or_key:
        raise InvalidStorageInput("Invalid input: URL or key is empty")
    location = parse_storage_location(url_or_key)
    if isinstance(location, RawKey):
        return location.key
    return unquote(location.path.lstrip("/"))


def signed_url_expires_at(url: str) -> Optional[datetime]:
    """Return when a signed URL stops being valid, or None if that is unknown."""
    try:
        query = urlsplit(url).query
    except ValueError:
        logger.debug("unparseable signed url: %s", url)
        return None
    params = parse_qs(query)
    issued_raw = params.get(AMZ_DATE_PARAM)
    expires_raw = params.get(AMZ_EXPIRES_PARAM)
    if not issued_raw or not expires_raw:
        return None
    try:
        issued_at = datetime.strptime(issued_raw[0], AMZ_DATE_FORMAT).replace(tzinfo=timezone.utc)
        return issued_at + timedelta(seconds=int(expires_raw[0]))
    except (ValueError, OverflowError):
        logger.debug("malformed signed url metadata: date=%s expires=%s", issued_raw[0], expires_raw[0])
        return None


def needs_refresh(url: str, threshold_seconds: int, now: Optional[datetime] = None) -> bool:
    expires_at = signed_url_expires_at(url)
    if expires_at is None:
        return True
    current = now or datetime.now(timezone.utc)
    try:
        refresh_at = expires_at - timedelta(seconds=threshold_seconds)
    except OverflowError:
        return True
    return current >= refresh_at


class S3Storage:
    def __init__(
        self,
        config: StorageConfig,
        store: Optional[ObjectStore] = None,
        signer: Optional[UrlSigner] = None,
    ) -> None:
        self.config = config
        if store is None or signer is None:
            client = create_s3_client(config)
            store = store or Boto3ObjectStore(client)
            signer = signer or Boto3UrlSigner(client)
        self.store = store
        self.signer = signer

    @property
    def bucket(self) -> str:
        return self.config.bucket

    def sign(self, key: str, expires_seconds: Optional[int] = None) -> str:
        if expires_seconds is None:
            expires_seconds = self.config.signed_url_expires_seconds
        return self.signer.sign(self.bucket, key, expires_seconds)

    def save_buffer(self, request: UploadRequest) -> str:
        key = get_s3_key(request.base_path, request.user_id, request.file_name)
        self.store.put(self.bucket, key, request.buffer, content_type=request.content_type)
        logger.info("stored object", extra={"bucket": self.bucket, "key": key})
        return self.sign(key)

    def get_url(self, request: SignedUrlRequest) -> str:
        key = get_s3_key(request.base_path, request.user_id, request.file_name)
        return self.sign(key)

    def get_object(self, key: str) -> bytes:
        return self.store.get(self.bucket, key)

    def refresh_url(self, url_or_key: str, threshold_seconds: int) -> str:
        if not needs_refresh(url_or_key, threshold_seconds):
            return url_or_key
        key = extract_key_from_s3_url(url_or_key)
        logger.info("re-signing object url", extra={"bucket": self.bucket, "key": key})
        return self.sign(key)


_storage: S3Storage | None = None


def get_storage() -> S3Storage:
    global _storage
    if _storage is None:
        _storage = S3Storage(StorageConfig.from_settings())
    return _storage


def reset_storage() -> None:
    global _storage
    _storage = None


def save_buffer_to_s3(request: UploadRequest, storage: S3Storage | None = None) -> str:
    return (storage or get_storage()).save_buffer(request)


def get_s3_url(request: SignedUrlRequest, storage: S3Storage | None = None) -> str:
    return (storage or get_storage()).get_url(request)


def get_s3_object(key: str, storage: S3Storage | None = None) -> bytes:
    return (storage or get_storage()).get_object(key)


def refresh_signed_url(url_or_key: str, threshold_seconds: int, storage: S3Storage | None = None) -> str:
    return (storage or get_storage()).refresh_url(url_or_key, threshold_seconds)
