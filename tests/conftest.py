from typing import Dict, List, Optional, Tuple

import pytest

from shared.backends import StorageConfig
from shared.config import get_settings
from shared.storage import S3Storage, reset_storage


class FakeObjectStore:
    def __init__(self) -> None:
        self.objects: Dict[Tuple[str, str], bytes] = {}
        self.puts: List[dict] = []
        self.error: Optional[Exception] = None

    def put(self, bucket: str, key: str, body: bytes, content_type: Optional[str] = None) -> None:
        if self.error is not None:
            raise self.error
        self.puts.append({"bucket": bucket, "key": key, "body": body, "content_type": content_type})
        self.objects[(bucket, key)] = body

    def get(self, bucket: str, key: str) -> bytes:
        return self.objects[(bucket, key)]


class FakeUrlSigner:
    def __init__(self) -> None:
        self.calls: List[Tuple[str, str, int]] = []

    def sign(self, bucket: str, key: str, expires_seconds: int) -> str:
        self.calls.append((bucket, key, expires_seconds))
        return f"https://{bucket}.s3.amazonaws.com/{key}?signed=true"


@pytest.fixture(autouse=True)
def _reset_storage_state(monkeypatch):
    monkeypatch.delenv("AWS_PROFILE", raising=False)
    get_settings.cache_clear()
    reset_storage()
    yield
    get_settings.cache_clear()
    reset_storage()


@pytest.fixture
def fake_store():
    return FakeObjectStore()


@pytest.fixture
def fake_signer():
    return FakeUrlSigner()


@pytest.fixture
def storage(fake_store, fake_signer):
    config = StorageConfig(bucket="test-bucket", region="us-east-1", signed_url_expires_seconds=900)
    return S3Storage(config, store=fake_store, signer=fake_signer)
