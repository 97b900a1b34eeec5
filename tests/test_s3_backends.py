import io
from urllib.parse import parse_qs, urlsplit

import pytest
from botocore.response import StreamingBody
from botocore.stub import Stubber

from shared.backends import Boto3ObjectStore, Boto3UrlSigner, StorageConfig, create_s3_client
from shared.schemas import UploadRequest
from shared.storage import S3Storage, extract_key_from_s3_url, needs_refresh


@pytest.fixture
def s3_config():
    return StorageConfig(
        bucket="test-bucket",
        region="us-east-1",
        access_key_id="testing",
        secret_access_key="testing",
        signed_url_expires_seconds=3600,
    )


@pytest.fixture
def s3_client(s3_config, monkeypatch):
    monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)
    monkeypatch.delenv("AWS_ENDPOINT_URL_S3", raising=False)
    return create_s3_client(s3_config)


def test_put_object_parameters(s3_client):
    store = Boto3ObjectStore(s3_client)
    with Stubber(s3_client) as stubber:
        stubber.add_response(
            "put_object",
            {},
            {"Bucket": "test-bucket", "Key": "documents/user123/document.pdf", "Body": b"test content"},
        )
        store.put("test-bucket", "documents/user123/document.pdf", b"test content")
        stubber.assert_no_pending_responses()


def test_put_object_with_content_type(s3_client):
    store = Boto3ObjectStore(s3_client)
    with Stubber(s3_client) as stubber:
        stubber.add_response(
            "put_object",
            {},
            {"Bucket": "test-bucket", "Key": "images/u1/a.png", "Body": b"png", "ContentType": "image/png"},
        )
        store.put("test-bucket", "images/u1/a.png", b"png", content_type="image/png")
        stubber.assert_no_pending_responses()


def test_get_object_reads_body(s3_client):
    store = Boto3ObjectStore(s3_client)
    payload = b"test content"
    with Stubber(s3_client) as stubber:
        stubber.add_response(
            "get_object",
            {"Body": StreamingBody(io.BytesIO(payload), len(payload))},
            {"Bucket": "test-bucket", "Key": "files/u1/a.txt"},
        )
        assert store.get("test-bucket", "files/u1/a.txt") == payload


def test_get_object_error_propagates(s3_client):
    store = Boto3ObjectStore(s3_client)
    with Stubber(s3_client) as stubber:
        stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)
        with pytest.raises(s3_client.exceptions.NoSuchKey):
            store.get("test-bucket", "files/u1/missing.txt")


def test_presigned_url_carries_expiry_metadata(s3_client):
    url = Boto3UrlSigner(s3_client).sign("test-bucket", "files/u1/a.txt", 900)
    params = parse_qs(urlsplit(url).query)
    assert params["X-Amz-Expires"] == ["900"]
    assert len(params["X-Amz-Date"][0]) == len("20240101T000000Z")
    assert "X-Amz-Signature" in params
    assert extract_key_from_s3_url(url) == "files/u1/a.txt"
    assert needs_refresh(url, 60) is False
    assert needs_refresh(url, 900) is True


def test_storage_upload_with_boto3_backends(s3_config, s3_client):
    storage = S3Storage(s3_config, store=Boto3ObjectStore(s3_client), signer=Boto3UrlSigner(s3_client))
    with Stubber(s3_client) as stubber:
        stubber.add_response(
            "put_object",
            {},
            {"Bucket": "test-bucket", "Key": "files/user123/test.txt", "Body": b"test"},
        )
        url = storage.save_buffer(
            UploadRequest(user_id="user123", buffer=b"test", file_name="test.txt", base_path="files")
        )
        stubber.assert_no_pending_responses()
    assert "X-Amz-Signature=" in url
    assert extract_key_from_s3_url(url) == "files/user123/test.txt"
