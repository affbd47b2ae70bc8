import pytest
import jwt
from datetime import datetime, timedelta, timezone
from fastapi.testclient import TestClient
from unittest.mock import MagicMock
from app.config import Settings
from app.main import create_app
from app.function import create_function_app
from app.middleware.auth import TokenVerifier
from app.services.s3_service import S3Service

TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256"
SIGNED_URL = "https://test-bucket.s3.amazonaws.com/signed?X-Amz-Signature=abc"

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + (b"\x00" * 128)


def make_token(sub="test_user_123", secret=TEST_SECRET, expires_in=3600, **claims):
    payload = {"exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in), **claims}
    if sub is not None:
        payload["sub"] = sub
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def test_settings(tmp_path):
    tmp_dir = tmp_path / "tmp"
    tmp_dir.mkdir()
    return Settings(
        _env_file=None,
        uploads_dir=str(tmp_path / "uploads"),
        tmp_dir=str(tmp_dir),
        public_base_url="http://testserver",
        auth_jwt_secret=TEST_SECRET,
        auth_algorithms=["HS256"],
        storage_backend="s3",
        s3_bucket_name="test-bucket",
    )


@pytest.fixture
def client(test_settings):
    with TestClient(create_app(test_settings)) as test_client:
        yield test_client


@pytest.fixture
def s3_client():
    """Mock boto3 client that remembers the bytes of every uploaded object."""
    mock_client = MagicMock()
    mock_client.uploaded = {}

    def fake_upload_file(filename, bucket, key, ExtraArgs=None):
        with open(filename, "rb") as f:
            mock_client.uploaded[key] = f.read()

    mock_client.upload_file.side_effect = fake_upload_file
    mock_client.generate_presigned_url.return_value = SIGNED_URL
    return mock_client


@pytest.fixture
def function_client(test_settings, s3_client):
    storage = S3Service(s3_client, bucket_name="test-bucket")
    verifier = TokenVerifier(secret=TEST_SECRET, algorithms=["HS256"])
    app = create_function_app(test_settings, storage=storage, token_verifier=verifier)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token()}"}


def multipart_body(parts, boundary="test-boundary-7MA4YWxkTrZu0gW"):
    """
    Encode (name, filename, content_type, data) parts as multipart/form-data.
    Text fields use a filename of None.
    """
    body = b""
    for name, filename, content_type, data in parts:
        disposition = f'form-data; name="{name}"'
        if filename is not None:
            disposition += f'; filename="{filename}"'
        body += f"--{boundary}\r\nContent-Disposition: {disposition}\r\n".encode()
        if content_type is not None:
            body += f"Content-Type: {content_type}\r\n".encode()
        body += b"\r\n" + data + b"\r\n"
    body += f"--{boundary}--\r\n".encode()
    return f"multipart/form-data; boundary={boundary}", body


async def chunked(body, size=1000):
    for start in range(0, len(body), size):
        yield body[start:start + size]
