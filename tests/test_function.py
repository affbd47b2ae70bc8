import os
from unittest.mock import patch
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient
from app.function import create_function_app
from app.services import multipart_stream
from app.services.s3_service import S3Service
from conftest import PNG_BYTES, SIGNED_URL, make_token

FUNCTION_PATH = "/uploadProfilePicture"


def test_preflight_returns_cors_headers(function_client):
    response = function_client.options(
        FUNCTION_PATH,
        headers={"Origin": "http://localhost:5500", "Access-Control-Request-Method": "POST"}
    )

    assert response.status_code == 204
    assert response.headers["access-control-allow-origin"] == "*"
    assert response.headers["access-control-allow-methods"] == "POST"
    assert response.headers["access-control-allow-headers"] == "Authorization, Content-Type"
    assert response.headers["access-control-max-age"] == "3600"


def test_wrong_method(function_client):
    response = function_client.get(FUNCTION_PATH)

    assert response.status_code == 405
    assert response.json()["detail"] == "Method Not Allowed"
    assert response.headers["access-control-allow-origin"] == "*"


def test_missing_token_is_rejected_before_storage(function_client, s3_client):
    response = function_client.post(
        FUNCTION_PATH,
        files={"image": ("me.png", PNG_BYTES, "image/png")}
    )

    assert response.status_code == 403
    assert response.json()["detail"] == "Unauthorized: No ID token provided."
    s3_client.upload_file.assert_not_called()


def test_non_bearer_scheme_is_rejected(function_client, s3_client):
    response = function_client.post(
        FUNCTION_PATH,
        headers={"Authorization": f"Basic {make_token()}"},
        files={"image": ("me.png", PNG_BYTES, "image/png")}
    )

    assert response.status_code == 403
    s3_client.upload_file.assert_not_called()


def test_invalid_token_is_rejected(function_client, s3_client):
    token = make_token(secret="some-other-secret-that-is-also-long-enough")
    response = function_client.post(
        FUNCTION_PATH,
        headers={"Authorization": f"Bearer {token}"},
        files={"image": ("me.png", PNG_BYTES, "image/png")}
    )

    assert response.status_code == 403
    assert response.json()["detail"] == "Unauthorized: Invalid ID token."
    s3_client.upload_file.assert_not_called()


def test_expired_token_is_rejected(function_client, s3_client):
    token = make_token(expires_in=-60)
    response = function_client.post(
        FUNCTION_PATH,
        headers={"Authorization": f"Bearer {token}"},
        files={"image": ("me.png", PNG_BYTES, "image/png")}
    )

    assert response.status_code == 403
    s3_client.upload_file.assert_not_called()


def test_non_image_is_rejected(function_client, s3_client, auth_headers, test_settings):
    response = function_client.post(
        FUNCTION_PATH,
        headers=auth_headers,
        files={"image": ("notes.txt", b"hello", "text/plain")}
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid file type. Only images are allowed."
    s3_client.upload_file.assert_not_called()
    assert os.listdir(test_settings.tmp_dir) == []


def test_missing_image_field(function_client, s3_client, auth_headers):
    response = function_client.post(
        FUNCTION_PATH,
        headers=auth_headers,
        files={"profileImage": ("me.png", PNG_BYTES, "image/png")}
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "No image file provided."
    s3_client.upload_file.assert_not_called()


def test_upload_success(function_client, s3_client, auth_headers, test_settings):
    response = function_client.post(
        FUNCTION_PATH,
        headers=auth_headers,
        files={"image": ("me.png", PNG_BYTES, "image/png")}
    )

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["url"] == SIGNED_URL
    assert data["category"] == "profile"
    assert data["filename"].endswith(".jpg")

    s3_client.upload_file.assert_called_once()
    args, kwargs = s3_client.upload_file.call_args
    source_path, bucket, key = args
    assert bucket == "test-bucket"
    assert key == f"profile-images/test_user_123/{data['filename']}"
    assert kwargs["ExtraArgs"] == {
        "ContentType": "image/png",
        "CacheControl": "public, max-age=31536000",
        "Metadata": {"uploadedBy": "test_user_123"},
    }
    assert s3_client.uploaded[key] == PNG_BYTES

    s3_client.generate_presigned_url.assert_called_once_with(
        "get_object",
        Params={"Bucket": "test-bucket", "Key": key},
        ExpiresIn=604800
    )

    # The intermediate temp file is gone once the response is sent
    assert not os.path.exists(source_path)
    assert os.listdir(test_settings.tmp_dir) == []


def test_upload_uses_user_id_claim(function_client, s3_client):
    token = make_token(sub=None, user_id="firebase_uid")
    response = function_client.post(
        FUNCTION_PATH,
        headers={"Authorization": f"Bearer {token}"},
        files={"image": ("me.png", PNG_BYTES, "image/png")}
    )

    assert response.status_code == 200
    key = s3_client.upload_file.call_args[0][2]
    assert key.startswith("profile-images/firebase_uid/firebase_uid-")


def test_upload_as_document(function_client, s3_client, auth_headers):
    response = function_client.post(
        FUNCTION_PATH,
        headers=auth_headers,
        files={"image": ("scan.png", PNG_BYTES, "image/png")},
        data={"category": "document"}
    )

    assert response.status_code == 200
    assert response.json()["category"] == "document"
    key = s3_client.upload_file.call_args[0][2]
    assert key.startswith("application-docs/test_user_123/")


def test_two_uploads_store_distinct_objects(function_client, s3_client, auth_headers):
    for _ in range(2):
        response = function_client.post(
            FUNCTION_PATH,
            headers=auth_headers,
            files={"image": ("me.png", PNG_BYTES, "image/png")}
        )
        assert response.status_code == 200

    keys = [call[0][2] for call in s3_client.upload_file.call_args_list]
    assert len(keys) == 2
    assert keys[0] != keys[1]


def test_storage_failure(function_client, s3_client, auth_headers, test_settings):
    s3_client.upload_file.side_effect = ClientError(
        {"Error": {"Code": "500", "Message": "Internal Error"}},
        "PutObject"
    )

    response = function_client.post(
        FUNCTION_PATH,
        headers=auth_headers,
        files={"image": ("me.png", PNG_BYTES, "image/png")}
    )

    assert response.status_code == 500
    assert response.json()["detail"].startswith("Server error:")
    s3_client.generate_presigned_url.assert_not_called()
    assert os.listdir(test_settings.tmp_dir) == []


def test_default_settings_reject_tokens_signed_with_placeholder(test_settings, s3_client):
    """Without a configured key no token is accepted, whatever it was signed with."""
    test_settings.auth_jwt_secret = None
    app = create_function_app(test_settings, storage=S3Service(s3_client, bucket_name="test-bucket"))
    token = make_token(sub="attacker", secret="your-secret-key-here")

    with TestClient(app) as unconfigured_client:
        response = unconfigured_client.post(
            FUNCTION_PATH,
            headers={"Authorization": f"Bearer {token}"},
            files={"image": ("me.png", PNG_BYTES, "image/png")}
        )

    assert response.status_code == 403
    assert response.json()["detail"] == "Unauthorized: Invalid ID token."
    s3_client.upload_file.assert_not_called()


def test_non_image_part_is_dropped_while_streaming(function_client, s3_client, auth_headers, test_settings):
    with patch.object(multipart_stream.tempfile, "mkstemp", wraps=multipart_stream.tempfile.mkstemp) as mkstemp:
        response = function_client.post(
            FUNCTION_PATH,
            headers=auth_headers,
            files={"image": ("big.txt", b"x" * (3 * 1024 * 1024), "text/plain")}
        )

    assert response.status_code == 400
    mkstemp.assert_not_called()
    s3_client.upload_file.assert_not_called()
    assert os.listdir(test_settings.tmp_dir) == []


def test_document_marker_in_uid_does_not_change_folder(function_client, s3_client):
    token = make_token(sub="user-doc-42")
    response = function_client.post(
        FUNCTION_PATH,
        headers={"Authorization": f"Bearer {token}"},
        files={"image": ("me.png", PNG_BYTES, "image/png")}
    )

    assert response.status_code == 200
    assert response.json()["category"] == "profile"
    key = s3_client.upload_file.call_args[0][2]
    assert key.startswith("profile-images/user-doc-42/")
