import base64
from unittest.mock import MagicMock

import pytest
import requests

from artifact_archive.config import ApiConfig
from artifact_archive.errors import UploadError
from artifact_archive.uploader import ArtifactUploader, CIContext, exponential_backoff_with_jitter

TOKEN = "s3cr3t-token"


def _response(status_code, body=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body if body is not None else {}
    return response


@pytest.fixture
def archive_file(tmp_path):
    path = tmp_path / "bbOut_2024.lzma"
    path.write_bytes(b"\xfd7zXZ\x00payload")
    return path


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def uploader(session, sleeps):
    return ArtifactUploader(TOKEN, base_url="https://api.example.test/", max_retries=2,
                            session=session, sleep=sleeps.append)


@pytest.fixture
def context():
    return CIContext(repository_owner="acme", repository_name="token", run_id="42",
                     commit_hash="abc", branch="main", author="dev")


def test_missing_token():
    with pytest.raises(UploadError) as excinfo:
        ArtifactUploader("")
    assert excinfo.value.reason == "missing_token"


def test_from_config(session):
    api = ApiConfig(api_token=TOKEN, base_url="https://api.example.test", retry_attempts=5)
    uploader = ArtifactUploader.from_config(api, session=session)
    assert uploader.max_retries == 5
    assert uploader.webhook_url == f"https://api.example.test/ci/webhook/{TOKEN}"


def test_successful_upload(uploader, session, archive_file, context):
    session.post.return_value = _response(200, {"uploadId": "up-1", "message": "queued"})

    result = uploader.upload_test_artifacts(
        str(archive_file), {"status": "success", "original_size": 100, "file_count": 1}, context
    )

    assert result["success"]
    assert result["upload_id"] == "up-1"
    assert result["message"] == "queued"

    (url,), kwargs = session.post.call_args
    assert url == f"https://api.example.test/ci/webhook/{TOKEN}"
    payload = kwargs["json"]
    assert payload["task"] == "simulate_test"
    assert payload["payload"]["actionUrl"] == "https://github.com/acme/token/actions/runs/42"
    artifacts = payload["payload"]["testsArtifacts"]
    assert artifacts["filename"] == "bbOut_2024.lzma"
    assert artifacts["contentType"] == "application/x-lzma"
    assert base64.b64decode(artifacts["data"]) == archive_file.read_bytes()
    assert artifacts["metadata"]["fileCount"] == 1


def test_server_errors_are_retried(uploader, session, sleeps, archive_file, context):
    session.post.side_effect = [_response(502), _response(200, {"uploadId": "up-2"})]
    assert uploader.upload_test_artifacts(str(archive_file), context=context)["upload_id"] == "up-2"
    assert session.post.call_count == 2
    assert len(sleeps) == 1


def test_client_errors_are_not_retried(uploader, session, sleeps, archive_file, context):
    session.post.return_value = _response(403, {"message": "bad token"})
    with pytest.raises(UploadError) as excinfo:
        uploader.upload_test_artifacts(str(archive_file), context=context)
    assert excinfo.value.status_code == 403
    assert excinfo.value.reason == "rejected"
    assert session.post.call_count == 1
    assert sleeps == []


def test_retries_exhausted_without_leaking_token(uploader, session, sleeps, archive_file, context):
    session.post.side_effect = requests.exceptions.ConnectionError(
        f"Max retries exceeded with url: /ci/webhook/{TOKEN}"
    )
    with pytest.raises(UploadError) as excinfo:
        uploader.upload_test_artifacts(str(archive_file), context=context)

    assert excinfo.value.reason == "retries_exhausted"
    assert TOKEN not in str(excinfo.value)
    assert session.post.call_count == 3
    assert len(sleeps) == 2


def test_unreadable_archive(uploader, tmp_path, context):
    with pytest.raises(UploadError) as excinfo:
        uploader.upload_test_artifacts(str(tmp_path / "missing.lzma"), context=context)
    assert excinfo.value.reason == "read_error"


def test_ci_context_from_env():
    context = CIContext.from_env({
        "GITHUB_REPOSITORY": "acme/token",
        "GITHUB_RUN_ID": "7",
        "GITHUB_REF": "refs/heads/feature/x",
        "GITHUB_SHA": "deadbeef",
        "GITHUB_ACTOR": "dev",
    })
    assert context.repository_owner == "acme"
    assert context.repository_name == "token"
    assert context.branch == "feature/x"
    assert context.action_url == "https://github.com/acme/token/actions/runs/7"


def test_backoff_grows():
    assert 1.0 <= exponential_backoff_with_jitter(0) <= 1.1
    assert 4.0 <= exponential_backoff_with_jitter(2) <= 4.4
    assert exponential_backoff_with_jitter(20, max_delay=60.0) <= 66.0


@pytest.mark.parametrize("name,data,content_type", [
    ("bbOut_2024.gz", b"\x1f\x8b\x08\x00payload", "application/gzip"),
    ("bbOut_2024.br", b"\x0b\x02\x80payload", "application/x-brotli"),
])
def test_content_type_follows_archive_codec(name, data, content_type, uploader, session, tmp_path, context):
    path = tmp_path / name
    path.write_bytes(data)
    session.post.return_value = _response(200)

    uploader.upload_test_artifacts(str(path), context=context)

    payload = session.post.call_args.kwargs["json"]
    assert payload["payload"]["testsArtifacts"]["contentType"] == content_type
