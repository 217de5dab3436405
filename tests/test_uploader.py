"""Upload pipeline tests — coordinator replies are scripted with httpx.MockTransport."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import httpx
import pytest
from camfleet.agent.client import CoordinatorClient
from camfleet.agent.uploader import UploadPipeline
from camfleet.exceptions import FileMissing, Transport


def pipeline(handler):
    client = CoordinatorClient("http://coordinator:8000", "tok", transport=httpx.MockTransport(handler))
    return UploadPipeline(client, "AGENT-1")


@pytest.fixture
def recording(tmp_path):
    path = tmp_path / "S1.mp4"
    path.write_bytes(b"mp4-bytes")
    return path


class TestUploadPipeline:
    def test_success_deletes_local_file(self, recording):
        seen = {}

        def handler(request):
            seen["body"] = request.content
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json={"status": "success", "path": "AGENT-1/cam1/x_S1.mp4"})

        path = pipeline(handler).upload(str(recording), "S1", "cam1")

        assert path == "AGENT-1/cam1/x_S1.mp4"
        assert not recording.exists()
        assert seen["auth"] == "Bearer tok"
        assert b'name="video"' in seen["body"]
        assert b"mp4-bytes" in seen["body"]
        assert b"AGENT-1" in seen["body"]

    def test_server_error_keeps_file(self, recording):
        uploader = pipeline(lambda request: httpx.Response(500, json={"error": "File move failed"}))

        with pytest.raises(Transport) as exc:
            uploader.upload(str(recording), "S1", "cam1")
        assert exc.value.status == 500
        assert recording.exists()

    def test_connection_failure_keeps_file(self, recording):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(Transport) as exc:
            pipeline(handler).upload(str(recording), "S1", "cam1")
        assert exc.value.status == 0
        assert recording.exists()

    def test_missing_file_is_not_a_transport_error(self, tmp_path):
        calls = []
        uploader = pipeline(lambda request: calls.append(request) or httpx.Response(200, json={}))

        with pytest.raises(FileMissing):
            uploader.upload(str(tmp_path / "gone.mp4"), "S1", "cam1")
        assert calls == []

    def test_delete_failure_is_not_fatal(self, recording, monkeypatch):
        def refuse(path):
            raise PermissionError("read-only filesystem")

        monkeypatch.setattr("camfleet.agent.uploader.os.remove", refuse)
        uploader = pipeline(lambda request: httpx.Response(200, json={"status": "success", "path": "p"}))

        assert uploader.upload(str(recording), "S1", "cam1") == "p"
        assert recording.exists()
