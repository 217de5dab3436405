"""End-to-end coordinator scenarios through the HTTP surface."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from camfleet.config import settings


def register(client, device_id="AGENT-1", cameras=("cam1", "cam2")):
    return client.post("/register", json={"device_id": device_id, "version": "1.1.0",
                                          "cameras": list(cameras)})


class TestRegister:
    def test_register_shows_up_in_status(self, client):
        resp = register(client)
        assert resp.status_code == 200
        assert resp.json() == {"status": "success"}

        status = client.get("/status").json()
        assert status["status"] == "running"
        assert status["devices"] == ["AGENT-1"]
        assert status["devices_info"]["AGENT-1"]["cameras"] == 2

    def test_three_cameras_round_trip(self, client):
        register(client, cameras=("cam1", "cam2", "cam3"))
        assert client.get("/status").json()["devices_info"]["AGENT-1"]["cameras"] == 3

    def test_missing_device_id_is_400(self, client):
        resp = client.post("/register", json={"cameras": ["cam1"]})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing device_id"}

    def test_register_needs_no_token(self, client):
        assert "Authorization" not in client.headers
        assert register(client).status_code == 200


class TestCommands:
    START = {"device_id": "AGENT-1", "action": "start_recording", "camera_id": "cam1",
             "session_id": "S1", "duration": 10}

    def test_queued_command_delivered_once(self, client, auth_headers):
        register(client)
        resp = client.post("/command", json=self.START, headers=auth_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "queued"
        assert body["command_id"].startswith("AGENT-1_")

        first = client.post("/check-commands", json={"device_id": "AGENT-1"}, headers=auth_headers)
        assert first.status_code == 200
        commands = first.json()["commands"]
        assert len(commands) == 1
        assert commands[0]["action"] == "start_recording"
        assert commands[0]["session_id"] == "S1"
        assert commands[0]["duration"] == 10
        assert commands[0]["command_id"] == body["command_id"]

        second = client.post("/check-commands", json={"device_id": "AGENT-1"}, headers=auth_headers)
        assert second.json() == {"commands": []}

    def test_command_without_token_never_queued(self, client, auth_headers):
        register(client)
        resp = client.post("/command", json=self.START)
        assert resp.status_code == 401

        wrong = client.post("/command", json=self.START, headers={"Authorization": "Bearer nope"})
        assert wrong.status_code == 401

        polled = client.post("/check-commands", json={"device_id": "AGENT-1"}, headers=auth_headers)
        assert polled.json() == {"commands": []}

    def test_command_for_unknown_device_is_404(self, client, auth_headers):
        resp = client.post("/command", json={**self.START, "device_id": "GHOST"}, headers=auth_headers)
        assert resp.status_code == 404
        assert resp.json() == {"error": "Device GHOST not found"}

    def test_bad_action_is_400(self, client, auth_headers):
        register(client)
        resp = client.post("/command", json={**self.START, "action": "reboot"}, headers=auth_headers)
        assert resp.status_code == 400

    def test_check_commands_requires_token(self, client):
        resp = client.post("/check-commands", json={"device_id": "AGENT-1"})
        assert resp.status_code == 401

    def test_session_id_the_upload_would_reject_is_400(self, client, auth_headers):
        register(client)
        resp = client.post("/command", json={**self.START, "session_id": "../evil"}, headers=auth_headers)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid session_id: ../evil"}

        upload = client.post(
            "/upload",
            data={"device_id": "AGENT-1", "camera_id": "cam1", "session_id": "../evil"},
            files={"video": ("recording.mp4", b"fake-mp4-bytes", "video/mp4")},
            headers=auth_headers,
        )
        assert upload.status_code == 400

        polled = client.post("/check-commands", json={"device_id": "AGENT-1"}, headers=auth_headers)
        assert polled.json() == {"commands": []}

    def test_missing_device_id_is_command_error(self, client, auth_headers):
        body = {k: v for k, v in self.START.items() if k != "device_id"}
        resp = client.post("/command", json=body, headers=auth_headers)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing device_id"}

    def test_cors_preflight_not_blocked_by_token_check(self, client):
        resp = client.options("/command", headers={
            "Origin": "http://dashboard.local",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Authorization, Content-Type",
        })
        assert resp.status_code == 200
        assert "access-control-allow-origin" in resp.headers


class TestUpload:
    def test_upload_stores_file(self, client, auth_headers):
        resp = client.post(
            "/upload",
            data={"device_id": "AGENT-1", "camera_id": "cam1", "session_id": "S1"},
            files={"video": ("recording.mp4", b"fake-mp4-bytes", "video/mp4")},
            headers=auth_headers,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "success"
        assert body["path"].startswith("AGENT-1/cam1/")
        assert body["path"].endswith("_S1.mp4")
        stored = os.path.join(settings.STORAGE_PATH, body["path"])
        with open(stored, "rb") as f:
            assert f.read() == b"fake-mp4-bytes"

    def test_upload_without_file_is_400(self, client, auth_headers):
        resp = client.post(
            "/upload",
            data={"device_id": "AGENT-1", "camera_id": "cam1", "session_id": "S1"},
            headers=auth_headers,
        )
        assert resp.status_code == 400
        assert "error" in resp.json()

    def test_upload_requires_token(self, client):
        resp = client.post(
            "/upload",
            data={"device_id": "AGENT-1", "camera_id": "cam1", "session_id": "S1"},
            files={"video": ("recording.mp4", b"x", "video/mp4")},
        )
        assert resp.status_code == 401


class TestUnknownRoutes:
    def test_unknown_route_lists_endpoints(self, client):
        resp = client.get("/nope")
        assert resp.status_code == 404
        body = resp.json()
        assert body["error"] == "Not found"
        assert "POST /register" in body["endpoints"]
        assert "GET /status" in body["endpoints"]

    def test_wrong_method_is_404(self, client):
        resp = client.get("/register")
        assert resp.status_code == 404
        assert "endpoints" in resp.json()
