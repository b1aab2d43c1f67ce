import time

from fastapi.testclient import TestClient
from chatbridge.config import Settings
from chatbridge.server.app import create_app
from chatbridge.transport.loopback import LoopbackTransport

def make_settings(tmp_path, **overrides):
    base = dict(
        data_dir=str(tmp_path / "data"),
        sqlite_path=str(tmp_path / "data" / "bridge.sqlite"),
        auth_dir=str(tmp_path / "auth"),
        auto_connect=False,
        require_client_auth=False,
        json_logs=False,
    )
    base.update(overrides)
    return Settings(**base)

def test_health_and_empty_session(tmp_path):
    app = create_app(make_settings(tmp_path), transport=LoopbackTransport())
    with TestClient(app) as client:
        assert client.get("/healthz").json()["state"] == "idle"
        session = client.get("/api/session").json()
        assert session["is_connected"] is False
        assert session["state"] == {"state": "idle", "reason": None}

def test_send_while_disconnected_is_409(tmp_path):
    app = create_app(make_settings(tmp_path), transport=LoopbackTransport())
    with TestClient(app) as client:
        res = client.post("/api/messages", json={"to": "1234567890", "body": "hi"})
        assert res.status_code == 409
        assert res.json()["detail"]["code"] == "not_connected"

def test_write_routes_need_api_key(tmp_path):
    settings = make_settings(tmp_path, require_client_auth=True, client_api_keys=["secret"])
    app = create_app(settings, transport=LoopbackTransport())
    with TestClient(app) as client:
        assert client.get("/api/contacts").status_code == 401
        res = client.get("/api/contacts", headers={"x-api-key": "secret"})
        assert res.status_code == 200
        assert res.json() == {"contacts": []}

def test_connect_starts_qr_flow(tmp_path):
    transport = LoopbackTransport()
    app = create_app(make_settings(tmp_path), transport=transport)
    with TestClient(app) as client:
        res = client.post("/api/session/connect")
        assert res.status_code == 200
        assert len(transport.sessions) == 1
        assert transport.latest.started

def test_session_hides_qr_without_api_key(tmp_path):
    settings = make_settings(tmp_path, require_client_auth=True, client_api_keys=["secret"])
    app = create_app(settings, transport=LoopbackTransport())
    with TestClient(app) as client:
        assert client.post("/api/session/connect", headers={"x-api-key": "secret"}).status_code == 200
        for _ in range(50):
            session = client.get("/api/session", headers={"x-api-key": "secret"}).json()
            if session["qr_code"]:
                break
            time.sleep(0.01)
        assert session["qr_code"].startswith("2@")

        anonymous = client.get("/api/session")
        assert anonymous.status_code == 200
        assert anonymous.json()["qr_code"] is None
        assert anonymous.json()["state"]["state"] == "awaiting_qr"
