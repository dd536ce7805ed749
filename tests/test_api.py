from __future__ import annotations

from pathlib import Path

import yaml
from fastapi.testclient import TestClient

from traffic_coordinator.main import create_app


def _write_config(tmp_path: Path) -> Path:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        yaml.safe_dump(
            {
                "session": {
                    "duration_seconds": 120,
                    "status_interval_seconds": 60,
                    "domain": "https://traffic.example.test",
                },
                "storage": {"data_directory": str(tmp_path / "data")},
                "ranking": {"daily_reset": False},
                "logging": {"level": "WARNING", "output": "console"},
            }
        ),
        encoding="utf-8",
    )
    return config_path


def test_full_session_over_http(tmp_path: Path) -> None:
    app = create_app(_write_config(tmp_path))
    with TestClient(app) as client:
        assert client.get("/status").json() == {"status": "no active session"}

        idle_hit = client.get("/target_whatever")
        assert idle_hit.status_code == 403
        assert idle_hit.text == "no active session"

        started = client.post(
            "/chat/actions/start_session", json={"user_id": 1, "display_name": "alice"}
        )
        assert started.status_code == 200
        assert "Traffic session started" in started.json()["reply"]

        status = client.get("/status").json()
        assert status["status"] == "active"
        assert status["user_id"] == 1
        assert status["request_count"] == 0
        path = status["path"]

        hit = client.get(path)
        assert hit.status_code == 200
        assert hit.text == "request accepted"

        wrong = client.get(path[:-1])
        assert wrong.status_code == 403
        assert wrong.text == "invalid path"

        assert client.get("/status").json()["request_count"] == 1

        queued = client.post("/chat/actions/start_session", json={"user_id": 2, "display_name": "bob"})
        assert "position 1" in queued.json()["reply"]

        ended = client.post("/chat/actions/end_session", json={"user_id": 1, "display_name": "alice"})
        assert "Total requests: 1" in ended.json()["reply"]

        outbox = client.get("/chat/outbox/2").json()
        assert outbox["recipient_id"] == 2
        assert "Your turn has come" in outbox["messages"][0]["text"]
        assert client.get("/status").json()["user_id"] == 2

        ranking = client.post("/chat/actions/rank", json={"user_id": 3})
        assert "1. alice - 1 requests" in ranking.json()["reply"]


def test_unknown_chat_action_is_404(tmp_path: Path) -> None:
    with TestClient(create_app(_write_config(tmp_path))) as client:
        response = client.post("/chat/actions/explode", json={"user_id": 1})
        assert response.status_code == 404


def test_diagnostics_routes(tmp_path: Path) -> None:
    with TestClient(create_app(_write_config(tmp_path))) as client:
        assert client.get("/healthz").json()["status"] == "ok"
        assert client.get("/readyz").json()["status"] == "ready"
        client.post("/chat/actions/start_session", json={"user_id": 5, "display_name": "eve"})
        payload = client.get("/diagnostics").json()
        assert payload["coordinator"]["state"] == "active"
        assert payload["coordinator"]["owner_id"] == 5
        assert payload["storage"]["failed_writes"] == 0


def test_session_survives_an_app_restart(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)
    with TestClient(create_app(config_path)) as client:
        client.post("/chat/actions/start_session", json={"user_id": 1, "display_name": "alice"})
        path = client.get("/status").json()["path"]
        client.get(path)

    with TestClient(create_app(config_path)) as client:
        status = client.get("/status").json()
        assert status["status"] == "active"
        assert status["path"] == path
        assert status["request_count"] == 1
        assert client.get(path).status_code == 200


def test_percent_encoded_secret_path_is_rejected(tmp_path: Path) -> None:
    with TestClient(create_app(_write_config(tmp_path))) as client:
        client.post("/chat/actions/start_session", json={"user_id": 1, "display_name": "alice"})
        path = client.get("/status").json()["path"]

        encoded_last = path[:-1] + "%" + format(ord(path[-1]), "02X")
        response = client.get(encoded_last)
        assert response.status_code == 403
        assert response.text == "invalid path"

        encoded_prefix = path.replace("target_", "%74arget_", 1)
        assert client.get(encoded_prefix).text == "invalid path"

        assert client.get("/status").json()["request_count"] == 0
        with_query = client.get(path + "?utm=1")
        assert with_query.status_code == 200
        assert client.get("/status").json()["request_count"] == 1
