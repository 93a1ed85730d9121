from __future__ import annotations

from fastapi.testclient import TestClient

from imei_registry import main as app_main


def test_healthz_ok() -> None:
    client = TestClient(app_main.app)
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_readyz_ok_when_database_ready(monkeypatch) -> None:
    monkeypatch.setattr(app_main, "check_db_ready", lambda: True)
    client = TestClient(app_main.app)
    response = client.get("/readyz")
    assert response.status_code == 200
    assert response.json() == {"status": "ready", "checks": {"db": "ok"}}


def test_readyz_reports_database_failure(monkeypatch) -> None:
    monkeypatch.setattr(app_main, "check_db_ready", lambda: False)
    client = TestClient(app_main.app)
    response = client.get("/readyz")
    assert response.status_code == 503
    assert response.json()["detail"]["checks"] == {"db": "fail"}


def test_unhandled_errors_are_opaque(monkeypatch) -> None:
    def _explode() -> bool:
        raise RuntimeError("connection string postgres://secret")

    monkeypatch.setattr(app_main, "check_db_ready", _explode)
    client = TestClient(app_main.app, raise_server_exceptions=False)
    response = client.get("/readyz")
    assert response.status_code == 500
    assert response.json() == {"detail": "Internal Server Error"}
