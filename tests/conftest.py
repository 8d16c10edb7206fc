from __future__ import annotations

from pathlib import Path
import sys

# Ensure repo root is importable
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))


import pytest
from fastapi.testclient import TestClient

from bsi_telemetry.api.app import create_app
from bsi_telemetry.core.settings import Settings
from bsi_telemetry.db.models import node_status_table

ADMIN_PASSWORD = "TestPassword!12345"
USER_PASSWORD = "LongEnoughPassword!234"


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    db_path = tmp_path / "test.db"

    return Settings(
        env="test",
        basestations_file=str(REPO_ROOT / "config" / "basestations.yaml"),
        database_url=f"sqlite:///{db_path}",
        auto_create_db=True,
        jwt_secret_key="test_jwt_secret",
        initial_admin_username="admin",
        initial_admin_password=ADMIN_PASSWORD,
        # generous limits; the rate limit tests build their own app
        login_rate_limit=100,
        user_create_rate_limit=100,
    )


@pytest.fixture()
def client(settings: Settings):
    app = create_app(settings)
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def admin_token(client: TestClient) -> str:
    resp = client.post("/api/auth/login", json={"username": "admin", "password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    return resp.json()["token"]


@pytest.fixture()
def admin_headers(admin_token: str):
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture()
def add_samples(client: TestClient):
    """Insert ``(time, {column: value})`` rows for one node/base station."""

    def _add(node_name, base_station, rows):
        with client.app.state.db_sessionmaker() as db:
            for ts, values in rows:
                db.execute(
                    node_status_table.insert().values(
                        NodeName=node_name,
                        NodeBaseStationName=base_station,
                        time=ts,
                        **values,
                    )
                )
            db.commit()

    return _add


@pytest.fixture()
def make_user(client: TestClient, admin_headers):
    """Create a user through the API and return ``(user_id, headers)`` for it."""

    def _make(username, role="viewer", password=USER_PASSWORD):
        r = client.post(
            "/api/users",
            headers=admin_headers,
            json={
                "username": username,
                "email": f"{username}@example.com",
                "password": password,
                "role": role,
            },
        )
        assert r.status_code == 201, r.text
        user_id = r.json()["user"]["id"]

        login = client.post("/api/auth/login", json={"username": username, "password": password})
        assert login.status_code == 200, login.text
        return user_id, {"Authorization": f"Bearer {login.json()['token']}"}

    return _make
