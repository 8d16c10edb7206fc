from __future__ import annotations

import datetime as dt

from fastapi.testclient import TestClient

ANCHOR = dt.datetime(2024, 1, 1, 12, 0, tzinfo=dt.timezone.utc)


def test_admin_sees_all_nodes(client: TestClient, admin_headers, add_samples):
    add_samples("N2", "Kisumu", [(ANCHOR, {})])
    add_samples("N1", "Nairobi", [(ANCHOR, {})])
    add_samples("N1", "Atlantis", [(ANCHOR, {})])

    r = client.get("/api/nodes", headers=admin_headers)
    assert r.status_code == 200
    assert r.json() == [{"id": "N1", "name": "N1"}, {"id": "N2", "name": "N2"}]

    r = client.get("/api/basestations/N1", headers=admin_headers)
    assert [s["name"] for s in r.json()] == ["Atlantis", "Nairobi"]


def test_base_station_map(client: TestClient, admin_headers, add_samples):
    add_samples("N1", "Nairobi", [(ANCHOR, {})])
    add_samples("N1", "Atlantis", [(ANCHOR, {})])

    r = client.get("/api/basestations-map", headers=admin_headers)
    assert r.status_code == 200
    by_name = {s["name"]: s for s in r.json()}
    assert by_name["Nairobi"]["lat"] == -1.2921
    assert by_name["Nairobi"]["status"] == "online"
    # stations missing from the coordinates file are still listed
    assert by_name["Atlantis"]["lat"] is None
    assert by_name["Atlantis"]["status"] == "unknown"


def test_map_respects_visibility(client: TestClient, admin_headers, add_samples, make_user):
    add_samples("N1", "Nairobi", [(ANCHOR, {})])
    add_samples("N2", "Mombasa", [(ANCHOR, {})])
    user_id, headers = make_user("mara")
    client.post("/api/node-assignments", headers=admin_headers, json={"userId": user_id, "nodeNames": ["N2"]})

    assert [s["name"] for s in client.get("/api/basestations-map", headers=headers).json()] == ["Mombasa"]
    assert client.get("/api/basestations/N1", headers=headers).status_code == 403
