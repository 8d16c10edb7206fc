from __future__ import annotations

import datetime as dt

from fastapi.testclient import TestClient

ANCHOR = dt.datetime(2024, 1, 1, 12, 0, tzinfo=dt.timezone.utc)


def test_assign_and_list(client: TestClient, admin_headers, add_samples, make_user):
    add_samples("N1", "BS1", [(ANCHOR, {})])
    add_samples("N2", "BS1", [(ANCHOR, {})])
    add_samples("N2", "BS2", [(ANCHOR, {})])
    user_id, headers = make_user("nina")

    assert client.get("/api/nodes", headers=headers).json() == []

    r = client.post(
        "/api/node-assignments",
        headers=admin_headers,
        json={"userId": user_id, "nodeNames": ["N2", " N2 ", "N1"], "notes": "field team"},
    )
    assert r.status_code == 201
    assert r.json()["assignments"] == [
        {"nodeName": "N2", "status": "assigned"},
        {"nodeName": "N1", "status": "assigned"},
    ]

    # re-assigning refreshes rather than failing
    r = client.post("/api/node-assignments", headers=admin_headers, json={"userId": user_id, "nodeNames": ["N1"]})
    assert r.json()["assignments"] == [{"nodeName": "N1", "status": "updated"}]

    assert client.get("/api/nodes", headers=headers).json() == [
        {"id": "N1", "name": "N1"},
        {"id": "N2", "name": "N2"},
    ]
    stations = client.get("/api/basestations/N2", headers=headers).json()
    assert [s["name"] for s in stations] == ["BS1", "BS2"]

    listed = client.get(f"/api/node-assignments/user/{user_id}", headers=headers)
    assert listed.status_code == 200
    names = sorted(a["nodeName"] for a in listed.json()["assignments"])
    assert names == ["N1", "N2"]
    assert listed.json()["assignments"][0]["assignedByUsername"] == "admin"


def test_assignment_validation(client: TestClient, admin_headers, make_user):
    user_id, _ = make_user("otto")

    r = client.post("/api/node-assignments", headers=admin_headers, json={"userId": user_id, "nodeNames": []})
    assert r.status_code == 400
    r = client.post("/api/node-assignments", headers=admin_headers, json={"userId": user_id, "nodeNames": "N1"})
    assert r.status_code == 400
    r = client.post("/api/node-assignments", headers=admin_headers, json={"userId": 9999, "nodeNames": ["N1"]})
    assert r.status_code == 404


def test_remove_assignments(client: TestClient, admin_headers, add_samples, make_user):
    add_samples("N1", "BS1", [(ANCHOR, {})])
    add_samples("N1", "BS2", [(ANCHOR, {})])
    user_id, headers = make_user("rita")

    client.post(
        "/api/node-assignments",
        headers=admin_headers,
        json={"userId": user_id, "nodeNames": ["N1"], "baseStationName": "BS1"},
    )
    client.post(
        "/api/node-assignments",
        headers=admin_headers,
        json={"userId": user_id, "nodeNames": ["N1"], "baseStationName": "BS2"},
    )
    assert [s["name"] for s in client.get("/api/basestations/N1", headers=headers).json()] == ["BS1", "BS2"]

    assignments = client.get(f"/api/node-assignments/user/{user_id}", headers=admin_headers).json()["assignments"]
    bs1 = next(a for a in assignments if a["baseStationName"] == "BS1")
    assert client.delete(f"/api/node-assignments/{bs1['id']}", headers=admin_headers).status_code == 200
    assert [s["name"] for s in client.get("/api/basestations/N1", headers=headers).json()] == ["BS2"]

    r = client.delete(f"/api/node-assignments/user/{user_id}/node/N1", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["removed"] == 1
    assert client.get("/api/basestations/N1", headers=headers).status_code == 403

    assert client.delete(f"/api/node-assignments/user/{user_id}/node/N1", headers=admin_headers).status_code == 404


def test_access_all_nodes(client: TestClient, admin_headers, add_samples, make_user):
    add_samples("N1", "BS1", [(ANCHOR, {})])
    add_samples("N2", "BS1", [(ANCHOR, {})])
    user_id, headers = make_user("abe")

    r = client.put(f"/api/node-assignments/user/{user_id}/access-all", headers=admin_headers, json={"accessAllNodes": "yes"})
    assert r.status_code == 400

    r = client.put(f"/api/node-assignments/user/{user_id}/access-all", headers=admin_headers, json={"accessAllNodes": True})
    assert r.status_code == 200
    assert r.json()["accessAllNodes"] is True
    assert [n["name"] for n in client.get("/api/nodes", headers=headers).json()] == ["N1", "N2"]

    client.put(f"/api/node-assignments/user/{user_id}/access-all", headers=admin_headers, json={"accessAllNodes": False})
    assert client.get("/api/nodes", headers=headers).json() == []


def test_assignment_permissions(client: TestClient, admin_headers, add_samples, make_user):
    add_samples("N1", "BS1", [(ANCHOR, {})])
    viewer_id, viewer = make_user("vince")
    manager_id, manager = make_user("meg", role="manager")

    assert client.get(f"/api/node-assignments/user/{viewer_id}", headers=viewer).status_code == 200
    assert client.get(f"/api/node-assignments/user/{manager_id}", headers=viewer).status_code == 403
    assert client.get("/api/node-assignments/available-nodes", headers=manager).status_code == 403

    r = client.post("/api/node-assignments", headers=manager, json={"userId": viewer_id, "nodeNames": ["N1"]})
    assert r.status_code == 403

    available = client.get("/api/node-assignments/available-nodes", headers=admin_headers).json()
    assert available["nodes"] == ["N1"]
