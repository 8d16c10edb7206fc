from __future__ import annotations

import datetime as dt
import itertools

from fastapi.testclient import TestClient

from bsi_telemetry.services.report_service import ReportService

ANCHOR = dt.datetime(2024, 1, 1, 12, 0, tzinfo=dt.timezone.utc)


def _seed(add_samples):
    add_samples(
        "N1",
        "Nairobi",
        [
            (ANCHOR - dt.timedelta(hours=3), {"Analog5Value": 30.0, "Analog3Value": 1.1}),
            (ANCHOR - dt.timedelta(hours=2), {"Analog5Value": 35.0, "Analog3Value": 1.2}),
            (ANCHOR, {"Analog5Value": 45.0, "Analog3Value": 1.2}),
        ],
    )
    add_samples("N1", "Mombasa", [(ANCHOR, {"Analog5Value": 25.0})])


def test_json_report(client: TestClient, admin_headers, add_samples):
    _seed(add_samples)

    r = client.get("/api/reports/N1", headers=admin_headers)
    assert r.status_code == 200
    report = r.json()["report"]
    assert report["time_filter"] == "1d"
    assert report["summary"]["base_stations"] == 2
    assert [s["base_station"] for s in report["base_stations"]] == ["Mombasa", "Nairobi"]

    nairobi = report["base_stations"][1]
    temp = next(m for m in nairobi["metrics"] if m["metric_name"] == "temperature")
    assert temp["status"] == "Warning"
    assert temp["stats"]["current"] == 45.0
    assert temp["stats"]["trend"] == "increasing"
    assert len(temp["points"]) == 3
    assert nairobi["warnings"] >= 1
    assert report["summary"]["warnings"] >= 1


def test_html_report(client: TestClient, admin_headers, add_samples):
    _seed(add_samples)

    r = client.get("/api/reports/N1", headers=admin_headers, params={"format": "html", "timeFilter": "1w"})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/html")
    assert "default-src 'none'" in r.headers["Content-Security-Policy"]
    body = r.text
    assert "Base Station: Nairobi" in body
    assert "<polyline" in body
    assert "Range: 1w" in body


def test_report_long_unknown_time_filter_uses_one_hour(client: TestClient, admin_headers, add_samples):
    _seed(add_samples)
    r = client.get("/api/reports/N1", headers=admin_headers, params={"timeFilter": "bogus-token-" + "x" * 40})
    assert r.status_code == 200
    assert r.json()["report"]["time_filter"] == "1h"


def test_report_requires_visibility(client: TestClient, admin_headers, add_samples, make_user):
    _seed(add_samples)
    user_id, headers = make_user("ria")

    r = client.get("/api/reports/N1", headers=headers)
    assert r.status_code == 403
    assert r.json()["code"] == "NODE_ACCESS_DENIED"

    client.post(
        "/api/node-assignments",
        headers=admin_headers,
        json={"userId": user_id, "nodeNames": ["N1"], "baseStationName": "Mombasa"},
    )
    report = client.get("/api/reports/N1", headers=headers).json()["report"]
    assert [s["base_station"] for s in report["base_stations"]] == ["Mombasa"]


def test_report_timeout(client: TestClient, admin_headers, add_samples):
    _seed(add_samples)
    ticks = itertools.count()
    client.app.state.report_service = ReportService(
        telemetry=client.app.state.telemetry_service,
        access=client.app.state.access_control_service,
        deadline_s=0.5,
        clock=lambda: float(next(ticks)),
    )

    r = client.get("/api/reports/N1", headers=admin_headers)
    assert r.status_code == 504
    assert r.json()["code"] == "REPORT_TIMEOUT"


def test_report_bad_format(client: TestClient, admin_headers):
    r = client.get("/api/reports/N1", headers=admin_headers, params={"format": "pdf"})
    assert r.status_code == 400
