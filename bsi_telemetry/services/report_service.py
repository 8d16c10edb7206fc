from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from bsi_telemetry.db.models import User, utcnow
from bsi_telemetry.services.access_control_service import AccessControlService
from bsi_telemetry.services.mappers import iso
from bsi_telemetry.services.telemetry_service import TelemetryService, parse_time_filter

logger = logging.getLogger(__name__)

NORMAL = "Normal"
WARNING = "Warning"
NO_DATA = "No Data"

TREND_POINTS = 5

CHART_WIDTH = 640
CHART_HEIGHT = 180
CHART_PAD = 12


class ReportDeadlineExceeded(RuntimeError):
    def __init__(self, node_name: str, deadline_s: float):
        super().__init__(f"Report for {node_name} exceeded {deadline_s:g}s")
        self.node_name = node_name
        self.deadline_s = deadline_s


@dataclass
class MetricAnalysis:
    metric_name: str
    unit: str
    status: str
    analysis: str
    recommendation: str
    stats: Dict[str, Any]
    points: List[Tuple[Any, float]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "metric_name": self.metric_name,
            "unit": self.unit,
            "status": self.status,
            "analysis": self.analysis,
            "recommendation": self.recommendation,
            "stats": self.stats,
            "points": [{"time": iso(t), "value": v} for t, v in self.points],
        }


def trend_of(values: Sequence[float]) -> str:
    recent = list(values[-TREND_POINTS:])
    if len(recent) < 2 or all(v == recent[0] for v in recent):
        return "stable"
    if all(b >= a for a, b in zip(recent, recent[1:])):
        return "increasing"
    if all(b <= a for a, b in zip(recent, recent[1:])):
        return "decreasing"
    return "stable"


def _pct_from(current: float, reference: float) -> float:
    if reference == 0:
        return 0.0
    return abs((current - reference) / reference * 100.0)


def analyze_metric(metric_name: str, values: Sequence[float], unit: Optional[str] = None) -> MetricAnalysis:
    """Threshold analysis over chronologically ordered values.

    The last value is the current reading.
    """
    unit = unit or ""
    if not values:
        return MetricAnalysis(
            metric_name=metric_name,
            unit=unit,
            status=NO_DATA,
            analysis="No data available for analysis.",
            recommendation="Please check data collection system.",
            stats={"current": None, "min": None, "max": None, "avg": None, "trend": "stable", "count": 0},
        )

    current = float(values[-1])
    lo = min(values)
    hi = max(values)
    avg = sum(values) / len(values)
    status = NORMAL

    if metric_name == "forwardPower":
        if current < 0.8 * avg:
            status = WARNING
            below = (1 - current / avg) * 100 if avg else 0.0
            analysis = f"Forward power ({current:.2f}W) is {below:.1f}% below average ({avg:.2f}W)."
            recommendation = "Check transmitter output and connections. Consider maintenance if power continues to decrease."
        else:
            analysis = f"Forward power is stable at {current:.2f}W, within normal operating range."
            recommendation = "Continue regular monitoring."
    elif metric_name == "reflectedPower":
        first_positive = next((v for v in values if v > 0), 1.0)
        if current / first_positive > 0.2:
            status = WARNING
            analysis = f"High reflected power detected ({current:.2f}W). This indicates potential impedance mismatch."
            recommendation = "Inspect antenna system, connections, and VSWR readings. Consider immediate maintenance."
        else:
            analysis = f"Reflected power is at acceptable levels ({current:.2f}W)."
            recommendation = "Maintain current system configuration."
    elif metric_name == "vswr":
        if current > 1.5:
            status = WARNING
            analysis = f"VSWR is elevated at {current:.2f}:1. This indicates potential antenna system issues."
            recommendation = "Check antenna system, feedline, and connections."
        else:
            analysis = f"VSWR is good at {current:.2f}:1, indicating proper impedance matching."
            recommendation = "Continue regular monitoring of VSWR trends."
    elif metric_name == "temperature":
        if current > 40:
            status = WARNING
            analysis = f"Temperature is high at {current:.2f}°C, above recommended operating range."
            recommendation = "Check cooling system, airflow, and ventilation."
        else:
            analysis = f"Temperature is normal at {current:.2f}°C."
            recommendation = "Maintain current cooling configuration."
    elif metric_name == "voltage":
        variation = _pct_from(current, avg)
        if variation > 10:
            status = WARNING
            analysis = f"Voltage shows {variation:.1f}% variation from average. Current: {current:.2f}V, Avg: {avg:.2f}V."
            recommendation = "Monitor power supply stability. Consider UPS or voltage regulation if fluctuations persist."
        else:
            analysis = f"Voltage is stable at {current:.2f}V with normal variation."
            recommendation = "Continue monitoring power supply performance."
    elif metric_name == "current":
        if current > 1.2 * avg:
            status = WARNING
            above = (current / avg - 1) * 100 if avg else 0.0
            analysis = f"Current draw is {above:.1f}% above average. Current: {current:.2f}A, Avg: {avg:.2f}A."
            recommendation = "Check for potential short circuits or equipment malfunction."
        else:
            analysis = f"Current draw is normal at {current:.2f}A."
            recommendation = "Maintain regular monitoring of current consumption."
    else:
        if _pct_from(current, avg) > 20:
            status = WARNING
            analysis = (
                f"Significant variation detected in {metric_name}. "
                f"Current: {current:.2f}{unit}, Avg: {avg:.2f}{unit}."
            )
            recommendation = "Investigate cause of variation and monitor system performance."
        else:
            analysis = f"{metric_name} is within normal operating parameters."
            recommendation = "Continue regular monitoring."

    return MetricAnalysis(
        metric_name=metric_name,
        unit=unit,
        status=status,
        analysis=analysis,
        recommendation=recommendation,
        stats={
            "current": round(current, 2),
            "min": round(lo, 2),
            "max": round(hi, 2),
            "avg": round(avg, 2),
            "trend": trend_of(values),
            "count": len(values),
        },
    )


def chart_polyline(values: Sequence[float], *, width: int = CHART_WIDTH, height: int = CHART_HEIGHT) -> str:
    """SVG polyline ``points`` attribute for a chronological series."""
    if not values:
        return ""
    lo, hi = min(values), max(values)
    span = (hi - lo) or 1.0
    inner_w = width - 2 * CHART_PAD
    inner_h = height - 2 * CHART_PAD
    step = inner_w / (len(values) - 1) if len(values) > 1 else 0.0
    pts = []
    for i, v in enumerate(values):
        x = CHART_PAD + i * step
        y = CHART_PAD + inner_h - ((v - lo) / span) * inner_h
        pts.append(f"{x:.1f},{y:.1f}")
    return " ".join(pts)


class ReportService:
    def __init__(
        self,
        *,
        telemetry: TelemetryService,
        access: AccessControlService,
        deadline_s: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._telemetry = telemetry
        self._access = access
        self._deadline_s = float(deadline_s)
        self._clock = clock

    def build(self, db: Session, *, user: User, node_name: str, time_filter: Optional[str] = None) -> Dict[str, Any]:
        """Bucketed statistics and threshold analysis for every visible base station of a node."""
        started = self._clock()
        stations = self._access.visible_base_stations(db, user, node_name)

        sections: List[Dict[str, Any]] = []
        effective_filter: Optional[str] = None
        for bs in stations:
            if self._clock() - started > self._deadline_s:
                logger.warning(
                    "Report deadline exceeded node=%s after %d/%d base stations",
                    node_name,
                    len(sections),
                    len(stations),
                )
                raise ReportDeadlineExceeded(node_name, self._deadline_s)

            series = self._telemetry.fetch(
                db,
                node_name=node_name,
                base_station=bs,
                time_filter=time_filter,
                aggregate="bucket",
            )
            effective_filter = series.time_filter
            chronological = list(reversed(series.rows))

            metrics = []
            for spec in series.metrics:
                points = [(r["time"], r[spec.name]) for r in chronological if r.get(spec.name) is not None]
                result = analyze_metric(spec.name, [v for _, v in points], spec.unit)
                result.points = points
                metrics.append(result.as_dict())

            sections.append(
                {
                    "base_station": bs,
                    "window": series.window.as_dict() if series.window is not None else None,
                    "bucket_minutes": series.bucket_minutes,
                    "has_mappings": series.has_mappings,
                    "metrics": metrics,
                    "warnings": sum(1 for m in metrics if m["status"] == WARNING),
                }
            )

        if effective_filter is None:
            effective_filter = parse_time_filter(time_filter)[0]

        return {
            "node_name": node_name,
            "time_filter": effective_filter,
            "generated_at": iso(utcnow()),
            "generated_by": user.username,
            "base_stations": sections,
            "summary": {
                "base_stations": len(sections),
                "metrics": sum(len(s["metrics"]) for s in sections),
                "warnings": sum(s["warnings"] for s in sections),
            },
        }

    @staticmethod
    def html_context(report: Dict[str, Any]) -> Dict[str, Any]:
        """Report plus precomputed SVG geometry for the HTML template."""
        ctx = copy.deepcopy(report)
        for section in ctx["base_stations"]:
            for m in section["metrics"]:
                m["chart"] = chart_polyline([p["value"] for p in m["points"]])
        ctx["chart_width"] = CHART_WIDTH
        ctx["chart_height"] = CHART_HEIGHT
        return ctx
