from __future__ import annotations

import datetime as dt
import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from bsi_telemetry.db.models import MetricMapping, Sample, node_status_table
from bsi_telemetry.services.exceptions import ValidationFailed
from bsi_telemetry.services.mappers import as_utc, iso

logger = logging.getLogger(__name__)

TIME_FILTERS: Dict[str, int] = {
    "5m": 5,
    "10m": 10,
    "30m": 30,
    "1h": 60,
    "2h": 120,
    "6h": 360,
    "1d": 1440,
    "2d": 2880,
    "5d": 7200,
    "1w": 10080,
    "2w": 20160,
    "30d": 43200,
}
DEFAULT_TIME_FILTER = "1h"
MAX_WINDOW_MINUTES = 30 * 24 * 60

AGGREGATE_MODES = ("auto", "raw", "bucket")

DEFAULT_PAGE_SIZE = 200
MAX_PAGE_SIZE = 1000

# (upper bound in minutes, target point count)
_POINT_BUDGET: Tuple[Tuple[int, int], ...] = (
    (15, 30),
    (60, 60),
    (360, 90),
    (1440, 120),
    (4320, 100),
    (10080, 105),
)
_POINT_BUDGET_CAP = 100


@dataclass(frozen=True)
class MetricSpec:
    name: str
    column: str
    unit: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {"metric_name": self.name, "column_name": self.column, "unit": self.unit}


DEFAULT_METRICS: Tuple[MetricSpec, ...] = (
    MetricSpec("forwardPower", "Analog1Value", "W"),
    MetricSpec("reflectedPower", "Analog2Value", "W"),
    MetricSpec("vswr", "Analog3Value"),
    MetricSpec("returnLoss", "Analog4Value", "dB"),
    MetricSpec("temperature", "Analog5Value", "°C"),
    MetricSpec("voltage", "Analog6Value", "V"),
    MetricSpec("current", "Analog7Value", "A"),
    MetricSpec("power", "Analog8Value", "W"),
)


@dataclass(frozen=True)
class TimeWindow:
    time_filter: str
    minutes: int
    start: dt.datetime
    end: dt.datetime

    def contains(self, ts: dt.datetime) -> bool:
        ts = as_utc(ts)
        return self.start <= ts <= self.end

    def as_dict(self) -> Dict[str, Any]:
        return {"start": iso(self.start), "end": iso(self.end), "minutes": self.minutes}


def parse_time_filter(token: Optional[str]) -> Tuple[str, int]:
    """Map a time-filter token to (effective token, minutes).

    Unknown or missing tokens fall back to one hour.
    """
    key = (token or "").strip()
    if key in TIME_FILTERS:
        return key, min(TIME_FILTERS[key], MAX_WINDOW_MINUTES)
    if key:
        logger.debug("Unknown time filter %r, using %s", key, DEFAULT_TIME_FILTER)
    return DEFAULT_TIME_FILTER, TIME_FILTERS[DEFAULT_TIME_FILTER]


def resolve_window(anchor: dt.datetime, time_filter: Optional[str]) -> TimeWindow:
    """Window ending at the newest sample; both ends inclusive."""
    token, minutes = parse_time_filter(time_filter)
    end = as_utc(anchor)
    return TimeWindow(time_filter=token, minutes=minutes, start=end - dt.timedelta(minutes=minutes), end=end)


def target_points(minutes: int) -> int:
    for bound, points in _POINT_BUDGET:
        if minutes <= bound:
            return points
    return _POINT_BUDGET_CAP


def bucket_minutes_for(minutes: int) -> int:
    return max(1, int(math.ceil(minutes / target_points(minutes))))


def bucket_start(ts: dt.datetime, step_minutes: int) -> dt.datetime:
    """Floor ``ts`` to a multiple of ``step_minutes`` since the Unix epoch."""
    step_s = max(1, int(step_minutes)) * 60
    epoch_s = int(math.floor(as_utc(ts).timestamp()))
    return dt.datetime.fromtimestamp(epoch_s - (epoch_s % step_s), tz=dt.timezone.utc)


def bucket_rows(
    rows: Iterable[Tuple[dt.datetime, Sequence[Optional[float]]]],
    metric_names: Sequence[str],
    step_minutes: int,
) -> List[Dict[str, Any]]:
    """Average ``(time, values)`` rows into epoch-aligned buckets, newest first.

    NULL values are skipped per metric; a metric with no values in a bucket
    averages to None. Only buckets holding at least one row are emitted.
    """
    sums: Dict[dt.datetime, List[float]] = defaultdict(lambda: [0.0] * len(metric_names))
    counts: Dict[dt.datetime, List[int]] = defaultdict(lambda: [0] * len(metric_names))
    samples: Dict[dt.datetime, int] = defaultdict(int)

    for ts, values in rows:
        b = bucket_start(ts, step_minutes)
        samples[b] += 1
        s, c = sums[b], counts[b]
        for i, v in enumerate(values):
            if v is None:
                continue
            s[i] += float(v)
            c[i] += 1

    out: List[Dict[str, Any]] = []
    for b in sorted(samples, reverse=True):
        row: Dict[str, Any] = {"time": b}
        s, c = sums[b], counts[b]
        for i, name in enumerate(metric_names):
            row[name] = round(s[i] / c[i], 2) if c[i] else None
        row["sample_count"] = samples[b]
        out.append(row)
    return out


@dataclass
class TelemetrySeries:
    node_name: str
    base_station: str
    window: Optional[TimeWindow]
    time_filter: str
    minutes: int
    metrics: List[MetricSpec]
    has_mappings: bool
    bucket_minutes: Optional[int] = None
    rows: List[Dict[str, Any]] = field(default_factory=list)


class TelemetryService:
    """Anchored time-window queries over ``node_status_table``."""

    def __init__(self, *, raw_point_limit: int = 500) -> None:
        self._raw_point_limit = max(1, int(raw_point_limit))

    @staticmethod
    def metrics_for(db: Session, node_name: str, base_station: str) -> Tuple[List[MetricSpec], bool]:
        mappings = (
            db.query(MetricMapping)
            .filter(
                MetricMapping.node_name == node_name,
                MetricMapping.base_station_name == base_station,
                MetricMapping.is_active == True,  # noqa: E712
            )
            .order_by(MetricMapping.display_order, MetricMapping.metric_name)
            .all()
        )
        if not mappings:
            return list(DEFAULT_METRICS), False
        return [MetricSpec(m.metric_name, m.column_name, m.unit) for m in mappings], True

    @staticmethod
    def anchor_for(db: Session, node_name: str, base_station: str) -> Optional[dt.datetime]:
        anchor = db.execute(
            select(func.max(Sample.time)).where(
                Sample.NodeName == node_name,
                Sample.NodeBaseStationName == base_station,
            )
        ).scalar()
        return as_utc(anchor)

    def fetch(
        self,
        db: Session,
        *,
        node_name: str,
        base_station: str,
        time_filter: Optional[str] = None,
        aggregate: str = "auto",
    ) -> TelemetrySeries:
        if aggregate not in AGGREGATE_MODES:
            raise ValidationFailed(f"aggregate must be one of {', '.join(AGGREGATE_MODES)}")

        token, minutes = parse_time_filter(time_filter)
        metrics, has_mappings = self.metrics_for(db, node_name, base_station)
        series = TelemetrySeries(
            node_name=node_name,
            base_station=base_station,
            window=None,
            time_filter=token,
            minutes=minutes,
            metrics=metrics,
            has_mappings=has_mappings,
        )

        anchor = self.anchor_for(db, node_name, base_station)
        if anchor is None:
            return series

        window = resolve_window(anchor, token)
        series.window = window

        cols = [node_status_table.c[m.column] for m in metrics]
        raw = db.execute(
            select(Sample.time, *cols)
            .where(
                Sample.NodeName == node_name,
                Sample.NodeBaseStationName == base_station,
                Sample.time >= window.start,
                Sample.time <= window.end,
            )
            .order_by(Sample.time.desc())
        ).all()

        names = [m.name for m in metrics]
        bucket = aggregate == "bucket" or (aggregate == "auto" and len(raw) > self._raw_point_limit)
        if bucket:
            step = bucket_minutes_for(minutes)
            series.bucket_minutes = step
            series.rows = bucket_rows(((r[0], r[1:]) for r in raw), names, step)
        else:
            series.rows = [
                {"time": as_utc(r[0]), **{name: r[i + 1] for i, name in enumerate(names)}}
                for r in raw
            ]

        logger.debug(
            "Telemetry %s/%s filter=%s rows=%d bucketed=%s",
            node_name,
            base_station,
            token,
            len(series.rows),
            bucket,
        )
        return series

    def query(
        self,
        db: Session,
        *,
        node_name: str,
        base_station: str,
        time_filter: Optional[str] = None,
        aggregate: str = "auto",
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Dict[str, Any]:
        page = max(1, int(page))
        page_size = max(1, min(int(page_size), MAX_PAGE_SIZE))

        series = self.fetch(
            db,
            node_name=node_name,
            base_station=base_station,
            time_filter=time_filter,
            aggregate=aggregate,
        )
        total = len(series.rows)
        offset = (page - 1) * page_size
        data = [{**row, "time": iso(row["time"])} for row in series.rows[offset : offset + page_size]]

        return {
            "node_name": node_name,
            "base_station": base_station,
            "time_filter": series.time_filter,
            "window": (
                series.window.as_dict()
                if series.window is not None
                else {"start": None, "end": None, "minutes": series.minutes}
            ),
            "bucket_minutes": series.bucket_minutes,
            "has_mappings": series.has_mappings,
            "metrics": [m.as_dict() for m in series.metrics],
            "data": data,
            "total": total,
            "page": page,
            "page_size": page_size,
            "total_pages": int(math.ceil(total / page_size)) if total else 0,
        }
