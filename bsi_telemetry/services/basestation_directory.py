from __future__ import annotations

import logging
from pathlib import Path
from threading import RLock
from typing import Any, Dict, Iterable, List, Optional

import yaml

logger = logging.getLogger(__name__)

UNKNOWN_STATUS = "unknown"


class BaseStationDirectory:
    """Static base station coordinates read from a YAML file.

    File layout::

        basestations:
          Nairobi: {lat: -1.2921, lng: 36.8219, status: online}

    The file is re-read when its mtime changes.
    """

    def __init__(self, yaml_path: str):
        self.path = Path(yaml_path)
        self._lock = RLock()
        self._mtime: Optional[float] = None
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._warned_missing = False

    def _load(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            if not self.path.exists():
                if not self._warned_missing:
                    logger.warning("Base station file %s not found; map coordinates unavailable", self.path)
                    self._warned_missing = True
                self._mtime = None
                self._entries = {}
                return self._entries

            mtime = self.path.stat().st_mtime
            if self._mtime == mtime:
                return self._entries

            with self.path.open("r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
            stations = raw.get("basestations") if isinstance(raw, dict) else None

            entries: Dict[str, Dict[str, Any]] = {}
            for name, info in (stations or {}).items():
                if not isinstance(info, dict):
                    continue
                try:
                    lat = float(info["lat"])
                    lng = float(info["lng"])
                except (KeyError, TypeError, ValueError):
                    logger.warning("Skipping base station %r with invalid coordinates", name)
                    continue
                entries[str(name)] = {"lat": lat, "lng": lng, "status": str(info.get("status") or UNKNOWN_STATUS)}

            self._entries = entries
            self._mtime = mtime
            return self._entries

    def lookup(self, name: str) -> Dict[str, Any]:
        entry = self._load().get(name)
        if entry is None:
            return {"lat": None, "lng": None, "status": UNKNOWN_STATUS}
        return dict(entry)

    def locate(self, names: Iterable[str]) -> List[Dict[str, Any]]:
        return [{"id": n, "name": n, **self.lookup(n)} for n in names]
