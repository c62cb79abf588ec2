from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict

from models.run_report import RunReport

LOGGER = logging.getLogger(__name__)

COUNTERS = ("runs", "threads_seen", "replies_sent", "labels_applied", "failures", "aborted_runs")


class StatisticsService:
    """Very small JSON-backed stats store."""

    def __init__(self, stats_file: Path):
        self._stats_file = stats_file
        self._stats_file.parent.mkdir(parents=True, exist_ok=True)
        self._stats_file.touch(exist_ok=True)
        if not self._stats_file.read_text(encoding="utf-8").strip():
            self._stats_file.write_text(json.dumps({}), encoding="utf-8")

    def _read(self) -> Dict:
        try:
            return json.loads(self._stats_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            LOGGER.warning("Stats file was corrupt, resetting %s", self._stats_file)
            self._stats_file.write_text(json.dumps({}), encoding="utf-8")
            return {}

    def _write(self, payload: Dict) -> None:
        self._stats_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def record_run(self, report: RunReport) -> None:
        stats = self._read()
        increments = {
            "runs": 1,
            "threads_seen": report.threads_seen,
            "replies_sent": len(report.replied),
            "labels_applied": len(report.labelled),
            "failures": len(report.failures),
            "aborted_runs": int(report.aborted),
        }
        for key, value in increments.items():
            stats[key] = stats.get(key, 0) + value
        stats["last_run_at"] = datetime.now(timezone.utc).isoformat(timespec="seconds")
        self._write(stats)

    def snapshot(self) -> Dict:
        return self._read()
