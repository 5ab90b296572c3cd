"""Persisted route optimisation runs on the local filesystem."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..config import settings

SUMMARY_FILE = "summary.json"
STOPS_FILE = "stops.csv"


class RouteOutputStorage:
    """One timestamped directory per run under ``<data_root>/outputs``."""

    def __init__(self, root: Path | None = None) -> None:
        self.output_root = (root or settings.data_root).resolve() / "outputs"
        self.output_root.mkdir(parents=True, exist_ok=True)

    def new_run_directory(self, prefix: str = "routes") -> Path:
        # Microseconds keep back-to-back runs apart.
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        run_dir = self.output_root / f"{prefix}_{stamp}"
        run_dir.mkdir(parents=True, exist_ok=False)
        return run_dir

    def save_run(self, summary: dict[str, Any], stops_csv: str, *, prefix: str = "routes") -> Path:
        """Write the route summary and stop list; returns the run directory."""
        run_dir = self.new_run_directory(prefix)
        with (run_dir / SUMMARY_FILE).open("w", encoding="utf-8") as handle:
            json.dump(summary, handle, ensure_ascii=False, indent=2)
        with (run_dir / STOPS_FILE).open("w", encoding="utf-8", newline="") as handle:
            handle.write(stops_csv)
        logging.info(f"Route run saved to {run_dir} ({summary.get('summary', {}).get('total_stops', 0)} stops)")
        return run_dir
