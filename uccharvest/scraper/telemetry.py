"""Per-batch search telemetry."""

from __future__ import annotations

import json
import time
import uuid
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import config
from .models import ScraperResult
from .utils import get_current_log_path


def _ts() -> str:
    return time.strftime("%Y%m%d_%H%M%S")


def result_outcome(result: ScraperResult) -> str:
    if not result.success:
        return "failed"
    if not result.filings:
        return "empty"
    if result.parsing_errors:
        return "partial"
    return "ok"


class SearchTelemetry:
    """Collect one entry per search and write a JSON summary for the batch."""

    def __init__(self, mode: str = "cli", runs_dir: Optional[Path] = None) -> None:
        self.run_id = f"{_ts()}_{uuid.uuid4().hex[:8]}"
        self.mode = mode
        self.runs_dir = Path(runs_dir or config.RUNS_DIR)
        self.started_at = time.time()
        self.entries: List[Dict[str, Any]] = []
        self.summary: Dict[str, int] = defaultdict(int)

    def add(self, result: ScraperResult, state: str, query: str) -> None:
        outcome = result_outcome(result)
        self.entries.append(
            {
                "state": state,
                "query": query,
                "outcome": outcome,
                "filings": len(result.filings),
                "retry_count": result.retry_count,
                "error": result.error,
                "parsing_errors": len(result.parsing_errors or []),
                "search_url": result.search_url,
            }
        )
        self.summary[f"count_{outcome}"] += 1
        self.summary["filings_total"] += len(result.filings)

    def finalize(self, extra: Optional[Dict[str, Any]] = None) -> Path:
        payload = {
            "run_id": self.run_id,
            "mode": self.mode,
            "started_at": self.started_at,
            "ended_at": time.time(),
            "log_file": str(get_current_log_path()),
            "summary": dict(self.summary),
            "entries": self.entries,
            **(extra or {}),
        }
        self.runs_dir.mkdir(parents=True, exist_ok=True)
        path = self.runs_dir / f"run_{self.run_id}.json"
        with path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2)
        return path


__all__ = ["SearchTelemetry", "result_outcome"]
