"""Optional test-coverage artifacts shown on the dev dashboard."""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger("chronos.stats.coverage")

REPORT_URL = "/_coverage/"


@dataclass(frozen=True)
class CoverageSummary:
    source: str
    statements: Optional[float]
    branches: Optional[float]
    functions: Optional[float]
    lines: Optional[float]


@dataclass(frozen=True)
class CoverageReport:
    url: str
    dir: str
    available: bool
    embed: bool


def _finite(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if math.isfinite(value) else None


def _ratio(covered: Any, total: Any) -> Optional[float]:
    covered, total = _finite(covered), _finite(total)
    if covered is None or not total:
        return None
    return covered / total * 100.0


def _from_coverage_py(totals: dict, source: str) -> Optional[CoverageSummary]:
    statements = _finite(totals.get("percent_covered"))
    lines = _ratio(totals.get("covered_lines"), totals.get("num_statements"))
    if statements is None or lines is None:
        return None
    return CoverageSummary(
        source=source,
        statements=statements,
        branches=_ratio(totals.get("covered_branches"), totals.get("num_branches")),
        functions=None,
        lines=lines,
    )


def _from_json_summary(total: dict, source: str) -> Optional[CoverageSummary]:
    def pct(key: str) -> Optional[float]:
        entry = total.get(key)
        return _finite(entry.get("pct")) if isinstance(entry, dict) else None

    values = {key: pct(key) for key in ("statements", "branches", "functions", "lines")}
    if any(v is None for v in values.values()):
        return None
    return CoverageSummary(source=source, **values)


def read_coverage_summary(path: str) -> Optional[CoverageSummary]:
    """Parse a coverage.py JSON report (or a json-summary file); None when unusable."""
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.debug(f"Coverage summary unavailable at {path}: {exc}")
        return None

    if not isinstance(payload, dict):
        return None
    if isinstance(payload.get("totals"), dict):
        return _from_coverage_py(payload["totals"], path)
    if isinstance(payload.get("total"), dict):
        return _from_json_summary(payload["total"], path)
    return None


def detect_coverage_report(directory: str, embed: bool = False) -> CoverageReport:
    report_dir = Path(directory).resolve()
    return CoverageReport(
        url=REPORT_URL,
        dir=str(report_dir),
        available=(report_dir / "index.html").is_file(),
        embed=embed,
    )
