"""HTML rendering for the backend stats page. Pure: no I/O."""

from __future__ import annotations

from dataclasses import dataclass
from html import escape
from typing import Optional

from chronos.observability.metrics import MetricsSnapshot
from chronos.stats.collections import CollectionStats
from chronos.stats.coverage import CoverageReport, CoverageSummary
from chronos.stats.health import HealthDescriptor
from chronos.utils.time import iso_from_ms

DASH = "—"


@dataclass(frozen=True)
class DashboardData:
    now_ms: float
    started_at_ms: float
    metrics: MetricsSnapshot
    mongo: HealthDescriptor
    mongo_db_name: Optional[str]
    redis: HealthDescriptor
    collections: Optional[CollectionStats] = None
    coverage: Optional[CoverageSummary] = None
    coverage_report: Optional[CoverageReport] = None


# ── Formatting ────────────────────────────────────────────────

def fmt_ms(value: Optional[float]) -> str:
    return DASH if value is None else f"{value:.1f} ms"


def fmt_int(value: Optional[int]) -> str:
    return DASH if value is None else f"{value:,}"


def fmt_dt(value_ms: Optional[float]) -> str:
    return DASH if value_ms is None else iso_from_ms(value_ms)


def fmt_pct(value: Optional[float]) -> str:
    if value is None:
        return DASH
    return f"{value:.2f}".rstrip("0").rstrip(".") + "%"


def _rows(items: list[tuple[str, str]]) -> str:
    return "".join(
        f'<tr><th class="k">{escape(k)}</th><td class="v">{escape(v)}</td></tr>'
        for k, v in items
    )


# ── Sections ──────────────────────────────────────────────────

def _requests_card(m: MetricsSnapshot) -> str:
    lat = m.latency
    return f"""<div class="card">
        <h2>Requests</h2>
        <table class="table">
          <tbody>
            {_rows([
                ("Total", fmt_int(m.total_requests)),
                ("In-flight", fmt_int(m.in_flight)),
                ("RPS (last 1m)", f"{m.rps_1m:.2f}"),
                ("Last request at", fmt_dt(m.last_request_at)),
                ("Avg latency", fmt_ms(lat.avg_ms)),
                ("P50 latency", fmt_ms(lat.p50_ms)),
                ("P95 latency", fmt_ms(lat.p95_ms)),
                ("Min latency", fmt_ms(lat.min_ms)),
                ("Max latency", fmt_ms(lat.max_ms)),
                ("Latency samples", fmt_int(lat.samples)),
            ])}
          </tbody>
        </table>
      </div>"""


def _mongo_card(data: DashboardData) -> str:
    total = data.collections.total_estimated_docs if data.collections else None
    return f"""<div class="card">
        <h2>MongoDB</h2>
        <table class="table">
          <tbody>
            {_rows([
                ("Connected", "yes" if data.mongo.connected else "no"),
                ("State", data.mongo.state),
                ("DB name", data.mongo_db_name or DASH),
                ("Ping", fmt_ms(data.mongo.ping_ms)),
                ("Total estimated docs", fmt_int(total)),
            ])}
          </tbody>
        </table>
      </div>"""


def _redis_card(redis: HealthDescriptor) -> str:
    return f"""<div class="card">
        <h2>Redis</h2>
        <table class="table">
          <tbody>
            {_rows([
                ("Connected", "yes" if redis.connected else "no"),
                ("Status", redis.state),
                ("Ping", fmt_ms(redis.ping_ms)),
            ])}
          </tbody>
        </table>
      </div>"""


def _collections_card(stats: Optional[CollectionStats]) -> str:
    if stats is None or not stats.collections:
        body = '<div class="muted">Disabled or not available.</div>'
    else:
        rows = "".join(
            f"<tr><td>{escape(c.name)}</td><td>{escape(fmt_int(c.estimated_docs))}</td></tr>"
            for c in stats.collections
        )
        body = f"""<table class="table">
            <thead><tr><th>Collection</th><th>Estimated docs</th></tr></thead>
            <tbody>{rows}</tbody>
          </table>"""
    return f"""<div class="card wide">
        <h2>Mongo collections</h2>
        {body}
      </div>"""


def _coverage_card(coverage: Optional[CoverageSummary]) -> str:
    if coverage is None:
        return ""
    return f"""<div class="card wide">
        <h2>Test coverage</h2>
        <table class="table">
          <tbody>
            {_rows([
                ("Statements", fmt_pct(coverage.statements)),
                ("Branches", fmt_pct(coverage.branches)),
                ("Functions", fmt_pct(coverage.functions)),
                ("Lines", fmt_pct(coverage.lines)),
            ])}
          </tbody>
        </table>
        <div class="muted">source: <code>{escape(coverage.source)}</code></div>
      </div>"""


def _coverage_report_card(report: Optional[CoverageReport]) -> str:
    if report is None:
        return ""
    url = escape(report.url)
    if report.available:
        link = f'<div><a href="{url}" target="_blank" rel="noopener noreferrer">{url}</a></div>'
    else:
        link = (
            '<div class="muted">Not found. Run <code>pytest --cov --cov-report=html</code> '
            f"to generate <code>{escape(report.dir)}</code>.</div>"
        )
    frame = ""
    if report.available and report.embed:
        frame = f'<iframe src="{url}" class="report"></iframe>'
    return f"""<div class="card wide">
        <h2>Coverage report (HTML)</h2>
        {link}
        {frame}
      </div>"""


_STYLE = """
      :root { color-scheme: light dark; }
      body { font-family: ui-sans-serif, system-ui, -apple-system, Segoe UI, Roboto, Helvetica, Arial; margin: 24px; line-height: 1.4; }
      h1 { margin: 0 0 4px 0; font-size: 20px; }
      .muted { opacity: .75; }
      .grid { display: grid; grid-template-columns: repeat(auto-fit, minmax(320px, 1fr)); gap: 16px; margin-top: 16px; }
      .card { border: 1px solid rgba(127,127,127,.3); border-radius: 12px; padding: 14px 14px 10px; }
      .card.wide { grid-column: 1 / -1; }
      .card h2 { margin: 0 0 10px 0; font-size: 14px; letter-spacing: .02em; text-transform: uppercase; opacity: .8; }
      .table { width: 100%; border-collapse: collapse; }
      .table th, .table td { text-align: left; padding: 6px 8px; border-bottom: 1px solid rgba(127,127,127,.2); vertical-align: top; }
      .table th.k { width: 45%; }
      iframe.report { width: 100%; height: 820px; margin-top: 10px; border: 1px solid rgba(127,127,127,.3); border-radius: 10px; }
      code { font-family: ui-monospace, SFMono-Regular, Menlo, Monaco, Consolas, "Liberation Mono", monospace; }
"""


def render_dashboard(data: DashboardData) -> str:
    """Render the full stats page for one request."""
    connected_dbs = sum(1 for d in (data.mongo, data.redis) if d.connected)

    return f"""<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>Backend stats</title>
    <style>{_STYLE}    </style>
  </head>
  <body>
    <h1>Backend stats</h1>
    <div class="muted">
      now: <code>{escape(fmt_dt(data.now_ms))}</code> &bull;
      started: <code>{escape(fmt_dt(data.started_at_ms))}</code> &bull;
      connected DBs: <code>{connected_dbs}</code>
    </div>

    <div class="grid">
      {_requests_card(data.metrics)}
      {_mongo_card(data)}
      {_redis_card(data.redis)}
      {_collections_card(data.collections)}
      {_coverage_card(data.coverage)}
      {_coverage_report_card(data.coverage_report)}
    </div>
  </body>
</html>
"""
