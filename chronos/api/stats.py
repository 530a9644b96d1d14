"""Development-only backend stats page."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from chronos.api.deps import get_stats_service
from chronos.stats.service import StatsService

router = APIRouter(tags=["stats"])


@router.get("/stats", response_class=HTMLResponse)
async def stats_page(stats: StatsService = Depends(get_stats_service)):
    """Live metrics and backend health as HTML. 404 outside development."""
    stats.assert_enabled()
    return HTMLResponse(await stats.render_html())
