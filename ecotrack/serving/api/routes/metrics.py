"""
Prometheus Scrape Endpoint

Served to the Prometheus scraper and to in-cluster traffic. Requests that
arrive through a proxy (X-Forwarded-For / X-Real-IP) get a 404 unless
METRICS_PUBLIC is set.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, Response
import structlog

from ecotrack.config import get_settings
from ecotrack.serving.api.dependencies import get_services
from ecotrack.serving.services import AppServices

logger = structlog.get_logger(__name__)
settings = get_settings()
router = APIRouter()


def metrics_access_allowed(request: Request) -> bool:
    if settings.monitoring.metrics_public:
        return True

    headers = request.headers
    user_agent = headers.get("user-agent", "").lower()
    host = headers.get("host", "")

    is_prometheus = "prometheus" in user_agent
    is_localhost = "localhost" in host or "127.0.0.1" in host
    is_internal = "x-forwarded-for" not in headers and "x-real-ip" not in headers
    return is_prometheus or is_localhost or is_internal


@router.get("/metrics", include_in_schema=False)
async def scrape_metrics(
    request: Request,
    services: AppServices = Depends(get_services),
) -> Response:
    if not metrics_access_allowed(request):
        logger.warning("Blocked public metrics request", host=request.headers.get("host"))
        raise HTTPException(status_code=404, detail="Not Found")

    return Response(
        content=services.sink.render(),
        media_type=services.sink.content_type,
        headers={"Cache-Control": "no-cache"},
    )
