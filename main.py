"""
Main API module for Clicktrack Platform.

Responsibilities:
    - Resolve short codes (GET /{short_code}) and answer with a redirect,
      a cloaking interstitial, or a 404/410 page
    - Record each successful resolution as a click event, off the response path
    - Expose the management surface for campaigns, links, domains and analytics

Architecture:
    - App Factory pattern (create_app) for test isolation and DI.
    - CSV-file storage by default; memory and Postgres via the storage factory.
    - Click accounting runs as a FastAPI background task: it starts after the
      response is produced and its failures are logged, never returned.

Outcome -> response:
    NOT_FOUND        -> 404 page
    INACTIVE/EXPIRED -> 410 page
    RESOLVED_DIRECT  -> 302 to the destination
    RESOLVED_CLOAKED -> 200 interstitial with a delayed client-side redirect
    StorageError     -> 500 page
"""

import logging
from dataclasses import asdict
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from pydantic import BaseModel

from clicktrack_platform.analytics.analytics import Analytics, normalize_range
from clicktrack_platform.analytics.classify import client_ip
from clicktrack_platform.analytics.recorder import ClickRecorder, RequestContext
from clicktrack_platform.cloak.codec import CloakCodec
from clicktrack_platform.config import settings
from clicktrack_platform.errors import NotFoundError, StorageError
from clicktrack_platform.manager.link_manager import LinkManager
from clicktrack_platform.models import LinkRecord, utcnow
from clicktrack_platform.resolver.resolver import Outcome, Resolver
from clicktrack_platform.storage.base import BaseStorage
from clicktrack_platform.storage.storage_factory import get_storage
from clicktrack_platform.web.pages import error_page, interstitial_page


class CampaignRequest(BaseModel):
    """Request payload for creating a campaign."""
    name: str
    description: str = ""


class LinkRequest(BaseModel):
    """Request payload for creating a tracked link."""
    campaign_id: str
    original_url: str
    cloaked: bool = False
    domain: str = ""
    expires_at: Optional[datetime] = None


class DomainRequest(BaseModel):
    """Request payload for registering a custom domain."""
    domain: str
    ssl_enabled: bool = False


def create_app(
    storage: Optional[BaseStorage] = None,
    clock: Callable[[], datetime] = utcnow,
) -> FastAPI:
    """
    Factory function to build and configure a new FastAPI app instance.

    Args:
        storage (Optional[BaseStorage]): Record store; chosen by the storage
            factory from the environment when None.
        clock: Source of the current instant (injected by tests).

    Returns:
        FastAPI: A fully configured application with its own storage,
                 resolver, recorder, manager and analytics.
    """
    app = FastAPI(
        title="Clicktrack Platform",
        description="Email-campaign tracking links with click accounting and URL cloaking",
        docs_url="/docs",
    )
    log = logging.getLogger("clicktrack")

    # basic console logging
    if not logging.getLogger().handlers:
        logging.basicConfig(level=settings.LOG_LEVEL)

    # ----------------------------------------------------------------
    # Per-app instances (isolated for tests, swappable for production)
    # ----------------------------------------------------------------
    if storage is None:
        storage = get_storage()
    try:
        storage.ensure_collections()
    except StorageError:
        log.exception("Could not initialize record collections; reads will return empty")

    if settings.using_default_secret:
        log.warning(
            "CLICKTRACK_CLOAK_SECRET is not set; using the development default. "
            "Set it in production."
        )
    codec = CloakCodec(settings.CLOAK_SECRET)
    resolver = Resolver(storage, codec, clock=clock)
    recorder = ClickRecorder(storage, attempts=settings.RECORDER_ATTEMPTS)
    manager = LinkManager(storage, codec, clock=clock)
    analytics = Analytics(storage, clock=clock)

    app.state.storage = storage
    app.state.recorder = recorder
    app.state.manager = manager
    app.state.analytics = analytics
    log.info("Clicktrack storage backend: %s", type(storage).__name__)

    # ----------------------------------------------------------------
    # Error handlers
    # ----------------------------------------------------------------
    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        log.error("Storage failure on %s: %s", request.url.path, exc)
        return JSONResponse({"detail": "Storage failure"}, status_code=500)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse({"detail": str(exc)}, status_code=404)

    # ----------------------------------------------------------------
    # Utilities
    # ----------------------------------------------------------------
    def _base_url(request: Request) -> str:
        return settings.PUBLIC_BASE_URL or str(request.base_url).rstrip("/")

    def _link_out(link: LinkRecord, request: Request) -> Dict[str, Any]:
        data = asdict(link)
        data.pop("encrypted_destination", None)
        data["short_url"] = manager.short_url(link, _base_url(request))
        return data

    def _request_context(request: Request) -> RequestContext:
        peer = request.client.host if request.client else ""
        return RequestContext(
            ip_address=client_ip(request.headers.get("x-forwarded-for"), peer),
            user_agent=request.headers.get("user-agent", ""),
            referrer=request.headers.get("referer", ""),
            arrived_at=clock(),
        )

    # Health check
    @app.get("/health")
    def health():
        return {"status": "ok"}

    # ----------------------------------------------------------------
    # Management: stats & campaigns
    # ----------------------------------------------------------------
    @app.get("/api/stats")
    def stats() -> Dict[str, int]:
        return analytics.stats()

    @app.get("/api/campaigns")
    def list_campaigns():
        return [asdict(c) for c in manager.list_campaigns()]

    @app.post("/api/campaigns")
    def create_campaign(req: CampaignRequest):
        try:
            return asdict(manager.create_campaign(req.name, req.description))
        except ValueError as ve:
            raise HTTPException(status_code=400, detail=str(ve))

    @app.post("/api/campaigns/{campaign_id}/toggle")
    def toggle_campaign(campaign_id: str):
        return asdict(manager.toggle_campaign(campaign_id))

    # ----------------------------------------------------------------
    # Management: links
    # ----------------------------------------------------------------
    @app.get("/api/links")
    def list_links(request: Request, campaign_id: Optional[str] = None):
        return [_link_out(l, request) for l in manager.list_links(campaign_id)]

    @app.post("/api/links")
    def create_link(req: LinkRequest, request: Request):
        """
        Create a tracked link.

        Raises:
            HTTPException: 400 on invalid URL/domain, 404 if the campaign is unknown.
        """
        try:
            link = manager.create_link(
                req.campaign_id, req.original_url,
                cloaked=req.cloaked, domain=req.domain, expires_at=req.expires_at,
            )
        except ValueError as ve:
            raise HTTPException(status_code=400, detail=str(ve))
        return _link_out(link, request)

    @app.post("/api/links/{link_id}/toggle")
    def toggle_link(link_id: str, request: Request):
        return _link_out(manager.toggle_link(link_id), request)

    @app.delete("/api/links/{link_id}")
    def delete_link(link_id: str):
        manager.delete_link(link_id)
        return {"success": True}

    # ----------------------------------------------------------------
    # Management: domains
    # ----------------------------------------------------------------
    @app.get("/api/domains")
    def list_domains():
        return [asdict(d) for d in manager.list_domains()]

    @app.post("/api/domains")
    def add_domain(req: DomainRequest):
        try:
            return asdict(manager.add_domain(req.domain, ssl_enabled=req.ssl_enabled))
        except ValueError as ve:
            raise HTTPException(status_code=400, detail=str(ve))

    @app.post("/api/domains/{domain}/verify")
    def verify_domain(domain: str):
        return asdict(manager.verify_domain(domain))

    @app.delete("/api/domains/{domain}")
    def delete_domain(domain: str):
        manager.delete_domain(domain)
        return {"success": True}

    # ----------------------------------------------------------------
    # Analytics
    # ----------------------------------------------------------------
    @app.get("/api/analytics")
    def analytics_events(range_key: str = Query("7d", alias="range", description="1d, 7d, 30d or 90d")):
        return [asdict(e) for e in analytics.events_in_range(range_key)]

    @app.get("/api/analytics/export")
    def analytics_export(
        range_key: str = Query("7d", alias="range", description="1d, 7d, 30d or 90d"),
    ) -> Response:
        key = normalize_range(range_key)
        body = analytics.export_csv(analytics.events_in_range(key))
        return Response(
            content=body,
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename=analytics-{key}.csv"},
        )

    @app.get("/api/analytics/summary")
    def analytics_summary(
        range_key: Optional[str] = Query(None, alias="range", description="Optional window"),
    ):
        return analytics.summary(range_key)

    @app.post("/api/analytics/reconcile")
    def analytics_reconcile():
        """Rebuild stored click counters from the click event log."""
        return analytics.reconcile_counts()

    # ----------------------------------------------------------------
    # Redirect (registered last: it matches any single path segment)
    # ----------------------------------------------------------------
    @app.get("/{short_code}", response_class=HTMLResponse)
    def resolve_short_code(
        short_code: str, request: Request, background_tasks: BackgroundTasks
    ) -> Response:
        """
        Resolve a short code and answer per the outcome table above.

        A resolved link schedules click accounting as a background task; the
        response never waits for it and never reflects its failures.
        """
        try:
            resolution = resolver.resolve(short_code)
        except StorageError:
            log.exception("Resolution of %r failed", short_code)
            return HTMLResponse(error_page("error"), status_code=500)

        if resolution.outcome is Outcome.NOT_FOUND:
            return HTMLResponse(error_page("not_found"), status_code=404)
        if resolution.is_gone:
            return HTMLResponse(error_page(resolution.outcome.value), status_code=410)

        background_tasks.add_task(recorder.record, resolution.link, _request_context(request))

        if resolution.outcome is Outcome.RESOLVED_CLOAKED:
            return HTMLResponse(
                interstitial_page(resolution.destination, settings.INTERSTITIAL_DELAY_MS),
                status_code=200,
                headers={"Referrer-Policy": "no-referrer", "X-Robots-Tag": "noindex, nofollow"},
            )
        return RedirectResponse(url=resolution.destination, status_code=302)

    return app


# `uvicorn main:app` and `from main import app` continue to work.
app = create_app()
