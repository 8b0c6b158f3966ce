"""FastAPI web application for bookrelay."""

from __future__ import annotations

import sys
from datetime import datetime, timezone

import httpx
import structlog
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..core.config import ConfigError, Settings
from ..core.covers import PLACEHOLDER_COVER_URL, CoverFinder
from ..core.isbn import normalize_isbn, strip_isbn
from ..core.metadata import MetadataProvider, MetadataProviderError, is_trusted

load_dotenv()

log = structlog.get_logger()

VERSION = "0.1.0"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

NOT_FOUND_MESSAGE = (
    "No reliable record was found for this ISBN. You can enter the details manually."
)


def create_app(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the app. `transport` replaces the network for outbound calls (tests)."""
    if settings is None:
        settings = Settings.from_env()

    app = FastAPI(title="bookrelay", docs_url=None, redoc_url=None)

    def _client() -> httpx.AsyncClient:
        # One client per request; nothing is shared between lookups.
        if transport is not None:
            return httpx.AsyncClient(transport=transport)
        return httpx.AsyncClient()

    @app.middleware("http")
    async def cors_and_security_headers(request: Request, call_next):
        if request.method == "OPTIONS":
            response = Response(status_code=204)
        else:
            try:
                response = await call_next(request)
            except Exception as e:
                log.exception("unhandled_error", path=request.url.path)
                response = JSONResponse(
                    {"found": False, "message": str(e) or "Internal server error."},
                    status_code=500,
                )
        response.headers.update(CORS_HEADERS)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": VERSION,
            "environment": settings.env,
        }

    @app.post("/api/books/ai")
    async def lookup_book(request: Request):
        try:
            body = await request.json()
        except ValueError:
            body = {}
        raw = body.get("isbn") if isinstance(body, dict) else None
        isbn = str(raw or "").strip()

        if not isbn:
            return JSONResponse({"found": False, "message": "ISBN is missing."}, status_code=400)

        log.info("lookup_received", isbn=isbn)
        clean_isbn = strip_isbn(isbn)
        prompt_isbn = normalize_isbn(isbn)

        async with _client() as client:
            try:
                record = await MetadataProvider(client, settings).lookup(prompt_isbn)
            except MetadataProviderError as e:
                return JSONResponse({"found": False, "message": str(e)}, status_code=500)

            if not is_trusted(clean_isbn, record):
                log.warning(
                    "trust_gate_rejected",
                    isbn=prompt_isbn,
                    found=record.found,
                    source_isbn=record.source_isbn,
                )
                return {"found": False, "message": NOT_FOUND_MESSAGE}

            try:
                cover = await CoverFinder(client).find_cover(clean_isbn)
                cover_url = cover.url
            except Exception:
                log.exception("cover_search_error", isbn=clean_isbn)
                cover_url = PLACEHOLDER_COVER_URL

        log.info("lookup_done", isbn=clean_isbn, title=record.title)
        return record.to_response(cover_url)

    return app


def main():
    try:
        settings = Settings.from_env()
    except ConfigError as e:
        log.error("startup_failed", error=str(e))
        sys.exit(1)
    is_dev = settings.env == "dev"
    uvicorn.run(
        "bookrelay.web.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=settings.port,
        reload=is_dev,
    )
