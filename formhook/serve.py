"""FastAPI application: lifespan-managed pool, routes, error handling.

Lifecycle:
- The connection pool is opened at startup and closed at shutdown
- An injected pool (tests, embedding apps) is used as-is and never closed here
- Any unanticipated exception becomes a structured 500; the service keeps running
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from psycopg_pool import ConnectionPool

from formhook.config import Settings, get_settings
from formhook.store import PersistenceGateway, build_pool
from formhook.webhooks.extraction import FieldExtractor
from formhook.webhooks.handlers import RequestHandler, register_webhook_routes
from formhook.webhooks.validation import Validator

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Set the root log format and level."""
    logging.basicConfig(level=level.upper(), format=_LOG_FORMAT)


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Turn unexpected faults into a structured 500."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        {"error": "server error", "details": str(exc) or type(exc).__name__},
        status_code=500,
    )


def create_app(settings: Settings | None = None, pool: ConnectionPool | None = None) -> FastAPI:
    """Build the webhook application."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = pool is None
        active_pool = pool
        if owned:
            active_pool = build_pool(
                settings.database_url,
                min_size=settings.pool_min_size,
                max_size=settings.pool_max_size,
                timeout=settings.pool_timeout,
                sslmode=settings.db_sslmode,
            )
            # Don't block startup on the database; checkouts wait up to pool_timeout
            active_pool.open(wait=False)
            logger.info("Submission store pool opened (table=%s)", settings.table_name)

        app.state.handler = RequestHandler(
            extractor=FieldExtractor(settings.extraction_rules()),
            validator=Validator(settings.required_fields),
            gateway=PersistenceGateway(active_pool, table=settings.table_name),
        )
        try:
            yield
        finally:
            if owned:
                active_pool.close()
                logger.info("Submission store pool closed")

    app = FastAPI(title="formhook", lifespan=lifespan)

    @app.get("/")
    async def liveness():
        """Liveness probe."""
        return {"message": "ok"}

    register_webhook_routes(app)
    app.add_exception_handler(Exception, _unhandled_error_handler)
    return app


app = create_app()


def main() -> None:
    """Run the service under uvicorn."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run("formhook.serve:app", host=settings.host, port=settings.port)
