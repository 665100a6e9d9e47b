"""FastAPI application factory for workagent.

Usage::

    from workagent.api.app import create_app

    app = create_app(manager=manager, config=config)

Used by the production bootstrap (``workagent.app``) and by unit tests.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from workagent.api.routes import router
from workagent.api.schemas import ErrorResponse

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"


def create_app(manager: Any, config: Any = None) -> FastAPI:
    """Create and configure the workagent FastAPI application.

    Args:
        manager: ControllerManager (anything with ``status()`` and ``synced()``).
        config:  WorkAgentConfig.  Used for the cluster namespace shown in status.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from workagent import __version__

    cluster_namespace = ""
    if config is not None:
        cluster_namespace = config.cluster.cluster_namespace

    app = FastAPI(
        title="workagent",
        summary="Work distribution agent health and status API",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
        openapi_url="/api/v1/openapi.json",
    )

    app.state.manager = manager
    app.state.config = config
    app.state.cluster_namespace = cluster_namespace

    app.include_router(router, prefix=_API_PREFIX)
    app.mount("/metrics", make_asgi_app())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = exc.errors()
        detail = str(errors[0].get("msg", "")) if errors else ""
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error="INVALID_REQUEST", detail=detail).model_dump(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                detail="An unexpected error occurred.",
            ).model_dump(),
        )

    return app
