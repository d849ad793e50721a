from __future__ import annotations

import os

from fastapi import FastAPI

from launchcurve.api.errors import ApiError, api_error_handler, curve_error_handler
from launchcurve.api.routes import router
from launchcurve.api.security import NonceBook
from launchcurve.api.structured_logging import RequestLogMiddleware, configure_structured_logging
from launchcurve.runtime.boot import Market
from launchcurve.runtime.boot import build_market as _build_market
from launchcurve.runtime.errors import CurveError


def build_market() -> Market:
    """Build the market for API runtime.

    This wrapper exists so tests can monkeypatch `launchcurve.api.app.build_market`
    without reaching into runtime modules.
    """
    return _build_market()


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load config and attach app.state.market
      - False: keep lightweight for unit tests / import-time validation
    """
    configure_structured_logging()
    mode = os.environ.get("LAUNCHCURVE_MODE", "prod").strip().lower()

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(title="launchcurve market API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="launchcurve market API")

    app.state.market = build_market() if boot_runtime else None
    app.state.nonces = NonceBook()

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(CurveError, curve_error_handler)
    app.add_middleware(RequestLogMiddleware)

    app.include_router(router)
    return app
