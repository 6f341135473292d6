"""FastAPI application wiring for the consult desk service.

- Loads ``.env``, configures logging, Prometheus metrics and rate limiting.
- Builds the service graph (document store, booking client, notifier) on
  startup and closes its HTTP clients on shutdown.
- Mounts the consult request, routing administration and agent routers and a
  liveness probe at ``/api/health``.
"""

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .__version__ import __build_date__, __commit_sha__, __version__
from .app_logging import init_logging
from .core.settings import get_settings
from .routers import agents, requests, routing
from .routers.common import limiter
from .services import Services, build_services

load_dotenv()

logger = logging.getLogger(__name__)


def create_app(services: Services | None = None) -> FastAPI:
    """Build the application.

    When ``services`` is given it is used as-is and left open on shutdown;
    otherwise the services are built from the environment at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = None
        if app.state.services is None:
            owned = app.state.services = build_services(get_settings())
            logger.info("consultdesk %s started", __version__)
        try:
            yield
        finally:
            if owned is not None:
                await owned.aclose()
                app.state.services = None

    app = FastAPI(title="consultdesk", version=__version__, lifespan=lifespan)
    app.state.services = services
    init_logging(app)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)
    app.include_router(requests.router)
    app.include_router(routing.router)
    app.include_router(agents.router)

    @app.get("/api/health")
    async def health() -> dict[str, str | None]:
        return {
            "status": "ok",
            "version": __version__,
            "build_date": __build_date__,
            "commit_sha": __commit_sha__,
        }

    Instrumentator().instrument(app).expose(
        app, include_in_schema=False, endpoint="/api/metrics"
    )
    return app


app = create_app()
