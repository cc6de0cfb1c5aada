"""
FastAPI application for the sales assistant.

Startup loads the knowledge documents, opens the database, seeds the demo
catalog when configured and starts the hot lead notification worker. A
broken knowledge file aborts startup.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import Settings, get_settings
from .middleware.metrics import MetricsMiddleware, metrics_endpoint
from .routes import chat, compliance, leads, products
from .services import get_services, initialize_services

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

ROUTERS = (
    (chat.router, "Chat"),
    (products.router, "Products"),
    (compliance.router, "Compliance"),
    (leads.router, "Leads"),
)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    services = await initialize_services(settings)
    services.start_background()
    logger.info(
        f"{settings.brand_name} assistant ready: "
        f"{services.product_engine.product_count} products, "
        f"patterns v{services.knowledge.patterns.version}"
    )
    try:
        yield
    finally:
        logger.info(f"{settings.brand_name} assistant stopping")
        await services.shutdown()


def create_app() -> FastAPI:
    """Build the application with its middleware and routers."""
    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.api_title,
        description=(
            f"{settings.company_name} sales assistant: product search, pricing and "
            "delivery quotes, industry compliance checks and lead scoring."
        ),
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.add_middleware(MetricsMiddleware)

    for router, tag in ROUTERS:
        app.include_router(router, prefix=API_PREFIX, tags=[tag])
    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], tags=["Monitoring"])

    @app.get("/", tags=["Monitoring"])
    async def root():
        return {
            "service": f"{settings.brand_name} Sales Assistant",
            "company": settings.company_name,
            "version": settings.api_version,
            "status": "operational",
            "api": API_PREFIX,
            "docs": app.docs_url,
        }

    @app.get("/health", tags=["Monitoring"])
    async def health():
        services = get_services()
        return {
            "status": "healthy" if services.is_ready else "degraded",
            "services": services.health(),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("api.main:app", host=settings.api_host, port=settings.api_port)
