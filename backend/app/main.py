import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.logging import configure_logging
import app.models  # noqa: F401  # force model registration

from app.api.v1.auth import router as auth_router
from app.api.v1.companies import router as companies_router
from app.api.v1.company_instances import router as company_instances_router

logger = logging.getLogger(__name__)


def create_application() -> FastAPI:
    configure_logging()

    app = FastAPI(title="Tenant Lifecycle API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        # GitHub Codespaces / *.app.github.dev domains
        allow_origin_regex=r"^https:\/\/.*\.app\.github\.dev$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def root():
        return {"status": "ok", "service": "tenant-lifecycle", "environment": settings.ENVIRONMENT}

    # Routers
    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(companies_router, prefix="/api/v1")
    app.include_router(company_instances_router, prefix="/api/v1")

    logger.info("application created environment=%s", settings.ENVIRONMENT)
    return app


app = create_application()
