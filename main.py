"""
PromptOp Gateway

Prompt testing and enhancement service in front of external LLM vendors.

Features:
- Prompt tests against OpenAI, Anthropic, Google, DeepSeek, Mistral, Meta and Cohere
- Plan-gated model access (free / pro / team / enterprise)
- Monthly prompt and enhancement quotas with billing-cycle rollover
- Prompt enhancement with a provider fallback chain and offline rewrite

Run with:
    uvicorn main:app --reload

Or:
    python main.py
"""

import os
import time
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("promptop")

from promptop import __version__
from promptop.api.prompts import router as prompts_router
from promptop.core.aliases import AliasResolver
from promptop.core.config import Config, StorageBackend
from promptop.core.dispatcher import RequestDispatcher
from promptop.core.enhancer import PromptEnhancer
from promptop.core.gateway import PromptGateway
from promptop.core.providers import build_provider_clients, create_http_client
from promptop.core.quota import QuotaAccessor
from promptop.core.registry import ModelRegistry
from promptop.core.storage import (
    AccountStore,
    CatalogStore,
    InMemoryAccountStore,
    InMemoryCatalogStore,
)


# =============================================================================
# SERVICE WIRING
# =============================================================================

def build_stores(config: Config):
    """Account and catalog stores for the configured backend."""
    if config.storage_backend == StorageBackend.FIRESTORE:
        from promptop.core.database import FirestoreAccountStore, FirestoreCatalogStore

        project = config.google_cloud_project or None
        return FirestoreAccountStore(project), FirestoreCatalogStore(project)

    logger.warning("Using in-memory account store; data is lost on restart")
    return InMemoryAccountStore(), InMemoryCatalogStore()


def build_gateway(
    config: Config,
    http,
    accounts: AccountStore,
    catalog: Optional[CatalogStore] = None,
) -> PromptGateway:
    """Construct the gateway and everything it depends on."""
    registry = ModelRegistry()
    clients = build_provider_clients(config, http)
    dispatcher = RequestDispatcher(registry, clients)

    return PromptGateway(
        registry=registry,
        resolver=AliasResolver(catalog),
        quota=QuotaAccessor(accounts),
        dispatcher=dispatcher,
        enhancer=PromptEnhancer(dispatcher),
        run_store=accounts,
    )


# =============================================================================
# APPLICATION LIFESPAN
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    config: Config = app.state.config

    logger.info("=" * 60)
    logger.info(f"🚀 {config.app_name} Starting")
    logger.info(f"   Environment: {config.env.value}")
    logger.info(f"   Storage: {config.storage_backend.value}")
    logger.info("=" * 60)

    http = None
    if app.state.gateway is None:
        http = create_http_client()
        accounts, catalog = build_stores(config)
        app.state.accounts = accounts
        app.state.gateway = build_gateway(config, http, accounts, catalog)
        logger.info(f"✓ Gateway ready ({len(app.state.gateway.registry)} models)")

    yield

    # Cleanup
    logger.info("Shutting down...")
    if http is not None:
        await http.aclose()


# =============================================================================
# CREATE APPLICATION
# =============================================================================

def create_app(
    config: Optional[Config] = None,
    gateway: Optional[PromptGateway] = None,
    accounts: Optional[AccountStore] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Passing a prebuilt gateway (and its account store) skips the startup
    wiring; tests use this.
    """
    config = config or Config.from_env()

    app = FastAPI(
        title=config.app_name,
        description="Prompt testing and enhancement across LLM vendors.",
        version=__version__,
        docs_url="/docs" if config.debug else None,
        redoc_url="/redoc" if config.debug else None,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.gateway = gateway
    app.state.accounts = accounts

    # CORS
    cors_origins = ["*"] if config.debug else config.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests."""
        start_time = time.time()

        response = await call_next(request)

        duration = time.time() - start_time
        logger.info(
            f"{request.method} {request.url.path} "
            f"- {response.status_code} ({duration*1000:.0f}ms)"
        )
        return response

    app.include_router(prompts_router, prefix="/api")

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        gw: Optional[PromptGateway] = app.state.gateway
        providers = {}
        provider_health = {}
        if gw is not None:
            providers = {
                p.value: gw.dispatcher.is_configured(p)
                for p in sorted(gw.registry.providers(), key=lambda p: p.value)
            }
            provider_health = await gw.dispatcher.router.snapshot()
        return {
            "status": "healthy",
            "version": __version__,
            "environment": config.env.value,
            "providers": providers,
            "provider_health": provider_health,
        }

    return app


app = create_app()


# =============================================================================
# RUN
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=app.state.config.debug,
        log_level="info",
    )
