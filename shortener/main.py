import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .api.v1 import links
from .api.v1.links import get_service
from .cache import ResolutionCache
from .config import Settings, get_settings
from .crud import SQLClickStore, SQLURLStore
from .database import create_engine, create_sessionmaker, create_tables
from .errors import ShortenerError
from .logging_config import setup_logging
from .observability import PrometheusMiddleware, metrics_endpoint
from .redis import RedisClient
from .services.cleanup import expire_links_forever
from .services.clicks import ClickDispatcher, ClickRecorder
from .services.codegen import CodeGenerator
from .services.enrichment import UserAgentEnricher, extract_click_metadata
from .services.resolution import URLResolutionService

logger = logging.getLogger(__name__)

def build_service(
    settings: Settings,
    sessionmaker: async_sessionmaker[AsyncSession],
    redis_client: RedisClient,
) -> URLResolutionService:
    urls = SQLURLStore(sessionmaker, timeout=settings.STORE_TIMEOUT_SECONDS)
    clicks = SQLClickStore(sessionmaker, timeout=settings.STORE_TIMEOUT_SECONDS)
    recorder = ClickRecorder(
        clicks,
        urls,
        redis_client,
        enricher=UserAgentEnricher(),
        unique_ttl=settings.UNIQUE_CLICK_TTL_SECONDS,
    )
    return URLResolutionService(
        urls=urls,
        cache=ResolutionCache(redis_client, ttl=settings.URL_CACHE_TTL_SECONDS),
        generator=CodeGenerator(urls, length=settings.SHORT_CODE_LENGTH, max_attempts=settings.CODE_MAX_ATTEMPTS),
        dispatcher=ClickDispatcher(recorder),
        cache_ttl=settings.URL_CACHE_TTL_SECONDS,
        cleanup_batch_size=settings.CLEANUP_BATCH_SIZE,
        secret_hash_iterations=settings.SECRET_HASH_ITERATIONS,
    )

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup logic
        engine = create_engine(settings.DATABASE_URL, echo=settings.ENVIRONMENT == "development")
        redis_client = RedisClient(settings.REDIS_URL, timeout=settings.CACHE_TIMEOUT_SECONDS)
        if settings.ENVIRONMENT == "development":
            await create_tables(engine)
        await redis_client.connect()
        service = build_service(settings, create_sessionmaker(engine), redis_client)
        app.state.service = service
        task = asyncio.create_task(expire_links_forever(service, settings.CLEANUP_INTERVAL_SECONDS))
        yield
        # Shutdown logic
        task.cancel()
        await service.close()
        await redis_client.close()
        await engine.dispose()

    app = FastAPI(
        title="URL Shortener",
        description="Short code resolution and click recording",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.base_url = settings.BASE_URL

    app.add_middleware(PrometheusMiddleware)
    app.add_route("/metrics", metrics_endpoint)

    @app.exception_handler(ShortenerError)
    async def shortener_error_handler(request: Request, exc: ShortenerError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    app.include_router(links.router, prefix="/v1")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/{short_code}")
    async def redirect_to_url(
        short_code: str,
        request: Request,
        password: Optional[str] = None,
        service: URLResolutionService = Depends(get_service),
    ):
        target_url = await service.resolve(short_code, password, extract_click_metadata(request))
        return RedirectResponse(url=target_url)

    return app

app = create_app()
