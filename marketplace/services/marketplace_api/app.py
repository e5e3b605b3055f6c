# marketplace/services/marketplace_api/app.py
"""
FastAPI приложение маркетплейса.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from marketplace.common.constants import TypeMsg
from marketplace.common.exceptions import MarketplaceError
from marketplace.common.logger import log_error, log_info, log_warning
from marketplace.config import settings
from marketplace.infra.database import get_db
from marketplace.infra.redis_client import get_redis
from marketplace.services.marketplace_api.routes import auth_router, providers_router
from marketplace.services.marketplace_api.schemas import ErrorResponse, HealthStatus


ERROR_STATUS_CODES: dict[str, int] = {
    "invalid_input": status.HTTP_400_BAD_REQUEST,
    "otp_not_found": status.HTTP_400_BAD_REQUEST,
    "otp_expired": status.HTTP_400_BAD_REQUEST,
    "otp_mismatch": status.HTTP_401_UNAUTHORIZED,
    "account_not_found": status.HTTP_401_UNAUTHORIZED,
    "invalid_credential": status.HTTP_401_UNAUTHORIZED,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "provider_not_found": status.HTTP_404_NOT_FOUND,
    "conflict": status.HTTP_409_CONFLICT,
    "unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
}


# =============================================================================
# LIFESPAN
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Жизненный цикл приложения."""
    await log_info("Marketplace API запускается...", type_msg=TypeMsg.INFO)

    from marketplace.services.marketplace_api.dependencies import close_dependencies, init_dependencies
    await init_dependencies()

    yield

    await close_dependencies()
    await log_info("Marketplace API остановлен", type_msg=TypeMsg.INFO)


# =============================================================================
# ОБРАБОТКА ОШИБОК
# =============================================================================

def _error_response(status_code: int, kind: str, message: str) -> JSONResponse:
    body = ErrorResponse(message=message, error=kind)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def register_error_handlers(app: FastAPI) -> None:
    """Переводит доменные ошибки в HTTP-ответы единого формата."""

    @app.exception_handler(MarketplaceError)
    async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
        status_code = ERROR_STATUS_CODES.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
        if status_code >= 500:
            await log_warning(f"{request.method} {request.url.path}: {exc.kind} ({exc.message})")
        return _error_response(status_code, exc.kind, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = ", ".join(
            ".".join(str(part) for part in err.get("loc", ()) if part != "body")
            for err in exc.errors()
        )
        message = f"Invalid request: {fields}" if fields else "Invalid request"
        return _error_response(status.HTTP_400_BAD_REQUEST, "invalid_input", message)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        await log_error(f"{request.method} {request.url.path}: необработанная ошибка: {exc}", exc_info=True)
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "internal",
            "The server encountered an unexpected error.",
        )


# =============================================================================
# ПРИЛОЖЕНИЕ
# =============================================================================

def create_app(with_lifespan: bool = True) -> FastAPI:
    """
    Собирает приложение.

    Args:
        with_lifespan: Подключать PostgreSQL/Redis при старте
    """
    app = FastAPI(
        title="ServiGroww Marketplace API",
        description="Вход по одноразовому коду и поиск исполнителей рядом",
        version=settings.system.VERSION,
        lifespan=lifespan if with_lifespan else None,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    app.include_router(auth_router, prefix=settings.api.API_PREFIX)
    app.include_router(providers_router, prefix=settings.api.API_PREFIX)

    @app.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check() -> HealthStatus:
        """Проверка здоровья сервиса."""
        from marketplace.services.marketplace_api.dependencies import uses_redis

        timeout = settings.timeouts.HEALTH_CHECK_TIMEOUT
        deps: dict[str, str] = {}

        deps["postgres"] = await _health_status(get_db().health_check(), timeout) if get_db().is_connected else "unhealthy"
        if uses_redis():
            deps["redis"] = await _health_status(get_redis().health_check(), timeout) if get_redis().is_connected else "unhealthy"

        overall = "healthy" if all(v == "healthy" for v in deps.values()) else "degraded"
        return HealthStatus(
            service="marketplace_api",
            status=overall,
            version=settings.system.VERSION,
            dependencies=deps,
        )

    return app


async def _health_status(check, timeout: float) -> str:
    try:
        healthy = await asyncio.wait_for(check, timeout=timeout)
    except asyncio.TimeoutError:
        return "unhealthy"
    return "healthy" if healthy else "unhealthy"


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "marketplace.services.marketplace_api.app:app",
        host=settings.api.API_HOST,
        port=settings.api.API_PORT,
    )
