from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from phoneauth.config import Settings
from phoneauth.error_handling import register_exception_handlers
from phoneauth.logging_config import configure_logging
from phoneauth.middleware import REQUEST_ID_HEADER, RequestLoggingMiddleware
from phoneauth.routers import auth, health, users
from phoneauth.services.ledger import RefreshTokenLedger
from phoneauth.services.otp import OtpManager
from phoneauth.services.sessions import SessionOrchestrator
from phoneauth.services.tokens import TokenIssuer
from phoneauth.services.users import UserDirectory
from phoneauth.store.base import RecordStore
from phoneauth.store.factory import build_store

LOGGER = logging.getLogger(__name__)


def build_orchestrator(
    settings: Settings, store: RecordStore, otp_hasher=None
) -> SessionOrchestrator:
    token_issuer = TokenIssuer(
        settings.jwt_secret,
        access_ttl_seconds=settings.access_token_ttl_seconds,
        refresh_ttl_seconds=settings.refresh_token_ttl_seconds,
        algorithm=settings.jwt_algorithm,
    )
    otp_manager = OtpManager(
        store,
        code_length=settings.otp_length,
        ttl_seconds=settings.otp_ttl_seconds,
        max_attempts=settings.otp_max_attempts,
        debug=settings.otp_debug,
        hasher=otp_hasher,
    )
    return SessionOrchestrator(
        otp_manager,
        token_issuer,
        RefreshTokenLedger(store),
        UserDirectory(store),
        otp_length=settings.otp_length,
        otp_ttl_seconds=settings.otp_ttl_seconds,
        revoke_family_on_reuse=settings.revoke_family_on_reuse,
        refresh_require_record=settings.refresh_require_record,
    )


def create_app(
    settings: Settings | None = None,
    store: RecordStore | None = None,
    otp_hasher=None,
) -> FastAPI:
    """Build the service. Raises ``ConfigError`` on an invalid configuration."""
    settings = (settings or Settings()).validate()
    owns_store = store is None
    if store is None:
        store = build_store(settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        LOGGER.info("Service started backend=%s", settings.store_backend)
        yield
        if owns_store:
            store.close()
        LOGGER.info("Service stopped")

    app = FastAPI(title="Phone Auth Service", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.orchestrator = build_orchestrator(settings, store, otp_hasher)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", REQUEST_ID_HEADER],
    )
    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(auth.router, prefix="/api/v1")
    app.include_router(users.router, prefix="/api/v1")
    return app


def run() -> None:
    import uvicorn

    settings = Settings()
    configure_logging(settings.log_level, settings.log_json)
    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
