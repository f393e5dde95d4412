"""FastAPI entry point: routers, error rendering and table initialisation."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from quranakh.api.v1 import router as api_v1_router
from quranakh.config import get_settings
from quranakh.db import Base, engine
from quranakh.errors import EngineError
from quranakh.migrations import run_migrations

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Application factory, also used by tests."""

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = FastAPI(title="Quranakh Assignment API", version="0.1.0")

    @app.on_event("startup")
    def init_models() -> None:
        """Create missing tables, then apply pending SQL migrations."""

        Base.metadata.create_all(bind=engine)
        run_migrations(engine)

    @app.exception_handler(EngineError)
    async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "error": exc.message,
                "code": exc.error_code,
                "details": exc.extra,
            },
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={
                "success": False,
                "error": "Request validation failed",
                "code": "VALIDATION_ERROR",
                "details": {"errors": _validation_errors(exc)},
            },
        )

    app.include_router(api_v1_router)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


def _validation_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


app = create_app()
