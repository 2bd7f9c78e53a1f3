from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
from logging.handlers import RotatingFileHandler

from live_insights.config import Settings
from live_insights.errors import InsightsError, ValidationError
from live_insights.models.base import init_db
from live_insights.api.insights import router as insights_router
from live_insights.api.sessions import router as sessions_router


settings = Settings()


def _configure_logging() -> None:
    try:
        log_file = settings.logs_dir / "live_insights.log"
        handler = RotatingFileHandler(str(log_file), maxBytes=5_000_000, backupCount=2)
        formatter = logging.Formatter(
            fmt='%(asctime)s %(levelname)s %(name)s %(message)s'
        )
        handler.setFormatter(formatter)
        root = logging.getLogger()
        if not any(isinstance(h, RotatingFileHandler) for h in root.handlers):
            root.addHandler(handler)
        root.setLevel(logging.INFO)
    except OSError:
        logging.getLogger("live_insights").warning("file logging unavailable at %s", settings.logs_dir)


def create_app(*, initialize: bool = True) -> FastAPI:
    app = FastAPI(title="Live Insights Backend", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    def _startup() -> None:
        if not initialize:
            return
        settings.ensure_dirs()
        _configure_logging()
        init_db()

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(insights_router)
    app.include_router(sessions_router)

    @app.exception_handler(InsightsError)
    async def _insights_error_handler(request: Request, exc: InsightsError):  # type: ignore[override]
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message, "code": exc.code})

    @app.exception_handler(RequestValidationError)
    async def _request_validation_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        fields = sorted({".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()} - {""})
        message = "Invalid request fields: " + ", ".join(fields) if fields else ValidationError.default_message
        return JSONResponse(status_code=400, content={"error": message, "code": ValidationError.code})

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):  # type: ignore[override]
        logging.getLogger("live_insights").exception("Unhandled exception")
        return JSONResponse(status_code=500, content={"error": "Internal error", "code": "internal_error"})

    return app


app = create_app()


if __name__ == "__main__":
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="Live Insights Backend Server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload (dev only)")

    args = parser.parse_args()

    uvicorn.run(
        "live_insights.main:app" if args.reload else app,
        host=args.host,
        port=args.port,
        reload=args.reload
    )
