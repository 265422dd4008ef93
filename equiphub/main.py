import os
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
import structlog

from .config import settings
from .db import Base, engine
from .logging import setup_logging, RequestIdMiddleware
from .auth.router import router as auth_router
from .routes.assignments import router as assignments_router
from .routes.equipment import router as equipment_router
from .services.errors import AssignmentError

logger = structlog.get_logger(__name__)


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    @app.exception_handler(AssignmentError)
    async def _assignment_error(request: Request, exc: AssignmentError):
        logger.info("assignment_error", kind=exc.kind, reason=exc.reason, path=request.url.path)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})

    # Routers
    app.include_router(auth_router)
    app.include_router(equipment_router)
    app.include_router(assignments_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/healthz")
    def healthz():
        return {"status": "ok", "environment": settings.environment}

    @app.on_event("startup")
    def _startup():
        logger.info("startup", app=settings.app_name, environment=settings.environment)
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if settings.auto_create_db:
            Base.metadata.create_all(bind=engine)
            logger.info("startup_tables_verified", tables=len(Base.metadata.tables))

    return app


app = create_app()
