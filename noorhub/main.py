import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .config import settings
from .db import Base, engine, SessionLocal
from .errors import WorkflowError
from .logging import setup_logging, RequestIdMiddleware
from .auth.router import router as auth_router
from .routes.sites import router as sites_router
from .routes.phases import router as phases_router
from .routes.tasks import router as tasks_router
from .routes.employees import router as employees_router, me_router as employee_self_router
from .routes.notifications import router as notifications_router
from .services.bootstrap import ensure_bootstrap_admin
from .services.site_service import seed_templates


logger = structlog.get_logger(__name__)


async def workflow_error_handler(request: Request, exc: WorkflowError):
    if exc.status_code >= 500:
        logger.error("request_failed", kind=exc.kind, detail=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.add_exception_handler(WorkflowError, workflow_error_handler)

    # Routers
    app.include_router(auth_router)
    app.include_router(sites_router)
    app.include_router(phases_router)
    app.include_router(tasks_router)
    app.include_router(employees_router)
    app.include_router(employee_self_router)
    app.include_router(notifications_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.on_event("startup")
    def _startup():
        logger.info("startup", environment=settings.environment)
        if settings.auto_create_db:
            Base.metadata.create_all(bind=engine)
        db = SessionLocal()
        try:
            if settings.seed_phase_templates:
                added = seed_templates(db)
                db.commit()
                if added:
                    logger.info("phase_templates_seeded", count=added)
            ensure_bootstrap_admin(db, settings)
        finally:
            db.close()

    return app


app = create_app()
