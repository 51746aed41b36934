import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from diagnexus.config import Settings, get_settings
from diagnexus.database import Database
from diagnexus.exceptions import DiagnexusError
from diagnexus.logging_config import configure_logging
from diagnexus.routers import auth as auth_router
from diagnexus.routers import health, reports, users
from diagnexus.seed import seed_demo_users
from diagnexus.services.storage_service import StorageService

logger = logging.getLogger("diagnexus.main")


class NoCacheMiddleware(BaseHTTPMiddleware):
    """Middleware to add no-cache headers to prevent browser caching."""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("Cache-Control", "no-store, no-cache, must-revalidate, proxy-revalidate, max-age=0")
        response.headers["Expires"] = "0"
        response.headers["Pragma"] = "no-cache"
        return response


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(DiagnexusError)
    async def diagnexus_error(request: Request, exc: DiagnexusError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _error(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        problems = []
        for err in exc.errors():
            field = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
            problems.append(f"{field}: {err.get('msg')}" if field else err.get("msg", "invalid"))
        return _error(400, "Invalid request: " + "; ".join(problems))

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Internal server error")


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    storage: Optional[StorageService] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup: create tables then seed demo users
        await app.state.db.create_all()
        if settings.seed_demo_data:
            await seed_demo_users(app.state.db)
        yield
        # Shutdown
        await app.state.db.dispose()

    app = FastAPI(
        title="DiagNexus",
        description="Medical report management for patients, doctors and admins",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db = database or Database(settings)
    app.state.storage = storage or StorageService(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Auth-Token", "Content-Disposition", "X-Report-ID"],
    )
    app.add_middleware(NoCacheMiddleware)
    register_exception_handlers(app)

    app.include_router(auth_router.router, prefix="/api/auth", tags=["Auth"])
    app.include_router(users.router, prefix="/api/users", tags=["Users"])
    app.include_router(reports.router, prefix="/api/reports", tags=["Reports"])
    app.include_router(health.router, prefix="/api", tags=["Health"])
    return app


app = create_app()
