from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from acs_auth.core import config
from acs_auth.core.database.engine import AsyncSessionLocal, init_db
from acs_auth.core.exceptions import AuthzError, ConsistencyError
from acs_auth.features.authorization.routes import router as authorization_router
from acs_auth.features.hierarchy.routes import router as hierarchy_router
from acs_auth.features.permissions.catalog import RoleCatalog
from acs_auth.features.permissions.routes import router as permission_router
from acs_auth.features.users.routes import router as user_router
from acs_auth.features.users.dependencies import get_authorization_header
from acs_auth.utils import configure_logging, get_logger


configure_logging()
log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="ACS Authorization",
    description="Hierarchical authorization engine for Union, Conference, Church and Team scoped access",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
limiter = Limiter(key_func=get_authorization_header)
app.state.limiter = limiter


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.acs_auth.features."), timing=timing, tags=tags))


app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("main", app))

if config.ENABLE_DOCS:
    log.warning("Docs enabled")
if config.ALLOW_ORIGIN:
    log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
    origins = [config.ALLOW_ORIGIN]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1]
        if key == "__root__":
            key = "root"
        errors[key] = error["msg"]
    log.info("Request validation error %s", errors)
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({
            "success": False,
            "message": "Validation failed",
            "errorCode": "VALIDATION_ERROR",
            "errors": errors,
        }),
    )


@app.exception_handler(AuthzError)
async def authz_exception_handler(request: Request, exc: AuthzError):
    if isinstance(exc, ConsistencyError):
        log.error(f"Consistency fault on {request.method} {request.url.path}: {exc.message}")
    else:
        log.info(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


@app.on_event("startup")
async def startup():
    """Initialize database and re-assert system roles on application startup."""
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")

    if config.SEED_SYSTEM_ROLES:
        async with AsyncSessionLocal() as session:
            await RoleCatalog(session).create_system_roles()
            await session.commit()


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "ACS Authorization API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "Protected endpoints require Bearer token in Authorization header",
            "protected_endpoints": [
                "/authorization/*", "/hierarchy/*", "/roles/*", "/users/*", "/audit-logs"
            ],
            "public_endpoints": ["/", "/health"]
        },
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Include routers
app.include_router(authorization_router, prefix="/authorization", tags=["authorization"])
app.include_router(hierarchy_router, prefix="/hierarchy", tags=["hierarchy"])
app.include_router(permission_router, tags=["roles"])
app.include_router(user_router, prefix="/users", tags=["users"])
