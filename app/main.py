import logging
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.api import account, sessions
from app.config import settings
from app.services.auth.cookies import SessionCookie
from app.services.auth.errors import AuthError
from app.services.auth.metadata import GeoIPLookup, MetadataResolver, NullGeoLookup
from app.services.session_store import RedisKVStore, SessionStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the shared session collaborators once and hand them to routes via app.state."""
    if not settings.session_secret_key:
        logger.warning("SESSION_SECRET_KEY is empty; session cookies are signed with an empty key")

    kv = RedisKVStore.from_url(settings.redis_url)
    geo_lookup = (
        GeoIPLookup(settings.geoip_database_path)
        if settings.geoip_database_path
        else NullGeoLookup()
    )

    app.state.session_store = SessionStore(
        kv,
        key_prefix=settings.session_key_prefix,
        index_prefix=settings.session_index_prefix,
        ttl=settings.session_max_age,
    )
    app.state.metadata_resolver = MetadataResolver(geo_lookup, dev_mode=settings.is_dev)
    app.state.session_cookie = SessionCookie(
        settings.session_secret_key,
        name=settings.session_cookie_name,
        max_age=settings.session_max_age,
        secure=settings.session_cookie_secure,
        httponly=settings.session_cookie_httponly,
        domain=settings.session_cookie_domain,
    )

    yield

    await kv.close()
    if isinstance(geo_lookup, GeoIPLookup):
        geo_lookup.close()


app = FastAPI(title="Session Service", version="0.1.0", lifespan=lifespan)


# =============================================================================
# CSRF Origin Validation Middleware
# =============================================================================


class CSRFOriginMiddleware(BaseHTTPMiddleware):
    """
    Validate Origin/Referer headers on state-changing requests to prevent CSRF.

    - POST, PUT, PATCH, DELETE must come from this host or the allowed origin
    - GET, HEAD, OPTIONS are always allowed (safe methods)
    - Health check endpoints are exempt
    """

    SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}
    EXEMPT_PATHS = {"/health"}

    def _trusted_hosts(self, request: Request) -> set[str]:
        hosts = {request.headers.get("host", "")}
        allowed = urlparse(settings.allowed_origin).netloc
        if allowed:
            hosts.add(allowed)
        return hosts

    def _reject(self, reason: str, value: str | None, request: Request) -> JSONResponse:
        logger.warning(
            "CSRF %s: value=%s, method=%s, path=%s",
            reason,
            value,
            request.method,
            request.url.path,
        )
        return JSONResponse(status_code=403, content={"detail": "Origin validation failed"})

    async def dispatch(self, request: Request, call_next):
        if request.method in self.SAFE_METHODS:
            return await call_next(request)

        if request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)

        # Origin first, Referer as fallback
        for header in ("origin", "referer"):
            value = request.headers.get(header)
            if value:
                if urlparse(value).netloc not in self._trusted_hosts(request):
                    return self._reject(f"{header} mismatch", value, request)
                return await call_next(request)

        return self._reject("missing origin/referer", None, request)


app.add_middleware(CSRFOriginMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.allowed_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["set-cookie"],
)


@app.exception_handler(AuthError)
async def auth_exception_handler(request: Request, exc: AuthError):
    """Translate session/account failures into JSON error responses."""
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


# Include routers
app.include_router(account.router)
app.include_router(sessions.router)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
