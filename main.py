import asyncio
import urllib.parse
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware
from core.config import settings
from core.database import Base, SessionLocal, engine
from core.errors import IdentityConflict, LoginRequired, StorageUnavailable
from core.logger import get_logger
from core.sweeper import run_sweeper
from routers import account_router, auth_router, dashboard_router, user_router

logger = get_logger("auth.app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    sweeper = None
    if settings.SWEEP_INTERVAL_SECONDS > 0:
        sweeper = asyncio.create_task(run_sweeper(SessionLocal, settings.SWEEP_INTERVAL_SECONDS))
    yield
    if sweeper is not None:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper


app = FastAPI(title="SaaS Auth Core", lifespan=lifespan)

# Respect X-Forwarded-Proto/Host when behind a proxy (Docker/nginx/etc.)
app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

# Session cookies need credentialed CORS, which rules out a wildcard origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.BASE_URL.rstrip("/")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LoginRequired)
async def login_required_handler(request: Request, exc: LoginRequired):
    url = settings.SIGN_IN_PATH
    # Only ever a same-site path, never a full URL
    if exc.next_path and exc.next_path.startswith("/") and not exc.next_path.startswith("//"):
        url += "?" + urllib.parse.urlencode({"next": exc.next_path})
    return RedirectResponse(url=url, status_code=303)


@app.exception_handler(IdentityConflict)
async def identity_conflict_handler(request: Request, exc: IdentityConflict):
    return JSONResponse(status_code=403, content={"detail": "sign in failed"})


@app.exception_handler(StorageUnavailable)
async def storage_unavailable_handler(request: Request, exc: StorageUnavailable):
    logger.error("Request %s %s failed: identity store unavailable", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "storage unavailable"})


app.include_router(auth_router.router)
app.include_router(dashboard_router.router)
app.include_router(user_router.router)
app.include_router(account_router.router)


@app.get("/")
def root():
    return {"status": "ok"}
