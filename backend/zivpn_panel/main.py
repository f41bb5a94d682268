import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from zivpn_panel.config import settings
from zivpn_panel.database import get_store
from zivpn_panel.errors import PanelError
from zivpn_panel.routers import auth, backups, servers, ssh, users, vpn_users
from zivpn_panel.services.credentials import CredentialService


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """События при запуске и остановке приложения."""
    provider = app.dependency_overrides.get(get_store, get_store)
    store = provider()

    logger.info("Preparing storage...")
    await store.startup()
    await CredentialService(store).sync_owner(settings.OWNER_USERNAME)
    logger.info(f"Owner '{settings.OWNER_USERNAME}' is ready")
    yield
    logger.info("Shutting down...")
    await store.shutdown()


app = FastAPI(title="ZiVPN Panel", lifespan=lifespan)

# Настройка CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PanelError)
async def panel_error_handler(request: Request, exc: PanelError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())[1:])
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return JSONResponse(status_code=400, content={"error": "Invalid request: " + "; ".join(problems)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal server error."})


app.include_router(auth.router, prefix="/api", tags=["Auth"])
app.include_router(users.router, prefix="/api", tags=["Managers"])
app.include_router(servers.router, prefix="/api", tags=["Servers"])
app.include_router(vpn_users.router, prefix="/api/vpn-users", tags=["VPN users"])
app.include_router(vpn_users.router, prefix="/api/manage-vpn-users", tags=["VPN users"])
app.include_router(ssh.router, prefix="/api", tags=["Remote"])
app.include_router(backups.router, prefix="/api", tags=["Backups"])


@app.get("/")
async def root():
    return {"message": "ZiVPN Panel API", "status": "running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
