# ecoevents/main.py
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ecoevents.core.config import settings
from ecoevents.core.errors import MarketplaceError
from ecoevents.deps import get_repo
from ecoevents.routers import donations as donations_router
from ecoevents.routers import products as products_router
from ecoevents.routers import users as users_router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    repo = get_repo()
    if hasattr(repo, "ensure_indexes"):
        await repo.ensure_indexes()
    logger.info("%s started (%s store)", settings.app_name, type(repo).__name__)
    yield
    if settings.use_mongo:
        from ecoevents.core.db import get_client
        get_client().close()


app = FastAPI(lifespan=lifespan, title=settings.app_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------- Error mapping ----------------
@app.exception_handler(MarketplaceError)
async def _marketplace_error(request: Request, exc: MarketplaceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)

@app.exception_handler(RequestValidationError)
async def _request_validation_error(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in e["loc"] if p not in ("body", "query")), "message": e["msg"]}
        for e in exc.errors()
    ]
    return JSONResponse({"message": "Validation failed", "errors": errors}, status_code=400)

@app.exception_handler(Exception)
async def _unexpected_error(request: Request, exc: Exception):
    # storage/driver errors never reach the client verbatim
    logger.exception("%s %s crashed", request.method, request.url.path)
    return JSONResponse({"message": "Server error"}, status_code=500)

# ---------------- Routers ----------------
app.include_router(donations_router.router)   # /api/donations
app.include_router(products_router.router)    # /api/products
app.include_router(users_router.router)       # /api/users

@app.get("/api/health")
def health():
    return {
        "status": "OK",
        "message": f"{settings.app_name} is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
