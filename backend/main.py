from dotenv import load_dotenv
load_dotenv()

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from database import get_db

# ENV
from config.env import ENV, CORS_ALLOWED_ORIGINS, validate_production_env

# ROUTES
from routes.taxes import router as taxes_router
from routes.shipping import router as shipping_router
from routes.orders import router as orders_router
from routes.returns import router as returns_router
from routes.audit import router as audit_router
from routes.notifications import router as notifications_router

# WORKERS
from utils.indexes import ensure_indexes
from utils.side_effects import outbox
from workers.audit_cleanup_worker import audit_cleanup_worker

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

validate_production_env()
logger.info("ENV: %s", ENV)

# -----------------------------
# STARTUP / SHUTDOWN (ONE PLACE ONLY)
# -----------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    await ensure_indexes(get_db())
    outbox_worker = asyncio.create_task(outbox.run_forever())
    cleanup_worker = asyncio.create_task(audit_cleanup_worker())

    yield

    outbox.stop()
    cleanup_worker.cancel()
    await asyncio.gather(outbox_worker, cleanup_worker, return_exceptions=True)

    drained = await outbox.drain()
    if drained:
        logger.info("SIDE_EFFECTS_DRAINED count=%s", drained)


app = FastAPI(
    title="Marketplace Fulfillment API",
    version="1.0.0",
    docs_url=None if ENV == "production" else "/docs",
    redoc_url=None if ENV == "production" else "/redoc",
    openapi_url=None if ENV == "production" else "/openapi.json",
    lifespan=lifespan,
)

# -----------------------------
# CORS
# -----------------------------

allowed_origins = [origin.strip() for origin in CORS_ALLOWED_ORIGINS if origin.strip()]
if not allowed_origins:
    allowed_origins = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -----------------------------
# ERRORS
# -----------------------------

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
    return JSONResponse(status_code=400, content={"detail": "; ".join(messages)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("UNHANDLED_ERROR path=%s", request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})

# -----------------------------
# ROUTES
# -----------------------------

app.include_router(taxes_router)
app.include_router(shipping_router)
app.include_router(orders_router)
app.include_router(returns_router)
app.include_router(audit_router)
app.include_router(notifications_router)

# -----------------------------
# HEALTH CHECKS
# -----------------------------

@app.get("/api/health")
async def health():
    return {"status": "ok"}

@app.get("/api/health/db")
async def health_db():
    db = get_db()
    await db.command("ping")
    return {"status": "mongodb connected"}
