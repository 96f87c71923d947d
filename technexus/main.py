import logging
import os

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

# Local imports
from .config import APP_NAME, FRONTEND_URL, LOG_LEVEL, UPLOAD_DIR
from .database import init_models
from .errors import AppError, PersistenceError
from .realtime import ConnectionRegistry
from .routers import admin, auth, categories, chat, coupons, orders, products, profiles, reviews, upload, ws

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title=APP_NAME)
app.state.connections = ConnectionRegistry()

app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup():
    # stay up without storage; requests that need it fail until it is back
    try:
        await init_models()
        logger.info("Database initialized successfully")
    except Exception:
        logger.exception("Failed to initialize database")


# --- ERRORS ---
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("constraint violation on %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": "Conflicts with existing data"})


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("storage error on %s %s", request.method, request.url.path, exc_info=exc)
    return await app_error_handler(request, PersistenceError())


# --- ROUTES ---
@app.get("/api/health")
async def health():
    return {"status": "ok", "message": "Server is running"}


app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(products.router, prefix="/api/products", tags=["products"])
app.include_router(categories.router, prefix="/api/categories", tags=["categories"])
app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
app.include_router(reviews.router, prefix="/api/reviews", tags=["reviews"])
app.include_router(chat.router, prefix="/api/chat", tags=["chat"])
app.include_router(coupons.router, prefix="/api/coupons", tags=["coupons"])
app.include_router(profiles.router, prefix="/api/profiles", tags=["profiles"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
app.include_router(upload.router, prefix="/api/upload", tags=["upload"])
app.include_router(ws.router)

for folder in ("products", "categories"):
    os.makedirs(os.path.join(UPLOAD_DIR, folder), exist_ok=True)
app.mount("/uploads", StaticFiles(directory=UPLOAD_DIR), name="uploads")
