import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app.core.config import settings
from app.core.errors import EngineError
from app.api.v1.companies import router as companies_router
from app.api.v1.tasks import router as tasks_router
from app.api.v1.reports import router as reports_router
from app.api.v1.extension_requests import router as extension_requests_router
from app.db.mongo import get_mongo_db, close_mongo_client
from app.db.mongo_indexes import ensure_active_session_index, ensure_indexes

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="TaskLedger Backend")

# CORS for local frontend dev
# Build CORS allowlist from local dev + configured origins
_base_origins = {
    "http://localhost:5173",
    "http://127.0.0.1:5173",
}
if settings.FRONTEND_BASE_URL:
    _base_origins.add(settings.FRONTEND_BASE_URL)
for o in settings.ALLOWED_ORIGINS:
    _base_origins.add(o)
# Normalize by stripping trailing slashes to match Origin header format
_allowed_origins = sorted({o.rstrip('/') for o in _base_origins if o})

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_origin_regex=r"^http(s)?://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_result())


@app.get("/")
def read_root():
    return {"message": "Welcome to TaskLedger Backend"}


@app.get("/health")
def health_check():
    return {"status": "ok"}


# Mount API routers
app.include_router(companies_router, prefix="/api/v1")
app.include_router(tasks_router, prefix="/api/v1")
app.include_router(reports_router, prefix="/api/v1")
app.include_router(extension_requests_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup():
    # Initialize Mongo client
    db = get_mongo_db()
    # Without this index concurrent starts would double count; refuse to serve
    await ensure_active_session_index(db)
    try:
        await ensure_indexes(db)
    except Exception as exc:
        logging.getLogger("uvicorn.error").warning(
            "Mongo index initialization failed: %s", exc
        )


@app.on_event("shutdown")
async def on_shutdown():
    # Close Mongo client
    close_mongo_client()
