import logging
import os

from fastapi import (
    FastAPI,
    Depends,
    UploadFile,
    File,
    HTTPException,
    Request,
    Response,
)
from fastapi.middleware.cors import CORSMiddleware

from db.session import engine
from db.base import Base

from authentication.deps import get_current_user
from authentication.router import router as auth_router
from models.commission_schemas import BulkUploadRequest, IngestResponse
from services.commission_parser import parse_commission_file
from services.commission_store import BatchMeta, CommissionStore, get_store
from services.errors import CommissionError
from services.retention_service import start_retention_scheduler, stop_retention_scheduler

# --------------------------------------------------
# LOGGING
# --------------------------------------------------
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# --------------------------------------------------
# APP
# --------------------------------------------------
app = FastAPI(
    title="Commission Tracker API",
    version="1.0.0",
    swagger_ui_parameters={
        "persistAuthorization": True,
        "displayRequestDuration": True,
    },
)
app.state.retention_scheduler = None


def _retention_enabled() -> bool:
    return os.getenv("ENABLE_RETENTION_SWEEP", "1") != "0"


# --------------------------------------------------
# DB INIT + RETENTION SWEEP
# --------------------------------------------------
@app.on_event("startup")
def _init_db():
    try:
        Base.metadata.create_all(bind=engine)
    except Exception:
        logger.exception("DB init failed")

    if _retention_enabled():
        app.state.retention_scheduler = start_retention_scheduler()


@app.on_event("shutdown")
def _stop_scheduler():
    stop_retention_scheduler(app.state.retention_scheduler)
    app.state.retention_scheduler = None


# --------------------------------------------------
# CORS
# --------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --------------------------------------------------
# CORS PREFLIGHT (EXPLICIT)
# --------------------------------------------------
@app.options("/{path:path}")
def preflight(path: str, request: Request):
    return Response(status_code=204)


# --------------------------------------------------
# ROUTERS
# --------------------------------------------------
from routers.commissions import router as commissions_router
from routers.devices import router as devices_router
from routers.dashboard import router as dashboard_router
from routers.admin_files import router as admin_files_router
app.include_router(auth_router)
app.include_router(commissions_router, dependencies=[Depends(get_current_user)])
app.include_router(devices_router, dependencies=[Depends(get_current_user)])
app.include_router(dashboard_router, dependencies=[Depends(get_current_user)])
app.include_router(admin_files_router)

# --------------------------------------------------
# HEALTH CHECK
# --------------------------------------------------
@app.get("/health")
def health():
    return {"status": "ok"}

@app.get("/")
def root():
    return {"status": "ok"}

# ==================================================
# UPLOAD (CSV/XLSX)
# ==================================================
@app.post("/commissions/upload", response_model=IngestResponse)
async def upload_file(
    file: UploadFile = File(...),
    store: CommissionStore = Depends(get_store),
    current_user = Depends(get_current_user),
):
    contents = await file.read()
    if not contents:
        raise HTTPException(status_code=400, detail="Empty file.")

    filename = file.filename or "upload.csv"
    try:
        rows = parse_commission_file(filename, contents)
    except CommissionError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception as exc:
        raise HTTPException(status_code=400, detail=f"Failed to parse file: {exc}")

    result = store.add_transactions(rows, BatchMeta(filename=filename))

    logger.info(
        "UPLOAD: file=%s rows=%s inserted=%s duplicates=%s skipped=%s",
        filename,
        len(rows),
        result.inserted,
        result.duplicates,
        result.skipped,
    )
    return {
        "inserted": result.inserted,
        "duplicates": result.duplicates,
        "skipped": result.skipped,
        "batch_id": result.batch_id,
    }

# ==================================================
# BULK INGEST (JSON)
# ==================================================
@app.post("/commissions/bulk", response_model=IngestResponse)
def bulk_ingest(
    payload: BulkUploadRequest,
    store: CommissionStore = Depends(get_store),
    current_user = Depends(get_current_user),
):
    batch_meta = None
    if payload.filename or payload.batch_id:
        batch_meta = BatchMeta(filename=payload.filename or "bulk-upload", batch_id=payload.batch_id)

    try:
        result = store.add_transactions(payload.records, batch_meta)
    except CommissionError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    logger.info(
        "BULK: records=%s inserted=%s duplicates=%s skipped=%s",
        len(payload.records),
        result.inserted,
        result.duplicates,
        result.skipped,
    )
    return {
        "inserted": result.inserted,
        "duplicates": result.duplicates,
        "skipped": result.skipped,
        "batch_id": result.batch_id,
    }
