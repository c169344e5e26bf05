"""FastAPI application and routes."""

import logging
import mimetypes
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Depends, UploadFile, File, Form, Header
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from folio_engine.config import ConfigLoader, SystemConfig
from folio_engine.db import get_db, init_db
from folio_engine.services.account_resolver import AccountResolver, Unauthorized
from folio_engine.services.backup_errors import (
    ArchiveTooLarge,
    BackupError,
    CorruptArchive,
    InvalidSelectionError,
)
from folio_engine.services.backup_service import PortfolioBackupService
from folio_engine.services.backup_types import BACKUP_COMPONENTS
from folio_engine.services.image_restore import ImageRestoreService
from folio_engine.services.image_storage import ImageStorageService, ImageStorageError
from folio_engine.services.restore_orchestrator import RestoreOrchestrator

logger = logging.getLogger(__name__)


# Global state
app_state = {
    "system_config": None,
    "storage": None,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    logger.info("Starting Folio Engine...")

    init_db()
    logger.info("✓ Database initialized")

    loader = ConfigLoader()
    system_config = loader.load_system_config()
    app_state["system_config"] = system_config
    app_state["storage"] = ImageStorageService.from_config(system_config.storage)
    logger.info("✓ Object storage ready")

    yield

    logger.info("Shutting down Folio Engine...")


app = FastAPI(
    title="Folio Engine",
    description="Portfolio backup and restore API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_system_config() -> SystemConfig:
    if app_state["system_config"] is None:
        app_state["system_config"] = SystemConfig()
    return app_state["system_config"]


def get_storage() -> ImageStorageService:
    if app_state["storage"] is None:
        app_state["storage"] = ImageStorageService.from_config(get_system_config().storage)
    return app_state["storage"]


def get_current_account(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> str:
    """Resolve the Authorization header to the acting account id."""
    try:
        return AccountResolver(db).resolve(authorization)
    except Unauthorized as e:
        raise HTTPException(status_code=401, detail=str(e))


def _http_error(e: Exception) -> HTTPException:
    """Map pipeline errors to HTTP errors."""
    if isinstance(e, Unauthorized):
        return HTTPException(status_code=401, detail=str(e))
    if isinstance(e, ArchiveTooLarge):
        return HTTPException(status_code=413, detail=str(e))
    if isinstance(e, CorruptArchive):
        return HTTPException(status_code=400, detail=f"Failed to process backup file: {e}")
    if isinstance(e, InvalidSelectionError):
        return HTTPException(status_code=400, detail=str(e))
    return HTTPException(status_code=500, detail=f"Failed to restore backup: {e}")


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/backup/components")
async def list_backup_components():
    """List the components that can be backed up and restored."""
    components = [
        {"key": component.value, "name": info["name"], "description": info["description"]}
        for component, info in BACKUP_COMPONENTS.items()
    ]
    return {"components": components}


@app.get("/api/backup/create")
async def create_backup(
    components: str = Query(""),
    account_id: str = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    """Create a backup archive of the selected components."""
    if not components.strip():
        raise HTTPException(status_code=400, detail="No components selected for backup")

    service = PortfolioBackupService(db=db, storage=get_storage())
    try:
        archive = service.create_backup(account_id, components)
    except (Unauthorized, InvalidSelectionError) as e:
        raise _http_error(e)
    except BackupError as e:
        logger.error(f"Backup error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to create backup: {e}")

    return Response(
        content=archive.data,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{archive.filename}"'},
    )


@app.post("/api/backup/restore")
async def restore_backup(
    backup: UploadFile = File(...),
    components: Optional[str] = Form(None),
    restore_mode: Optional[str] = Form(None),
    account_id: str = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    """Restore a backup archive in one call: metadata first, then every image."""
    config = get_system_config()
    archive_bytes = await backup.read()

    orchestrator = RestoreOrchestrator(db=db, storage=get_storage(), backup_config=config.backup)
    try:
        report = orchestrator.restore(
            account_id,
            archive_bytes,
            components or ",".join(config.backup.default_components),
            restore_mode or config.backup.default_restore_mode,
        )
    except (Unauthorized, BackupError) as e:
        logger.error(f"Restore error: {e}")
        raise _http_error(e)

    return {"message": "Restore completed", **report.to_dict()}


@app.post("/api/backup/restore-meta")
async def restore_backup_metadata(
    file: UploadFile = File(...),
    components: Optional[str] = Form(None),
    restore_mode: Optional[str] = Form(None),
    account_id: str = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    """
    First step of a split restore.

    Restores rows only and returns the artwork id mapping; the caller then
    sends each archived image to /api/backup/restore-image.
    """
    config = get_system_config()
    archive_bytes = await file.read()

    orchestrator = RestoreOrchestrator(db=db, storage=get_storage(), backup_config=config.backup)
    try:
        archive, outcome = orchestrator.restore_metadata(
            account_id,
            archive_bytes,
            components or ",".join(config.backup.default_components),
            restore_mode or config.backup.default_restore_mode,
        )
    except (Unauthorized, BackupError) as e:
        logger.error(f"Metadata restore error: {e}")
        raise _http_error(e)

    return {
        "message": "Metadata restore completed",
        "results": {c.value: r.to_dict() for c, r in outcome.results.items()},
        "artworkIdMapping": outcome.artwork_id_mapping,
        "backup_date": archive.metadata.created_at,
    }


@app.post("/api/backup/restore-image")
async def restore_backup_image(
    artwork_id: str = Form(...),
    image: UploadFile = File(...),
    original_filename: Optional[str] = Form(None),
    account_id: str = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    """Restore one archived image onto an artwork created by restore-meta."""
    config = get_system_config()
    data = await image.read()
    filename = original_filename or image.filename or "image.jpg"

    service = ImageRestoreService.from_config(db, get_storage(), config.backup)
    result = service.restore_image(account_id, artwork_id, filename, data)
    if not result.success:
        return JSONResponse(status_code=400, content=result.to_dict())
    return result.to_dict()


@app.get("/api/images/{key:path}")
async def get_image(key: str):
    """Serve a stored object."""
    try:
        data = get_storage().get(key)
    except ImageStorageError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if data is None:
        raise HTTPException(status_code=404, detail="Image not found")
    media_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
    return Response(content=data, media_type=media_type)
