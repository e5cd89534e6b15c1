import re
from urllib.parse import quote

from fastapi import APIRouter, File, Form, HTTPException, Query, Response, UploadFile

from backend import dependencies
from backend.models.backup import RestoreMode, RestoreResult, ValidationResult
from backend.services import backup_service

router = APIRouter(prefix="/api/v1/farms/{farm_id}/backup", tags=["backup"])


def _content_disposition(filename: str) -> str:
    # Header values go out as latin-1: ASCII fallback plus the RFC 5987 UTF-8 form.
    fallback = filename.encode("ascii", "ignore").decode("ascii")
    fallback = re.sub(r"-{2,}", "-", fallback)
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


@router.get("")
def export_backup(farm_id: str, user_id: str = Query(..., min_length=1)):
    """Download the farm's full backup as a JSON attachment."""
    db = dependencies.get_firestore_client()
    backup = backup_service.export_farm_backup(db, farm_id, user_id)
    filename = backup_service.export_filename(backup)
    return Response(
        content=backup_service.dump_backup(backup),
        media_type="application/json",
        headers={"Content-Disposition": _content_disposition(filename)},
    )


@router.post("/validate", response_model=ValidationResult)
def validate_backup(farm_id: str, file: UploadFile = File(...)):
    """Check an uploaded backup and return its preview. Invalid files are not an HTTP error here."""
    return backup_service.parse_backup_file(file.file.read(), farm_id)


@router.post("/restore", response_model=RestoreResult)
def restore_backup(
    farm_id: str,
    user_id: str = Query(..., min_length=1),
    file: UploadFile = File(...),
    mode: RestoreMode = Form(RestoreMode.merge),
):
    """Validate an uploaded backup and, only if it is valid, write it into the farm."""
    data, validation = backup_service.read_backup_file(file.file.read(), farm_id)
    if not validation.valid:
        raise HTTPException(
            status_code=400,
            detail={"errors": validation.errors, "warnings": validation.warnings},
        )

    db = dependencies.get_firestore_client()
    return backup_service.restore_farm_backup(db, data, farm_id, user_id, mode)
