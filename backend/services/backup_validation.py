"""Structural checks for backup files before anything is imported.

Errors mean the file cannot be imported safely. Warnings describe
degradations an operator can knowingly accept (a missing collection, a
backup taken from another farm).
"""
from backend.models.backup import BACKUP_COLLECTIONS, BACKUP_VERSION, ValidationResult


def _is_supported_version(version) -> bool:
    return type(version) is int and version == BACKUP_VERSION


def validate_backup_file(data, current_farm_id: str) -> ValidationResult:
    errors: list[str] = []
    warnings: list[str] = []

    if not isinstance(data, dict):
        return ValidationResult(
            valid=False,
            errors=["The file does not contain a JSON object"],
            preview=None,
        )

    meta = data.get("_meta")
    if not isinstance(meta, dict):
        return ValidationResult(
            valid=False,
            errors=["The file has no backup metadata (_meta)"],
            preview=None,
        )

    version = meta.get("version")
    if not _is_supported_version(version):
        errors.append(f"Unsupported backup version: {version!r} (expected {BACKUP_VERSION})")

    farm_id = meta.get("farmId")
    if not farm_id or not isinstance(farm_id, str):
        errors.append("The backup has no valid farm id")

    export_date = meta.get("exportDate")
    if not export_date or not isinstance(export_date, str):
        warnings.append("The backup has no export date")

    if not isinstance(data.get("farm"), dict):
        errors.append("The backup does not contain the farm document")

    for name in BACKUP_COLLECTIONS:
        if name not in data:
            warnings.append(f'Collection "{name}" not found in the backup (it will be skipped)')
        elif not isinstance(data[name], list):
            errors.append(f'Collection "{name}" is not a valid array')

    if farm_id and farm_id != current_farm_id:
        source = meta.get("farmName") or farm_id
        warnings.append(
            f"This backup belongs to another farm ({source}). "
            "Its data will be imported into the current farm."
        )

    return ValidationResult(
        valid=not errors,
        errors=errors,
        warnings=warnings,
        preview=meta,
    )
