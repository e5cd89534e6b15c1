from enum import Enum

from pydantic import BaseModel, Field

BACKUP_VERSION = 1

# Record collections carried by a backup file, in restore order.
BACKUP_COLLECTIONS = (
    "animals",
    "breedingRecords",
    "reminders",
    "weightRecords",
    "farmInvitations",
)


class RestoreMode(str, Enum):
    merge = "merge"
    replace = "replace"


class BackupCounts(BaseModel):
    animals: int = 0
    breedingRecords: int = 0
    reminders: int = 0
    weightRecords: int = 0
    farmInvitations: int = 0


class BackupMeta(BaseModel):
    """Header of a backup file (``_meta``), using the file's camelCase keys."""
    version: int = BACKUP_VERSION
    exportDate: str
    farmId: str
    farmName: str = ""
    exportedBy: str = ""
    counts: BackupCounts = BackupCounts()


class ValidationResult(BaseModel):
    valid: bool
    errors: list[str] = []
    warnings: list[str] = []
    # The _meta block exactly as found in the file; shown to the operator
    # before the import is confirmed.
    preview: dict | None = None


class RestoreResult(BaseModel):
    success: bool
    counts: dict[str, int] = Field(default_factory=dict)
    errors: list[str] = []
