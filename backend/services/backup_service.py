"""Farm backup export and restore against Firestore.

Restore order is fixed: farm, replace-mode deletions, animals, breeding
records, reminders, weight records, invitations. A failed step is reported
and the remaining steps still run; an interrupted import is re-run from the
start rather than resumed.
"""
import json
import logging
import re
import secrets
import string
from datetime import datetime, timedelta

from google.cloud.firestore import Client as FirestoreClient

from backend.config import settings
from backend.models.backup import (
    BACKUP_COLLECTIONS,
    BACKUP_VERSION,
    BackupCounts,
    BackupMeta,
    RestoreMode,
    RestoreResult,
    ValidationResult,
)
from backend.services import firestore_service
from backend.services.backup_serialization import (
    deserialize_from_backup,
    parse_iso_instant,
    serialize_for_backup,
    to_iso_instant,
)
from backend.services.backup_validation import validate_backup_file

# Farm fields that describe access, never restored from a file.
_FARM_ACCESS_FIELDS = ("id", "ownerId", "collaborators", "collaboratorsIds", "collaboratorsEmails")

# Fields of an accepted invitation that a restored (pending) one must not carry.
_INVITATION_ACCEPTANCE_FIELDS = ("userId", "acceptedAt", "rejectedAt")

_TOKEN_ALPHABET = string.digits + string.ascii_lowercase

# Path separators, quotes and control characters never reach a filename.
_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/"\x00-\x1f\x7f]')

# Ownership fields each collection is queried by.
_OWNER_FIELDS = {
    "animals": ("farmId",),
    "breedingRecords": ("farmId",),
    "reminders": ("farmerId", "farmId"),
    # Weight records carry no farmId.
    "weightRecords": ("farmerId",),
    "farmInvitations": ("farmId",),
}

# Collections wiped before a replace-mode restore. Invitations are kept.
_REPLACED_COLLECTIONS = ("animals", "breedingRecords", "reminders", "weightRecords")


def _owner_filters(collection_name: str, farm_id: str, user_id: str) -> dict:
    owners = {"farmId": farm_id, "farmerId": user_id}
    return {field: owners[field] for field in _OWNER_FIELDS[collection_name]}


# --- Export ---

def backup_filename(farm_name: str, when: datetime) -> str:
    """Download name for a backup; safe as a path component and in a header."""
    slug = _UNSAFE_FILENAME_CHARS.sub("", (farm_name or "").lower()).strip()
    slug = re.sub(r"\s+", "-", slug) or "granja"
    return f"mi-granja-respaldo-{slug}-{when.date().isoformat()}.json"


def export_filename(backup: dict) -> str:
    """Filename for an exported backup, dated by its own ``exportDate``."""
    meta = backup["_meta"]
    return backup_filename(meta["farmName"], parse_iso_instant(meta["exportDate"]))


def export_farm_backup(db: FirestoreClient, farm_id: str, user_id: str) -> dict:
    """Read the farm's whole document graph and return it as a backup tree."""
    farm = firestore_service.get_farm(db, farm_id)

    collections: dict[str, list[dict]] = {}
    for name in BACKUP_COLLECTIONS:
        try:
            collections[name] = firestore_service.list_documents(
                db, name, _owner_filters(name, farm_id, user_id)
            )
        except Exception as e:
            logging.warning("Backup export of %s for farm %s failed: %s", name, farm_id, e)
            collections[name] = []

    meta = BackupMeta(
        version=BACKUP_VERSION,
        exportDate=to_iso_instant(firestore_service._now()),
        farmId=farm_id,
        farmName=farm.get("name") or "",
        exportedBy=user_id,
        counts=BackupCounts(**{name: len(docs) for name, docs in collections.items()}),
    )

    backup = {"_meta": meta.model_dump(), "farm": serialize_for_backup(farm)}
    for name, docs in collections.items():
        backup[name] = serialize_for_backup(docs)
    logging.info("Exported backup of farm %s: %s", farm_id, meta.counts.model_dump())
    return backup


def dump_backup(backup: dict) -> str:
    return json.dumps(backup, indent=2, ensure_ascii=False)


# --- Import ---

def read_backup_file(raw: bytes | str, current_farm_id: str) -> tuple[object, ValidationResult]:
    """Decode an uploaded backup file; return the parsed data and its validation.

    The data is None when the file is not JSON at all.
    """
    try:
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        return None, ValidationResult(
            valid=False,
            errors=[f"Could not read the file: {e}"],
            preview=None,
        )
    return data, validate_backup_file(data, current_farm_id)


def parse_backup_file(raw: bytes | str, current_farm_id: str) -> ValidationResult:
    return read_backup_file(raw, current_farm_id)[1]


def _invitation_token(farm_id: str) -> str:
    suffix = "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(8))
    millis = int(firestore_service._now().timestamp() * 1000)
    return f"{farm_id}_{millis}_{suffix}"


class _Restore:
    """State of a single restore run: target farm, acting user, animal id map."""

    def __init__(self, db: FirestoreClient, data: dict, farm_id: str, user_id: str):
        self.db = db
        self.data = data
        self.farm_id = farm_id
        self.user_id = user_id
        self.animal_ids: dict[str, str] = {}
        self.counts: dict[str, int] = {}
        self.errors: list[str] = []

    def _documents(self, collection_name: str) -> list[dict]:
        docs = self.data.get(collection_name) or []
        skipped = sum(1 for doc in docs if not isinstance(doc, dict))
        if skipped:
            logging.warning("Skipping %d malformed %s entries in backup", skipped, collection_name)
        return [doc for doc in docs if isinstance(doc, dict)]

    def _step(self, label: str, action) -> None:
        try:
            action()
        except Exception as e:
            logging.exception("Restore of %s into farm %s failed", label, self.farm_id)
            self.errors.append(f"Error restoring {label}: {e}")

    def _remap(self, animal_id):
        if isinstance(animal_id, str) and animal_id in self.animal_ids:
            return self.animal_ids[animal_id]
        return animal_id

    def _assign_ownership(self, doc: dict) -> dict:
        if "farmId" in doc:
            doc["farmId"] = self.farm_id
        if "farmerId" in doc:
            doc["farmerId"] = self.user_id
        return doc

    def _prepare(self, collection_name: str, raw: dict) -> dict:
        doc = deserialize_from_backup(collection_name, raw)
        doc.pop("id", None)
        return self._assign_ownership(doc)

    def _write(self, collection_name: str, docs: list[tuple[str, dict]]) -> None:
        self.counts[collection_name] = firestore_service.write_documents(
            self.db, collection_name, docs
        )

    def restore_farm(self) -> None:
        farm = self.data.get("farm")
        if not isinstance(farm, dict):
            return
        fields = deserialize_from_backup("farm", farm)
        for key in _FARM_ACCESS_FIELDS:
            fields.pop(key, None)
        firestore_service.merge_farm(self.db, self.farm_id, fields)

    def delete_existing(self) -> None:
        for name in _REPLACED_COLLECTIONS:
            filters = _owner_filters(name, self.farm_id, self.user_id)
            self._step(
                f"{name} (delete)",
                lambda name=name, filters=filters: firestore_service.delete_documents(
                    self.db, name, filters
                ),
            )

    def restore_animals(self) -> None:
        animals = self._documents("animals")
        for animal in animals:
            old_id = animal.get("id")
            if old_id and isinstance(old_id, str):
                self.animal_ids[old_id] = firestore_service.new_document_id(self.db, "animals")

        docs = []
        for raw in animals:
            old_id = raw.get("id")
            if not isinstance(old_id, str) or old_id not in self.animal_ids:
                # Animals without an id cannot be referenced and are skipped.
                continue
            new_id = self.animal_ids[old_id]
            doc = self._prepare("animals", raw)
            if doc.get("motherId"):
                doc["motherId"] = self._remap(doc["motherId"])
            if doc.get("fatherId"):
                doc["fatherId"] = self._remap(doc["fatherId"])
            docs.append((new_id, doc))
        self._write("animals", docs)

    def _remap_female_info(self, info):
        if not isinstance(info, dict):
            return info
        info = dict(info)
        if info.get("femaleId"):
            info["femaleId"] = self._remap(info["femaleId"])
        if isinstance(info.get("offspring"), list):
            info["offspring"] = [self._remap(animal_id) for animal_id in info["offspring"]]
        return info

    def restore_breeding_records(self) -> None:
        docs = []
        for raw in self._documents("breedingRecords"):
            doc = self._prepare("breedingRecords", raw)
            if doc.get("maleId"):
                doc["maleId"] = self._remap(doc["maleId"])
            if isinstance(doc.get("femaleBreedingInfo"), list):
                doc["femaleBreedingInfo"] = [
                    self._remap_female_info(info) for info in doc["femaleBreedingInfo"]
                ]
            docs.append((firestore_service.new_document_id(self.db, "breedingRecords"), doc))
        self._write("breedingRecords", docs)

    def restore_plain(self, collection_name: str) -> None:
        docs = []
        for raw in self._documents(collection_name):
            doc = self._prepare(collection_name, raw)
            docs.append((firestore_service.new_document_id(self.db, collection_name), doc))
        self._write(collection_name, docs)

    def restore_invitations(self) -> None:
        invitations = self._documents("farmInvitations")
        if not invitations:
            return
        now = firestore_service._now()
        expires_at = now + timedelta(days=settings.invitation_expiry_days)
        docs = []
        for raw in invitations:
            doc = deserialize_from_backup("farmInvitations", raw)
            doc.pop("id", None)
            for key in _INVITATION_ACCEPTANCE_FIELDS:
                doc.pop(key, None)
            # Invitees have to accept again.
            doc.update({
                "status": "pending",
                "farmId": self.farm_id,
                "invitedBy": self.user_id,
                "token": _invitation_token(self.farm_id),
                "expiresAt": expires_at,
                "createdAt": now,
                "updatedAt": now,
            })
            docs.append((firestore_service.new_document_id(self.db, "farmInvitations"), doc))
        self._write("farmInvitations", docs)

    def run(self, mode: RestoreMode) -> RestoreResult:
        self._step("farm", self.restore_farm)
        if mode == RestoreMode.replace:
            self.delete_existing()
        self._step("animals", self.restore_animals)
        self._step("breedingRecords", self.restore_breeding_records)
        self._step("reminders", lambda: self.restore_plain("reminders"))
        self._step("weightRecords", lambda: self.restore_plain("weightRecords"))
        self._step("farmInvitations", self.restore_invitations)
        return RestoreResult(success=not self.errors, counts=self.counts, errors=self.errors)


def restore_farm_backup(
    db: FirestoreClient,
    data,
    farm_id: str,
    user_id: str,
    mode: RestoreMode = RestoreMode.merge,
) -> RestoreResult:
    """Write a validated backup into ``farm_id``. Invalid data is refused untouched."""
    validation = validate_backup_file(data, farm_id)
    if not validation.valid:
        return RestoreResult(success=False, errors=validation.errors)

    result = _Restore(db, data, farm_id, user_id).run(RestoreMode(mode))
    logging.info(
        "Restored backup into farm %s (%s): %s, %d errors",
        farm_id, RestoreMode(mode).value, result.counts, len(result.errors),
    )
    return result
