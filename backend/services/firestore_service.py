from datetime import datetime, timezone

from google.cloud.firestore import Client as FirestoreClient
from google.cloud.firestore_v1 import FieldFilter
from google.cloud.firestore_v1.base_query import BaseQuery

from backend.config import settings


def _now() -> datetime:
    return datetime.now(timezone.utc)


# --- Reads ---

def get_farm(db: FirestoreClient, farm_id: str) -> dict:
    """Return the farm document with its id, or an empty dict if it does not exist."""
    doc = db.collection("farms").document(farm_id).get()
    if not doc.exists:
        return {}
    return {"id": doc.id, **doc.to_dict()}


def _filtered_query(db: FirestoreClient, collection_name: str, filters: dict) -> BaseQuery:
    query: BaseQuery = db.collection(collection_name)
    for field, value in filters.items():
        query = query.where(filter=FieldFilter(field, "==", value))
    return query


def list_documents(db: FirestoreClient, collection_name: str, filters: dict) -> list[dict]:
    """Stream every document matching all equality filters, each with its id under ``id``."""
    docs = _filtered_query(db, collection_name, filters).stream()
    return [{"id": doc.id, **doc.to_dict()} for doc in docs]


def new_document_id(db: FirestoreClient, collection_name: str) -> str:
    return db.collection(collection_name).document().id


# --- Writes ---

def merge_farm(db: FirestoreClient, farm_id: str, data: dict) -> None:
    db.collection("farms").document(farm_id).set(data, merge=True)


def _chunks(items: list, size: int):
    for start in range(0, len(items), size):
        yield items[start:start + size]


def write_documents(db: FirestoreClient, collection_name: str, docs: list[tuple[str, dict]]) -> int:
    """Write ``(doc_id, data)`` pairs using batches of at most ``backup_batch_size`` writes."""
    written = 0
    for chunk in _chunks(docs, settings.backup_batch_size):
        batch = db.batch()
        for doc_id, data in chunk:
            batch.set(db.collection(collection_name).document(doc_id), data)
        batch.commit()
        written += len(chunk)
    return written


def delete_documents(db: FirestoreClient, collection_name: str, filters: dict) -> int:
    """Delete every document matching all equality filters, in batches."""
    refs = [doc.reference for doc in _filtered_query(db, collection_name, filters).stream()]
    for chunk in _chunks(refs, settings.backup_batch_size):
        batch = db.batch()
        for ref in chunk:
            batch.delete(ref)
        batch.commit()
    return len(refs)
