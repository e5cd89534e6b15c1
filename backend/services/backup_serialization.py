"""Conversion between Firestore documents and the portable backup tree.

Export walks any document value and turns every point in time into an
ISO-8601 string (``2024-01-15T08:30:00.000Z``). Restore walks the parsed
JSON and turns ISO strings back into Firestore timestamps, but only under
field names listed in the date field registry.
"""
import re
from datetime import datetime, timedelta, timezone

from google.api_core.datetime_helpers import DatetimeWithNanoseconds
from google.cloud.firestore_v1 import GeoPoint
from google.protobuf.timestamp_pb2 import Timestamp

from backend.services.date_fields import DEFAULT_REGISTRY, DateFieldRegistry

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Epoch milliseconds for 2000-01-01T00:00:00Z and 3000-01-01T00:00:00Z.
EPOCH_MILLIS_MIN = 946684800000
EPOCH_MILLIS_MAX = 32503680000000

_ISO_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}", re.ASCII)
_ISO_INSTANT = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d+))?"
    r"(Z|[+-]\d{2}:?\d{2})?$",
    re.ASCII,
)


# --- Temporal values ---

def _epoch_millis(value: datetime) -> int:
    if value.tzinfo is None:
        # The Firestore client stores naive datetimes as UTC.
        value = value.replace(tzinfo=timezone.utc)
    delta = value - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000


def _iso_from_millis(millis: int) -> str:
    instant = _EPOCH + timedelta(milliseconds=millis)
    return instant.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _is_epoch_millis(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return EPOCH_MILLIS_MIN <= value < EPOCH_MILLIS_MAX


def to_iso_instant(value) -> str | None:
    """Return the ISO-8601 form of ``value`` if it is a point in time, else None.

    Accepted, in order: Firestore timestamps, protobuf ``Timestamp``
    messages, ``datetime`` values, and numbers in the epoch-millisecond
    range of the years 2000-2999.
    """
    try:
        if isinstance(value, DatetimeWithNanoseconds):
            return _iso_from_millis(_epoch_millis(value))
        if isinstance(value, Timestamp):
            return _iso_from_millis(_epoch_millis(value.ToDatetime(tzinfo=timezone.utc)))
        if isinstance(value, datetime):
            return _iso_from_millis(_epoch_millis(value))
        if _is_epoch_millis(value):
            return _iso_from_millis(int(value))
    except (OverflowError, ValueError):
        return None
    return None


def parse_iso_instant(value: str) -> DatetimeWithNanoseconds | None:
    """Build a Firestore timestamp from an ISO-8601 string, or None if it is not one.

    Strings without a zone designator are read as UTC.
    """
    match = _ISO_INSTANT.match(value)
    if match is None:
        return None
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    nanos = int(fraction[:9].ljust(9, "0")) if fraction else 0
    try:
        if zone in (None, "Z"):
            tz = timezone.utc
        else:
            sign = -1 if zone[0] == "-" else 1
            digits = zone[1:].replace(":", "")
            tz = timezone(sign * timedelta(hours=int(digits[:2]), minutes=int(digits[2:])))
        instant = datetime(
            int(year), int(month), int(day), int(hour), int(minute), int(second), tzinfo=tz
        ).astimezone(timezone.utc)
    except (OverflowError, ValueError):
        return None
    return DatetimeWithNanoseconds(
        instant.year,
        instant.month,
        instant.day,
        instant.hour,
        instant.minute,
        instant.second,
        nanosecond=nanos,
        tzinfo=timezone.utc,
    )


# --- Export ---

def serialize_for_backup(value):
    """Convert a document value into a JSON-safe tree. Never mutates ``value``."""
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return [serialize_for_backup(item) for item in value]
    iso = to_iso_instant(value)
    if iso is not None:
        return iso
    if isinstance(value, GeoPoint):
        return {"latitude": value.latitude, "longitude": value.longitude}
    if isinstance(value, dict):
        return {key: serialize_for_backup(item) for key, item in value.items()}
    return value


# --- Restore ---

class BackupDeserializer:
    def __init__(self, registry: DateFieldRegistry = DEFAULT_REGISTRY):
        self.registry = registry

    def deserialize(self, collection_name: str, document: dict) -> dict:
        # collection_name is not used by the current rule, which applies to
        # every collection alike.
        return self._restore(document)

    def _restore(self, value):
        if isinstance(value, list):
            return [self._restore(item) for item in value]
        if isinstance(value, dict):
            result = {}
            for key, item in value.items():
                result[key] = self._restore_field(key, item)
            return result
        return value

    def _restore_field(self, key, value):
        if (
            isinstance(value, str)
            and self.registry.is_date_field(key)
            and _ISO_PREFIX.match(value)
        ):
            restored = parse_iso_instant(value)
            return value if restored is None else restored
        return self._restore(value)


_default_deserializer = BackupDeserializer()


def deserialize_from_backup(
    collection_name: str,
    document: dict,
    registry: DateFieldRegistry | None = None,
) -> dict:
    """Restore Firestore timestamps on the registered date fields of a backup document."""
    if registry is None:
        return _default_deserializer.deserialize(collection_name, document)
    return BackupDeserializer(registry).deserialize(collection_name, document)
