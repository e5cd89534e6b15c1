"""Registry of document fields that hold dates.

A backup file is plain JSON, so a restored ISO string carries no type tag.
The registry names the fields that must come back as Firestore timestamps.
"""
from pydantic import BaseModel, ConfigDict


class DateFieldRegistry(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Dotted paths per collection, for documentation and tooling only.
    paths_by_collection: dict[str, tuple[str, ...]] = {}
    # Bare field names treated as dates at any depth during restore.
    field_names: frozenset[str] = frozenset()

    def is_date_field(self, name: str) -> bool:
        return name in self.field_names

    def paths_for(self, collection_name: str) -> tuple[str, ...]:
        return self.paths_by_collection.get(collection_name, ())

    def missing_leaf_names(self) -> set[str]:
        """Leaf names used in the path table but absent from the name set.

        Any name returned here would silently stay a string on restore.
        """
        leaves = {
            path.rsplit(".", 1)[-1]
            for paths in self.paths_by_collection.values()
            for path in paths
        }
        return leaves - self.field_names


DEFAULT_REGISTRY = DateFieldRegistry(
    paths_by_collection={
        "animals": (
            "createdAt",
            "updatedAt",
            "birthDate",
            "statusAt",
            "weanedAt",
            # records[]
            "records.date",
            "records.resolvedDate",
            "records.nextDueDate",
            "soldInfo.date",
            "lostInfo.lostAt",
            "lostInfo.foundAt",
            "adminAction.originalTimestamp",
        ),
        "breedingRecords": (
            "createdAt",
            "updatedAt",
            "breedingDate",
            # femaleBreedingInfo[]
            "femaleBreedingInfo.pregnancyConfirmedDate",
            "femaleBreedingInfo.expectedBirthDate",
            "femaleBreedingInfo.actualBirthDate",
            "comments.timestamp",
        ),
        "reminders": ("createdAt", "updatedAt", "dueDate"),
        "weightRecords": ("date",),
        "farmInvitations": ("createdAt", "updatedAt", "expiresAt"),
        "farm": ("createdAt", "updatedAt"),
    },
    field_names=frozenset({
        "createdAt",
        "updatedAt",
        "birthDate",
        "statusAt",
        "weanedAt",
        "date",
        "resolvedDate",
        "nextDueDate",
        "breedingDate",
        "pregnancyConfirmedDate",
        "expectedBirthDate",
        "actualBirthDate",
        "timestamp",
        "dueDate",
        "expiresAt",
        "invitedAt",
        "acceptedAt",
        "originalTimestamp",
        "lostAt",
        "foundAt",
    }),
)
