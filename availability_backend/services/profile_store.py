"""SQLAlchemy-backed availability profile documents.

The store offers last-write-wins, merge-on-write semantics: ``persist_profile``
only replaces the document keys it is given unless ``merge=False``.
"""

from collections.abc import Mapping
from typing import Any, Protocol

from sqlalchemy.orm import Session

from availability_backend.models.profile import AvailabilityProfile
from availability_backend.schemas.availability import Profile
from availability_backend.services.profiles import normalize_profile

DOCUMENT_FIELDS = {
    'slots': 'slots',
    'isLooking': 'is_looking',
    'owner': 'owner',
    'preferences': 'preferences',
    'updatedAt': 'updated_at',
}


class ProfileSnapshotSource(Protocol):
    def get_latest_snapshot(self) -> list[Profile]:
        ...


def _row_to_profile(row: AvailabilityProfile) -> Profile:
    return normalize_profile(
        row.user_id,
        {
            'slots': row.slots,
            'isLooking': row.is_looking,
            'owner': row.owner,
            'preferences': row.preferences,
            'updatedAt': row.updated_at,
        },
    )


class ProfileStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_latest_snapshot(self) -> list[Profile]:
        rows = self.db.query(AvailabilityProfile).order_by(AvailabilityProfile.user_id.asc()).all()
        return [_row_to_profile(row) for row in rows]

    def get_profile(self, user_id: str) -> Profile | None:
        row = self.db.get(AvailabilityProfile, user_id)
        if row is None:
            return None
        return _row_to_profile(row)

    def persist_profile(self, user_id: str, partial: Mapping[str, Any], merge: bool = True) -> Profile:
        row = self.db.get(AvailabilityProfile, user_id)
        if row is None:
            row = AvailabilityProfile(user_id=user_id, slots=[], is_looking=True, owner={}, preferences={})
            self.db.add(row)
        elif not merge:
            row.slots = []
            row.is_looking = True
            row.owner = {}
            row.preferences = {}
            row.updated_at = None

        for key, column_name in DOCUMENT_FIELDS.items():
            if key in partial:
                setattr(row, column_name, partial[key])

        self.db.commit()
        self.db.refresh(row)

        return _row_to_profile(row)
