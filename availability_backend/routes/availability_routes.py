from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from availability_backend.database import SessionLocal, ensure_profile_schema
from availability_backend.schemas.availability import CamelModel, Location, MatchGroup, Owner, Profile
from availability_backend.services.location_resolver import LocationStrategy, default_strategies, resolve_location
from availability_backend.services.matching import compute_matches, matches_for_user
from availability_backend.services.profile_store import ProfileStore
from availability_backend.services.profiles import (
    delete_slot,
    save_slot,
    set_default_radius,
    set_looking_for_matches,
)
from availability_backend.services.slot_normalizer import SlotValidationError

router = APIRouter(tags=['availability'])

MAX_SLOT_NOTES_LENGTH = 600
DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'


class LocationInput(CamelModel):
    query: str | None = None
    label: str | None = None
    postal_code: str | None = None
    lat: float | None = None
    lng: float | None = None
    radius_miles: float | str | None = None


class SlotInput(CamelModel):
    id: str | None = None
    day: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    location: LocationInput | None = None
    notes: str | None = None
    created_at: datetime | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_SLOT_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_SLOT_NOTES_LENGTH} characters or fewer.')

        return normalized


class SaveSlotRequest(CamelModel):
    slot: SlotInput
    owner: Owner | None = None


class MatchRequest(CamelModel):
    my_profile: Profile | None = None
    other_profiles: list[Profile] = Field(default_factory=list)


class LookingRequest(CamelModel):
    is_looking: bool


class DefaultRadiusRequest(CamelModel):
    default_radius_miles: float | str | None = None


def ensure_database_ready() -> None:
    try:
        ensure_profile_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_location_strategies() -> list[LocationStrategy]:
    return default_strategies()


def require_user_id(user_id: str) -> str:
    normalized = user_id.strip()
    if not normalized:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='User id is required.',
        )
    return normalized


def _database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


@router.post('/matches', response_model=list[MatchGroup])
def compute_match_groups(data: MatchRequest):
    return compute_matches(data.my_profile, data.other_profiles)


@router.post('/locations/resolve', response_model=Location)
async def resolve_location_reference(
    data: LocationInput,
    strategies: list[LocationStrategy] = Depends(get_location_strategies),
):
    return await resolve_location(data.model_dump(by_alias=True, exclude_none=True), strategies=strategies)


@router.get('/profiles/{user_id}', response_model=Profile)
def get_profile(user_id: str, db: Session = Depends(get_db)):
    normalized_user_id = require_user_id(user_id)

    ensure_database_ready()

    try:
        profile = ProfileStore(db).get_profile(normalized_user_id)
    except SQLAlchemyError as exc:
        raise _database_unavailable() from exc

    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Availability profile not found.',
        )

    return profile


@router.get('/profiles/{user_id}/matches', response_model=list[MatchGroup])
def list_profile_matches(user_id: str, db: Session = Depends(get_db)):
    normalized_user_id = require_user_id(user_id)

    ensure_database_ready()

    try:
        snapshot = ProfileStore(db).get_latest_snapshot()
    except SQLAlchemyError as exc:
        raise _database_unavailable() from exc

    return matches_for_user(snapshot, normalized_user_id)


@router.put('/profiles/{user_id}/slots', response_model=Profile)
async def save_profile_slot(
    user_id: str,
    data: SaveSlotRequest,
    db: Session = Depends(get_db),
    strategies: list[LocationStrategy] = Depends(get_location_strategies),
):
    normalized_user_id = require_user_id(user_id)

    ensure_database_ready()

    try:
        return await save_slot(
            ProfileStore(db),
            normalized_user_id,
            data.slot.model_dump(by_alias=True, exclude_none=True),
            owner=data.owner,
            strategies=strategies,
        )
    except SlotValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable() from exc


@router.delete('/profiles/{user_id}/slots/{slot_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_profile_slot(user_id: str, slot_id: str, db: Session = Depends(get_db)):
    normalized_user_id = require_user_id(user_id)

    ensure_database_ready()

    try:
        delete_slot(ProfileStore(db), normalized_user_id, slot_id.strip())
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable() from exc


@router.put('/profiles/{user_id}/looking', response_model=Profile)
def update_looking_for_matches(user_id: str, data: LookingRequest, db: Session = Depends(get_db)):
    normalized_user_id = require_user_id(user_id)

    ensure_database_ready()

    try:
        return set_looking_for_matches(ProfileStore(db), normalized_user_id, data.is_looking)
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable() from exc


@router.put('/profiles/{user_id}/preferences', response_model=Profile)
def update_default_radius(user_id: str, data: DefaultRadiusRequest, db: Session = Depends(get_db)):
    normalized_user_id = require_user_id(user_id)

    ensure_database_ready()

    try:
        return set_default_radius(ProfileStore(db), normalized_user_id, data.default_radius_miles)
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable() from exc
