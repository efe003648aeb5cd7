"""Availability, profile and match types shared by the services and routes."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from availability_backend.core import config

Weekday = Literal['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Location(CamelModel):
    query: str = ''
    label: str = ''
    postal_code: str = ''
    lat: float | None = None
    lng: float | None = None
    radius_miles: float = Field(default=config.DEFAULT_RADIUS_MILES, gt=0)

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None


class Slot(CamelModel):
    id: str
    day: Weekday
    start_time: str
    end_time: str
    location: Location = Field(default_factory=Location)
    notes: str = ''
    created_at: datetime
    updated_at: datetime


class Owner(CamelModel):
    user_id: str = ''
    display_name: str = ''
    location: str = ''
    bio: str = ''
    photo_url: str = Field(default='', alias='photoURL')


class Preferences(CamelModel):
    default_radius_miles: float = Field(default=config.DEFAULT_RADIUS_MILES, gt=0)


class Profile(CamelModel):
    user_id: str
    slots: list[Slot] = Field(default_factory=list)
    is_looking: bool = True
    owner: Owner = Field(default_factory=Owner)
    preferences: Preferences = Field(default_factory=Preferences)
    updated_at: datetime | None = None

    @field_validator('slots')
    @classmethod
    def validate_unique_slot_ids(cls, value: list[Slot]) -> list[Slot]:
        seen: set[str] = set()
        for slot in value:
            if slot.id in seen:
                raise ValueError(f'Duplicate slot id: {slot.id}')
            seen.add(slot.id)
        return value


class Overlap(CamelModel):
    user_id: str
    owner: Owner
    my_slot: Slot
    other_slot: Slot
    distance_miles: float | None = None


class MatchGroup(CamelModel):
    user_id: str
    owner: Owner
    overlaps: list[Overlap] = Field(default_factory=list)
