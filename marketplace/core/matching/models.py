# marketplace/core/matching/models.py
"""
Модели поиска исполнителей.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

from marketplace.common.exceptions import InvalidInputError


class Candidate(BaseModel):
    """Исполнитель, подходящий под запрос, с вычисленным расстоянием."""

    provider_id: UUID
    provider_name: str
    distance_meters: float = Field(..., ge=0)
    average_rating: float = 0.0
    hourly_rate: Optional[float] = None
    completed_jobs: int = 0
    profile_photo_url: Optional[str] = None
    bio: Optional[str] = None


@dataclass(frozen=True)
class SearchLimits:
    """Допустимые диапазоны радиуса и лимита (секция search конфига)."""
    min_radius_meters: float = 100
    max_radius_meters: float = 50000
    max_limit: int = 50


class NearbySearchQuery(BaseModel):
    """
    Параметры поиска исполнителей рядом с точкой.

    Границы радиуса и лимита берутся из SearchLimits, переданных
    в контексте валидации (по умолчанию 100..50000 м и 1..50).
    """

    model_config = ConfigDict(allow_inf_nan=False)

    service_id: UUID
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    radius_meters: float = Field(5000, gt=0)
    limit: int = Field(10, ge=1)

    @field_validator("radius_meters")
    @classmethod
    def check_radius(cls, v: float, info: ValidationInfo) -> float:
        limits = _limits_from(info)
        if not limits.min_radius_meters <= v <= limits.max_radius_meters:
            raise ValueError(
                f"radius must be within {limits.min_radius_meters:g}..{limits.max_radius_meters:g} m"
            )
        return v

    @field_validator("limit")
    @classmethod
    def check_limit(cls, v: int, info: ValidationInfo) -> int:
        limits = _limits_from(info)
        if v > limits.max_limit:
            raise ValueError(f"limit must not exceed {limits.max_limit}")
        return v

    @classmethod
    def parse(cls, limits: SearchLimits | None = None, **values) -> "NearbySearchQuery":
        """
        Создаёт запрос, превращая ошибки валидации в InvalidInputError.

        Args:
            limits: Диапазоны радиуса и лимита (по умолчанию SearchLimits())

        Raises:
            InvalidInputError: Параметр вне допустимого диапазона
        """
        try:
            return cls.model_validate(
                {k: v for k, v in values.items() if v is not None},
                context={"limits": limits or SearchLimits()},
            )
        except ValidationError as e:
            fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
            raise InvalidInputError(f"Invalid search parameters: {fields}") from e


def _limits_from(info: ValidationInfo) -> SearchLimits:
    context = info.context or {}
    return context.get("limits") or SearchLimits()


@dataclass
class ProviderSnapshot:
    """
    Состояние исполнителя для локального индекса.

    Повторяет поля, по которым PostGIS-запрос отбирает исполнителей.
    """
    provider_id: UUID
    provider_name: str
    user_id: Optional[UUID] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    active_service_ids: frozenset[UUID] = field(default_factory=frozenset)
    is_online: bool = False
    is_verified: bool = False
    account_active: bool = True
    average_rating: float = 0.0
    completed_jobs: int = 0
    hourly_rate: Optional[float] = None
    profile_photo_url: Optional[str] = None
    bio: Optional[str] = None

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class ProviderStatus(BaseModel):
    """Присутствие исполнителя: в сети ли он и где находится."""

    provider_id: UUID
    user_id: Optional[UUID] = None
    is_online: bool
    is_verified: bool
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class LocationUpdate(BaseModel):
    """Новая текущая точка исполнителя."""

    model_config = ConfigDict(allow_inf_nan=False)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    @classmethod
    def parse(cls, latitude: float, longitude: float) -> "LocationUpdate":
        try:
            return cls(latitude=latitude, longitude=longitude)
        except ValidationError as e:
            fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
            raise InvalidInputError(f"Invalid location: {fields}") from e
