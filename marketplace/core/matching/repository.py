# marketplace/core/matching/repository.py
"""
Источники исполнителей для гео-поиска.

- ProviderRepository: PostGIS (ST_DWithin/ST_Distance в сферическом режиме)
- InMemoryProviderIndex: тот же отбор локально, через haversine

Оба источника также меняют присутствие исполнителя (в сети, текущая точка).
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Any, Protocol
from uuid import UUID

from marketplace.common.external import call_external
from marketplace.core.matching.geo import calculate_distance
from marketplace.core.matching.models import Candidate, ProviderSnapshot, ProviderStatus
from marketplace.infra.database import DatabaseManager


class ProviderStore(Protocol):
    """Контракт гео-хранилища исполнителей."""

    async def query_within_radius(
        self,
        service_id: UUID,
        latitude: float,
        longitude: float,
        radius_meters: float,
        limit: int,
    ) -> list[Candidate]:
        ...


class ProviderPresenceStore(Protocol):
    """Контракт хранилища присутствия исполнителей (в сети, локация)."""

    async def get_status_by_user(self, user_id: UUID) -> ProviderStatus | None:
        ...

    async def set_online(self, provider_id: UUID, is_online: bool) -> ProviderStatus | None:
        ...

    async def update_location(self, provider_id: UUID, latitude: float, longitude: float) -> None:
        ...


# $1 широта, $2 долгота (ST_MakePoint принимает lon, lat).
# use_spheroid = false: сфера со средним радиусом, как в calculate_distance
_NEARBY_SQL = """
    SELECT
        p.id AS provider_id,
        u.name AS provider_name,
        ST_Distance(
            p.current_location::geography,
            ST_SetSRID(ST_MakePoint($2, $1), 4326)::geography,
            false
        ) AS distance_meters,
        p.average_rating,
        p.hourly_rate,
        p.completed_jobs,
        u.profile_photo_url,
        p.bio
    FROM providers p
    JOIN users u ON p.user_id = u.id
    JOIN provider_services ps ON p.id = ps.provider_id
    WHERE
        ps.service_id = $3
        AND ps.is_active = TRUE
        AND p.is_online = TRUE
        AND p.is_verified = TRUE
        AND u.status = 'active'
        AND p.current_location IS NOT NULL
        AND ST_DWithin(
            p.current_location::geography,
            ST_SetSRID(ST_MakePoint($2, $1), 4326)::geography,
            $4,
            false
        )
    ORDER BY
        distance_meters ASC,
        p.average_rating DESC,
        p.completed_jobs DESC
    LIMIT $5
"""

_STATUS_COLUMNS = """
    id AS provider_id,
    user_id,
    is_online,
    is_verified,
    ST_Y(current_location) AS latitude,
    ST_X(current_location) AS longitude
"""

_STATUS_BY_USER_SQL = f"SELECT {_STATUS_COLUMNS} FROM providers WHERE user_id = $1"

_SET_ONLINE_SQL = f"""
    UPDATE providers
    SET is_online = $1, updated_at = NOW()
    WHERE id = $2
    RETURNING {_STATUS_COLUMNS}
"""

# ST_MakePoint принимает lon, lat
_UPDATE_LOCATION_SQL = """
    UPDATE providers
    SET current_location = ST_SetSRID(ST_MakePoint($1, $2), 4326),
        updated_at = NOW()
    WHERE id = $3
"""

_LOCATION_HISTORY_SQL = """
    INSERT INTO provider_locations (provider_id, location)
    VALUES ($1, ST_SetSRID(ST_MakePoint($2, $3), 4326))
"""


def _to_candidate(row: Any) -> Candidate:
    data = dict(row)
    hourly_rate = data.get("hourly_rate")
    return Candidate(
        provider_id=data["provider_id"],
        provider_name=data["provider_name"],
        distance_meters=max(float(data["distance_meters"]), 0.0),
        average_rating=float(data.get("average_rating") or 0),
        hourly_rate=float(hourly_rate) if hourly_rate is not None else None,
        completed_jobs=int(data.get("completed_jobs") or 0),
        profile_photo_url=data.get("profile_photo_url"),
        bio=data.get("bio"),
    )


class ProviderRepository:
    """Гео-поиск исполнителей в PostgreSQL/PostGIS."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def query_within_radius(
        self,
        service_id: UUID,
        latitude: float,
        longitude: float,
        radius_meters: float,
        limit: int,
    ) -> list[Candidate]:
        """
        Возвращает подходящих исполнителей в радиусе, отсортированных
        по расстоянию, рейтингу и числу выполненных заказов.
        """
        rows = await call_external(
            self._db.fetch(_NEARBY_SQL, latitude, longitude, service_id, float(radius_meters), limit),
            "provider search",
        )
        return [_to_candidate(row) for row in rows]

    async def get_status_by_user(self, user_id: UUID) -> ProviderStatus | None:
        """Присутствие исполнителя по ID аккаунта (None, если профиля нет)."""
        row = await call_external(self._db.fetchrow(_STATUS_BY_USER_SQL, user_id), "provider lookup")
        return ProviderStatus(**dict(row)) if row else None

    async def set_online(self, provider_id: UUID, is_online: bool) -> ProviderStatus | None:
        row = await call_external(
            self._db.fetchrow(_SET_ONLINE_SQL, is_online, provider_id),
            "provider status update",
        )
        return ProviderStatus(**dict(row)) if row else None

    async def update_location(self, provider_id: UUID, latitude: float, longitude: float) -> None:
        """Сохраняет текущую точку и пишет её в историю перемещений (одна транзакция)."""

        async def write() -> None:
            async with self._db.transaction() as conn:
                await conn.execute(_UPDATE_LOCATION_SQL, longitude, latitude, provider_id)
                await conn.execute(_LOCATION_HISTORY_SQL, provider_id, longitude, latitude)

        await call_external(write(), "provider location update")


class InMemoryProviderIndex:
    """Локальный индекс исполнителей с тем же предикатом отбора."""

    def __init__(self, snapshots: list[ProviderSnapshot] | None = None) -> None:
        self._providers: dict[UUID, ProviderSnapshot] = {}
        self._lock = threading.Lock()
        for snapshot in snapshots or []:
            self.upsert(snapshot)

    def upsert(self, snapshot: ProviderSnapshot) -> None:
        with self._lock:
            self._providers[snapshot.provider_id] = snapshot

    def remove(self, provider_id: UUID) -> bool:
        with self._lock:
            return self._providers.pop(provider_id, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._providers)

    async def query_within_radius(
        self,
        service_id: UUID,
        latitude: float,
        longitude: float,
        radius_meters: float,
        limit: int,
    ) -> list[Candidate]:
        with self._lock:
            snapshots = list(self._providers.values())

        candidates = []
        for snapshot in snapshots:
            if not is_eligible(snapshot, service_id):
                continue
            distance = calculate_distance(latitude, longitude, snapshot.latitude, snapshot.longitude)
            if distance > radius_meters:
                continue
            candidates.append(
                Candidate(
                    provider_id=snapshot.provider_id,
                    provider_name=snapshot.provider_name,
                    distance_meters=distance,
                    average_rating=snapshot.average_rating,
                    hourly_rate=snapshot.hourly_rate,
                    completed_jobs=snapshot.completed_jobs,
                    profile_photo_url=snapshot.profile_photo_url,
                    bio=snapshot.bio,
                )
            )

        return rank_candidates(candidates)[:limit]

    async def get_status_by_user(self, user_id: UUID) -> ProviderStatus | None:
        with self._lock:
            snapshot = self._find_by_user(user_id)
        return _to_status(snapshot) if snapshot else None

    async def set_online(self, provider_id: UUID, is_online: bool) -> ProviderStatus | None:
        with self._lock:
            snapshot = self._providers.get(provider_id)
            if snapshot is None:
                return None
            snapshot = replace(snapshot, is_online=is_online)
            self._providers[provider_id] = snapshot
        return _to_status(snapshot)

    async def update_location(self, provider_id: UUID, latitude: float, longitude: float) -> None:
        with self._lock:
            snapshot = self._providers.get(provider_id)
            if snapshot is not None:
                self._providers[provider_id] = replace(snapshot, latitude=latitude, longitude=longitude)

    def _find_by_user(self, user_id: UUID) -> ProviderSnapshot | None:
        for snapshot in self._providers.values():
            if snapshot.user_id == user_id:
                return snapshot
        return None


def _to_status(snapshot: ProviderSnapshot) -> ProviderStatus:
    return ProviderStatus(
        provider_id=snapshot.provider_id,
        user_id=snapshot.user_id,
        is_online=snapshot.is_online,
        is_verified=snapshot.is_verified,
        latitude=snapshot.latitude,
        longitude=snapshot.longitude,
    )


def is_eligible(snapshot: ProviderSnapshot, service_id: UUID) -> bool:
    """Исполнитель предлагает услугу, в сети, верифицирован, активен и с локацией."""
    return (
        service_id in snapshot.active_service_ids
        and snapshot.is_online
        and snapshot.is_verified
        and snapshot.account_active
        and snapshot.has_location
    )


def rank_candidates(candidates: list[Candidate]) -> list[Candidate]:
    """Расстояние по возрастанию, рейтинг и число выполненных заказов по убыванию."""
    return sorted(
        candidates,
        key=lambda c: (c.distance_meters, -c.average_rating, -c.completed_jobs),
    )
