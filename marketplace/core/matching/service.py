# marketplace/core/matching/service.py
"""
Сервис поиска исполнителей.
Отвечает на вопрос «кто может обслужить эту точку прямо сейчас»
и ведёт присутствие исполнителей, по которому идёт отбор.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from marketplace.common.constants import TypeMsg
from marketplace.common.exceptions import ForbiddenError, ProviderNotFoundError
from marketplace.common.logger import log_info
from marketplace.core.matching.models import (
    Candidate,
    LocationUpdate,
    NearbySearchQuery,
    ProviderStatus,
    SearchLimits,
)
from marketplace.core.matching.repository import ProviderPresenceStore, ProviderStore, rank_candidates


class MatchingService:
    """
    Сервис матчинга заказчика с исполнителями.

    Хранилище отбирает исполнителей по услуге, статусу и радиусу;
    сервис повторно применяет радиус, порядок и лимит к ответу хранилища,
    поэтому PostGIS и локальный индекс дают одинаковый результат.
    """

    def __init__(
        self,
        store: ProviderStore,
        default_radius_meters: float = 5000,
        default_limit: int = 10,
        limits: SearchLimits | None = None,
    ) -> None:
        """
        Инициализация сервиса.

        Args:
            store: Гео-хранилище исполнителей
            default_radius_meters: Радиус поиска по умолчанию
            default_limit: Количество кандидатов по умолчанию
            limits: Допустимые диапазоны радиуса и лимита
        """
        self._store = store
        self._default_radius = default_radius_meters
        self._default_limit = default_limit
        self._limits = limits or SearchLimits()

    async def find_nearby(
        self,
        service_id: UUID | str,
        latitude: float,
        longitude: float,
        radius_meters: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> list[Candidate]:
        """
        Ищет исполнителей услуги в радиусе от точки.

        Args:
            service_id: ID услуги
            latitude: Широта
            longitude: Долгота
            radius_meters: Радиус поиска в метрах (в пределах limits)
            limit: Максимальное количество кандидатов (в пределах limits)

        Returns:
            Кандидаты, отсортированные по расстоянию, затем по рейтингу
            и числу выполненных заказов

        Raises:
            InvalidInputError: Параметры вне допустимых диапазонов
            UnavailableError: Хранилище недоступно
        """
        query = NearbySearchQuery.parse(
            limits=self._limits,
            service_id=service_id,
            latitude=latitude,
            longitude=longitude,
            radius_meters=self._default_radius if radius_meters is None else radius_meters,
            limit=self._default_limit if limit is None else limit,
        )

        found = await self._store.query_within_radius(
            query.service_id,
            query.latitude,
            query.longitude,
            query.radius_meters,
            query.limit,
        )

        candidates = rank_candidates(
            [c for c in found if c.distance_meters <= query.radius_meters]
        )[:query.limit]

        await log_info(
            f"Поиск исполнителей: услуга {query.service_id}, "
            f"точка ({query.latitude:.5f}, {query.longitude:.5f}), "
            f"радиус {query.radius_meters:.0f} м, найдено {len(candidates)}",
            type_msg=TypeMsg.DEBUG,
        )
        return candidates


class ProviderPresenceService:
    """
    Присутствие исполнителя: выход в сеть и обновление текущей точки.

    Это те поля, по которым find_nearby отбирает исполнителей.
    Проверку роли делает вызывающий слой; сервис работает с ID аккаунта.
    """

    def __init__(self, store: ProviderPresenceStore) -> None:
        self._store = store

    async def _require_profile(self, user_id: UUID) -> ProviderStatus:
        status = await self._store.get_status_by_user(user_id)
        if status is None:
            raise ProviderNotFoundError()
        return status

    async def set_online(self, user_id: UUID, is_online: bool) -> ProviderStatus:
        """
        Переводит исполнителя в сеть или из сети.

        Raises:
            ProviderNotFoundError: У аккаунта нет профиля исполнителя
            ForbiddenError: Выход в сеть без верификации
            UnavailableError: Хранилище недоступно
        """
        status = await self._require_profile(user_id)
        if is_online and not status.is_verified:
            raise ForbiddenError("Provider must be verified before going online")

        updated = await self._store.set_online(status.provider_id, is_online)
        if updated is None:
            raise ProviderNotFoundError()

        await log_info(
            f"Исполнитель {status.provider_id} {'в сети' if is_online else 'не в сети'}",
            type_msg=TypeMsg.INFO,
        )
        return updated

    async def update_location(self, user_id: UUID, latitude: float, longitude: float) -> None:
        """
        Сохраняет текущую точку исполнителя.

        Raises:
            InvalidInputError: Координаты вне допустимых диапазонов
            ProviderNotFoundError: У аккаунта нет профиля исполнителя
            UnavailableError: Хранилище недоступно
        """
        location = LocationUpdate.parse(latitude, longitude)
        status = await self._require_profile(user_id)

        await self._store.update_location(status.provider_id, location.latitude, location.longitude)
        await log_info(f"Локация исполнителя {status.provider_id} обновлена", type_msg=TypeMsg.DEBUG)
