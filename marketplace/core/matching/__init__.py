"""Гео-поиск, ранжирование и присутствие исполнителей."""

from marketplace.core.matching.geo import EARTH_RADIUS_METERS, calculate_distance
from marketplace.core.matching.models import (
    Candidate,
    LocationUpdate,
    NearbySearchQuery,
    ProviderSnapshot,
    ProviderStatus,
    SearchLimits,
)
from marketplace.core.matching.repository import (
    InMemoryProviderIndex,
    ProviderPresenceStore,
    ProviderRepository,
    ProviderStore,
    is_eligible,
    rank_candidates,
)
from marketplace.core.matching.service import MatchingService, ProviderPresenceService

__all__ = [
    "Candidate",
    "EARTH_RADIUS_METERS",
    "InMemoryProviderIndex",
    "LocationUpdate",
    "MatchingService",
    "NearbySearchQuery",
    "ProviderPresenceService",
    "ProviderPresenceStore",
    "ProviderRepository",
    "ProviderSnapshot",
    "ProviderStatus",
    "ProviderStore",
    "SearchLimits",
    "calculate_distance",
    "is_eligible",
    "rank_candidates",
]
