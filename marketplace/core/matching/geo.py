# marketplace/core/matching/geo.py
import math

# Средний радиус Земли, им же пользуется PostGIS в сферическом режиме
EARTH_RADIUS_METERS = 6371008.8


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Вычисляет расстояние между двумя точками (в метрах) по формуле Haversine.
    """
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (math.sin(dlat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(dlon / 2) ** 2)

    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_METERS * c


def offset_north(latitude: float, longitude: float, meters: float) -> tuple[float, float]:
    """Точка в ``meters`` метрах к северу от исходной (по меридиану)."""
    return latitude + math.degrees(meters / EARTH_RADIUS_METERS), longitude
