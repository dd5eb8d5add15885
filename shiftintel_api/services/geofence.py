import math
from typing import Optional, Sequence

from shiftintel_api.services.engine.config import GeoBand


class GeofenceService:
    EARTH_RADIUS_KM = 6371.0

    @staticmethod
    def calculate_distance_km(lat1, lon1, lat2, lon2) -> Optional[float]:
        """
        Great circle distance between two points (decimal degrees) using the Haversine formula.
        Returns kilometres, or None when any coordinate is missing.
        """
        if lat1 is None or lon1 is None or lat2 is None or lon2 is None:
            return None

        # Convert to float just in case they are Decimal or strings
        lat1, lon1, lat2, lon2 = map(float, [lat1, lon1, lat2, lon2])

        phi1 = math.radians(lat1)
        phi2 = math.radians(lat2)
        dphi = math.radians(lat2 - lat1)
        dlambda = math.radians(lon2 - lon1)

        a = math.sin(dphi / 2.0)**2 + \
            math.cos(phi1) * math.cos(phi2) * \
            math.sin(dlambda / 2.0)**2

        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

        return GeofenceService.EARTH_RADIUS_KM * c

    @staticmethod
    def band_points(distance_km: Optional[float], bands: Sequence[GeoBand], far_penalty: int) -> int:
        """
        Banded proximity score: first band whose limit the distance is under wins.
        Unknown distance scores 0; beyond every band scores far_penalty.
        """
        if distance_km is None:
            return 0
        for band in bands:
            if distance_km < band.max_km:
                return band.points
        return far_penalty
