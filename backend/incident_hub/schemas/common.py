"""Common schemas used across the application."""

import math

from pydantic import BaseModel, Field

KM_PER_DEGREE = 111.0


class BoundingBox(BaseModel):
    """Bounding box for spatial queries."""

    min_lon: float = Field(..., ge=-180, le=180)
    min_lat: float = Field(..., ge=-90, le=90)
    max_lon: float = Field(..., ge=-180, le=180)
    max_lat: float = Field(..., ge=-90, le=90)

    @classmethod
    def around(cls, latitude: float, longitude: float, radius_km: float) -> "BoundingBox":
        """
        Degree box approximating a circle of ``radius_km`` around a point.

        Latitude spans ``radius/111`` degrees; longitude spans
        ``radius/(111*cos(lat))``, which covers every longitude at the poles.
        """
        lat_range = radius_km / KM_PER_DEGREE
        cos_lat = math.cos(math.radians(latitude))
        if cos_lat < 1e-9:
            lon_range = 360.0
        else:
            lon_range = radius_km / (KM_PER_DEGREE * cos_lat)

        return cls(
            min_lat=max(-90.0, latitude - lat_range),
            max_lat=min(90.0, latitude + lat_range),
            min_lon=max(-180.0, longitude - lon_range),
            max_lon=min(180.0, longitude + lon_range),
        )
