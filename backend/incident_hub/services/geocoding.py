"""Best-effort reverse geocoding for incident locations."""

import logging
from typing import Optional

import httpx

from incident_hub.config import settings
from incident_hub.models.incident import LOCATION_PLACEHOLDER

logger = logging.getLogger(__name__)


class ReverseGeocoder:
    """Resolve coordinates to a display address via a Nominatim-style API.

    Never raises: any failure yields the placeholder label so incident
    creation is not blocked by the lookup.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        enabled: Optional[bool] = None,
    ):
        self.url = url or settings.geocoding_url
        self.enabled = settings.geocoding_enabled if enabled is None else enabled
        self.client = httpx.AsyncClient(
            timeout=timeout_seconds or settings.geocoding_timeout_seconds,
            headers={"User-Agent": settings.geocoding_user_agent},
        )

    async def reverse(self, latitude: float, longitude: float) -> str:
        if not self.enabled:
            return LOCATION_PLACEHOLDER

        try:
            response = await self.client.get(
                self.url,
                params={"lat": latitude, "lon": longitude, "format": "jsonv2"},
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPStatusError, httpx.RequestError, ValueError) as e:
            logger.warning(f"Reverse geocoding failed for ({latitude}, {longitude}): {e}")
            return LOCATION_PLACEHOLDER

        display_name = data.get("display_name") if isinstance(data, dict) else None
        if not display_name:
            return LOCATION_PLACEHOLDER
        return display_name[:500]

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()


reverse_geocoder = ReverseGeocoder()
