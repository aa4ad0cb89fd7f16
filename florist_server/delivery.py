"""Delivery date availability."""

import logging
from datetime import date
from typing import Optional

from .decode import format_display_date, format_gateway_date, parse_gateway_date
from .errors import FloristError
from .florist_client import FloristClient
from .models import DeliveryDateSet, DeliveryStatus

logger = logging.getLogger(__name__)

MIN_POSTAL_CODE_LENGTH = 5

__all__ = [
    "DeliveryResolver",
    "MIN_POSTAL_CODE_LENGTH",
    "format_display_date",
    "format_gateway_date",
    "parse_gateway_date",
]


class DeliveryResolver:
    """Looks up delivery dates for a postal code.

    The bulk date list is cached for the postal code it was fetched for and
    is dropped whenever the postal code changes. Single-date checks consult
    that list first and only go to the gateway for dates outside it.
    """

    def __init__(self, client: FloristClient) -> None:
        self.client = client
        self.current: Optional[DeliveryDateSet] = None
        self._postal_code: Optional[str] = None

    def invalidate(self) -> None:
        self.current = None
        self._postal_code = None

    async def fetch_available_dates(self, postal_code: str) -> DeliveryDateSet:
        postal_code = postal_code.strip()
        if len(postal_code) < MIN_POSTAL_CODE_LENGTH:
            self.invalidate()
            return DeliveryDateSet(postal_code=postal_code)

        self._postal_code = postal_code
        try:
            dates = await self.client.check_delivery_dates(postal_code)
        except FloristError as e:
            logger.error(f"Error checking delivery dates for {postal_code}: {e}")
            result = DeliveryDateSet(postal_code=postal_code, status=DeliveryStatus.UNDETERMINED)
        else:
            status = DeliveryStatus.AVAILABLE if dates else DeliveryStatus.NONE_AVAILABLE
            result = DeliveryDateSet(postal_code=postal_code, dates=dates, status=status)
            logger.info(f"Found {len(dates)} delivery date(s) for {postal_code}")

        # The postal code may have changed while the request was in flight.
        if self._postal_code == postal_code:
            self.current = result
        else:
            logger.debug(f"Discarding stale delivery dates for {postal_code}")
        return result

    def cached_dates(self, postal_code: str) -> list[date]:
        if self.current is None or self.current.postal_code != postal_code.strip():
            return []
        return self.current.dates

    async def is_date_available(self, postal_code: str, day: date) -> bool:
        """
        Check a delivery date.

        Raises:
            GatewayError: If the remote check fails
        """
        if day in self.cached_dates(postal_code):
            return True
        return await self.client.check_delivery_date(postal_code.strip(), day)
