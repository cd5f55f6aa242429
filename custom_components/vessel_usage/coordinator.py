"""Home Assistant update coordinator driving periodic usage passes."""

from __future__ import annotations

from datetime import timedelta
import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from .const import DEFAULT_UPDATE_INTERVAL, DOMAIN
from .models import UsageSnapshot
from .usage import UsageCoordinator

_LOGGER = logging.getLogger(__name__)


class VesselUsageCoordinator(DataUpdateCoordinator[UsageSnapshot]):
    """Trigger a usage pass on every refresh and publish the merged snapshot."""

    def __init__(
        self,
        hass: HomeAssistant,
        usage: UsageCoordinator,
        config_entry: ConfigEntry | None = None,
        update_interval: int = DEFAULT_UPDATE_INTERVAL,
    ) -> None:
        """Initialize the coordinator."""
        super().__init__(
            hass,
            _LOGGER,
            config_entry=config_entry,
            name=DOMAIN,
            update_interval=timedelta(seconds=update_interval),
        )
        self.usage = usage

    async def _async_update_data(self) -> UsageSnapshot:
        """Run a pass; after the first good pass, failures keep the last snapshot."""
        try:
            ran = await self.usage.async_calculate_all()
        except Exception as exc:
            if not self.usage.is_ready:
                raise UpdateFailed(f"Usage calculation failed: {exc}") from exc
            _LOGGER.warning(
                "Usage calculation failed, serving results from %s: %s",
                self.usage.last_calculated,
                exc,
            )
            return self.usage.get_usage_data()

        if not ran:
            _LOGGER.debug("Previous pass still running; publishing cached results")
        return self.usage.get_usage_data()

    def shutdown(self) -> None:
        """Drop cached results."""
        self.usage.stop()
