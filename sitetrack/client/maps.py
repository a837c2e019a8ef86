# SiteTrack Client - Maps Config Loader
# One shared fetch of /api/config per loader instance

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from sitetrack.client.api import ApiClient


logger = logging.getLogger(__name__)

MAPS_KEY = "GOOGLE_MAPS_API_KEY"


class MapsConfigLoader:
    """
    Loads the maps configuration exactly once per instance.

    State lives on the object (loaded, loading, pending waiters), so each
    test or process builds its own loader and passes it to whatever needs
    the maps key.

    Concurrent load() calls share a single request. A failed request
    resets the loader and raises the same error in every waiter; the
    next load() tries again.

    Usage:
        loader = MapsConfigLoader(api)
        config = await loader.load()
        loader.api_key
    """

    def __init__(self, api: "ApiClient"):
        self.api = api
        self.loaded = False
        self.loading = False
        self.config: Optional[dict] = None
        self._waiters: list[asyncio.Future] = []
        self._task: Optional[asyncio.Task] = None

    @property
    def api_key(self) -> Optional[str]:
        return (self.config or {}).get(MAPS_KEY) or None

    @property
    def pending(self) -> int:
        return len(self._waiters)

    async def load(self) -> dict:
        if self.loaded:
            return self.config

        loop = asyncio.get_running_loop()
        waiter = loop.create_future()
        self._waiters.append(waiter)

        if not self.loading:
            self.loading = True
            self._task = loop.create_task(self._fetch())

        return await waiter

    async def _fetch(self) -> None:
        try:
            config = await self.api.config()
        except Exception as e:
            logger.warning("Failed to fetch maps configuration: %s", e)
            self.loading = False
            self._settle(error=e)
            return

        if not config.get(MAPS_KEY):
            logger.warning("Server returned no maps API key")

        self.config = config
        self.loaded = True
        self.loading = False
        self._settle(result=config)

    def _settle(self, result: Optional[dict] = None, error: Optional[BaseException] = None) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if waiter.done():
                continue
            if error is not None:
                waiter.set_exception(error)
            else:
                waiter.set_result(result)

    def reset(self) -> None:
        """Forget the cached configuration (e.g. after switching servers)."""
        self.loaded = False
        self.config = None
