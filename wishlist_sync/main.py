import asyncio
import logging
import signal
import sys
import uvicorn

from .config import settings
from .state import WishListStore
from .clients.wishlist_client import WishListClient
from .engine import SyncCoordinator
from .errors import WishListError
from . import server

# Setup logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
# Silence noisy libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger("main")

# How often the refresh loop checks whether the list has gone stale
REFRESH_CHECK_SECONDS = 300

class WishListService:
    def __init__(self):
        self.running = True
        self.store = WishListStore(settings.STATE_PATH)
        self.client = WishListClient()
        self.coordinator = SyncCoordinator(self.store, self.client)

        # Link coordinator to server module
        server.coordinator = self.coordinator

    async def refresh_once(self):
        try:
            if await self.coordinator.refresh_if_stale():
                state = self.store.snapshot()
                logger.info(f"Wish list refreshed: {len(state.current.rolls)} rolls from {state.source}")
        except WishListError as e:
            server.notifier.error(server.NOTIFICATION_TITLE, str(e))
        except Exception as e:
            logger.error(f"Error refreshing wish list: {e}", exc_info=True)

    async def refresh_loop(self):
        if settings.WISHLIST_REFRESH_ON_START:
            await self.refresh_once()
        while self.running:
            await asyncio.sleep(REFRESH_CHECK_SECONDS)
            await self.refresh_once()

    async def start(self):
        tasks = [asyncio.create_task(self.refresh_loop())]

        if settings.HTTP_SERVER_ENABLED:
            config = uvicorn.Config(server.app, host="0.0.0.0", port=settings.HTTP_SERVER_PORT, log_level="warning")
            server_task = uvicorn.Server(config).serve()
            tasks.append(asyncio.create_task(server_task))

        try:
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            pass
        finally:
            await self.client.aclose()

def handle_sigterm(sig, frame):
    logger.info("Received SIGTERM, shutting down...")
    sys.exit(0)

if __name__ == "__main__":
    signal.signal(signal.SIGTERM, handle_sigterm)
    service = WishListService()
    try:
        asyncio.run(service.start())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
