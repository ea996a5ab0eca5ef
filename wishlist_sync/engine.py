import asyncio
import logging
import threading
from datetime import datetime, timezone
from pydantic import BaseModel
from typing import Callable, Optional
from .clients.wishlist_client import WishListClient
from .config import settings
from .errors import InvalidSourceError, WishListError
from .models import LOCAL_FILE_SOURCE, SyncState, WishListAndInfo
from .parser import parse
from .state import WishListStore
from .validator import SUGGESTED_SOURCES, is_admissible_source

logger = logging.getLogger(__name__)

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

class SyncResult(BaseModel):
    committed: bool  # False when a newer sync already landed
    state: SyncState

class SyncCoordinator:
    """
    validate -> fetch or read -> parse -> replace. Nothing touches the store until
    a sync has fully succeeded, and each sync carries a token taken when it starts
    so a slow completion never overwrites a newer one.
    """

    def __init__(
        self,
        store: WishListStore,
        client: WishListClient,
        clock: Callable[[], datetime] = utc_now,
        default_source: Optional[str] = None
    ):
        self.store = store
        self.client = client
        self.clock = clock
        self.default_source = default_source if default_source is not None else settings.WISHLIST_SOURCE
        self._token_lock = threading.Lock()
        self._last_token = 0
        self._committed_token = 0

    def _begin(self) -> int:
        with self._token_lock:
            self._last_token += 1
            return self._last_token

    def _commit(self, token: int, parsed: WishListAndInfo, source: str, clear_first: bool = False) -> bool:
        with self._token_lock:
            if token <= self._committed_token:
                logger.info(f"Discarding superseded sync #{token} from {source} (#{self._committed_token} already applied)")
                return False
            self._committed_token = token
            if clear_first:
                self.store.clear()
            self.store.replace(parsed, source, self.clock())
            return True

    async def sync_from_url(self, source: str) -> SyncResult:
        candidate = source.strip() if isinstance(source, str) else source
        if not is_admissible_source(candidate):
            logger.warning(f"Rejected wish list source {candidate!r}")
            raise InvalidSourceError(str(candidate))

        token = self._begin()
        logger.info(f"Sync #{token}: updating wish list from {candidate}")
        try:
            text = await self.client.fetch(candidate)
            parsed = parse(text)
        except WishListError as e:
            logger.warning(f"Sync #{token} failed, keeping current wish list: {e}")
            raise

        # Disk writes happen off the event loop
        committed = await asyncio.to_thread(self._commit, token, parsed, candidate)
        return SyncResult(committed=committed, state=self.store.snapshot())

    def sync_from_text(self, raw_text: str, source_label: str = LOCAL_FILE_SOURCE, clear_first: bool = False) -> SyncResult:
        """
        Import text obtained out-of-band (e.g. an uploaded file). With clear_first the
        store is emptied right before the new list is written; either way nothing
        changes when the text fails to parse.
        """
        token = self._begin()
        logger.info(f"Sync #{token}: importing wish list text from {source_label}")
        try:
            parsed = parse(raw_text)
        except WishListError as e:
            logger.warning(f"Sync #{token} failed, keeping current wish list: {e}")
            raise

        committed = self._commit(token, parsed, source_label, clear_first=clear_first)
        return SyncResult(committed=committed, state=self.store.snapshot())

    def clear(self) -> bool:
        """Clear the active list; syncs started earlier can no longer land afterwards."""
        token = self._begin()
        with self._token_lock:
            if token <= self._committed_token:
                return False
            self._committed_token = token
            self.store.clear()
            return True

    async def reset_to_suggested(self, name: str) -> SyncResult:
        source = SUGGESTED_SOURCES.get(name)
        if source is None:
            raise InvalidSourceError(name)
        return await self.sync_from_url(source)

    async def refresh_if_stale(self, max_age_seconds: Optional[int] = None) -> bool:
        """
        Re-fetch the configured source when it has never been loaded or is older than
        max_age_seconds. Returns True when a sync ran.
        """
        if max_age_seconds is None:
            max_age_seconds = settings.WISHLIST_REFRESH_INTERVAL_SECONDS

        snap = self.store.snapshot()
        source = snap.source or self.default_source
        if not source or source == LOCAL_FILE_SOURCE or not is_admissible_source(source):
            logger.debug(f"Source {source!r} is not refreshable")
            return False

        if snap.last_updated is not None:
            age = (self.clock() - snap.last_updated).total_seconds()
            if age < max_age_seconds:
                logger.debug(f"Wish list is fresh ({age:.0f}s old)")
                return False

        await self.sync_from_url(source)
        return True
