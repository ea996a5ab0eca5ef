import json
import logging
import os
import fcntl
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional
from .models import SyncState, WishListAndInfo, EMPTY_WISHLIST
from .config import settings

logger = logging.getLogger(__name__)

class WishListStore:
    """
    Sole owner of the active wish list, its source and the last sync time.
    Every transition swaps the whole SyncState under a lock, so readers never see
    new rolls paired with an old timestamp.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path) if path else None
        self.read_only = False
        self._lock = threading.Lock()
        self._save_lock = threading.Lock()
        self._state = SyncState()
        self._version = 0
        self._saved_version = 0
        self._load()

    def _load(self):
        if self.path is None:
            return
        if not self.path.exists():
            logger.info(f"No state file found at {self.path}, starting empty.")
            return

        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
                self._state = SyncState.model_validate(data)
            logger.info(f"Loaded {len(self._state.current.rolls)} wish list rolls from {self.path}")
        except Exception as e:
            logger.error(f"Failed to load state: {e}. Starting fresh.", exc_info=True)

    def _save(self, state: SyncState, version: int):
        """Write state to disk outside the state lock; an older version never overwrites a newer one."""
        if self.path is None or not settings.PERSIST_ENABLED or self.read_only:
            return

        payload = json.dumps(state.model_dump(mode="json"), indent=2)
        tmp_path = self.path.with_suffix('.tmp')
        with self._save_lock:
            if version <= self._saved_version:
                return
            try:
                with open(tmp_path, 'w') as f:
                    try:
                        fcntl.flock(f, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    except BlockingIOError:
                        logger.warning("Could not acquire lock for state save. Skipping save cycle.")
                        return

                    try:
                        f.write(payload)
                        f.flush()
                        os.fsync(f.fileno())
                    finally:
                        fcntl.flock(f, fcntl.LOCK_UN)

                os.rename(tmp_path, self.path)
                self._saved_version = version

            except OSError as e:
                logger.error(f"Failed to save state to {self.path}: {e}")
                # Memory stays authoritative; stop writing for this run
                self.read_only = True

    def _swap(self, build: Callable[[SyncState], SyncState]):
        with self._lock:
            self._state = build(self._state)
            self._version += 1
            new_state, version = self._state, self._version
        self._save(new_state, version)

    def replace(self, new_data: WishListAndInfo, new_source: str, now: datetime):
        self._swap(lambda old: SyncState(source=new_source, last_updated=now, current=new_data))
        logger.info(f"Active wish list replaced: {len(new_data.rolls)} rolls from {new_source}")

    def clear(self):
        """Empty the list and forget the sync time; the configured source is kept."""
        self._swap(lambda old: SyncState(source=old.source, last_updated=None, current=EMPTY_WISHLIST))
        logger.info("Active wish list cleared")

    def snapshot(self) -> SyncState:
        # Rolls and lists are frozen, so a shallow copy cannot reach the stored state
        with self._lock:
            return self._state.model_copy()
