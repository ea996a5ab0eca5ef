import asyncio
import threading
import unittest
from datetime import datetime, timedelta, timezone
from wishlist_sync.engine import SyncCoordinator
from wishlist_sync.errors import FetchError, InvalidSourceError, ParseError
from wishlist_sync.models import LOCAL_FILE_SOURCE
from wishlist_sync.state import WishListStore
from wishlist_sync.validator import SUGGESTED_SOURCES

URL_A = "https://raw.githubusercontent.com/someone/lists/main/a.txt"
URL_B = "https://gist.githubusercontent.com/someone/abc/raw/b.txt"

class FakeClient:
    """Serves canned bodies per URL; an Exception value is raised instead."""

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.gates = {}
        self.calls = []

    async def fetch(self, source):
        self.calls.append(source)
        gate = self.gates.get(source)
        if gate is not None:
            await gate.wait()
        body = self.responses[source]
        if isinstance(body, Exception):
            raise body
        return body

class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

class TestSyncCoordinator(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.store = WishListStore()
        self.client = FakeClient({
            URL_A: "title:List A\ndimwishlist:item=1&perks=2\n",
            URL_B: "title:List B\ndimwishlist:item=3&perks=4\ndimwishlist:item=-5\n",
        })
        self.clock = FakeClock()
        self.sync = SyncCoordinator(self.store, self.client, clock=self.clock, default_source=URL_A)

    async def test_sync_from_url(self):
        result = await self.sync.sync_from_url(URL_A)
        self.assertTrue(result.committed)
        state = self.store.snapshot()
        self.assertEqual(state.source, URL_A)
        self.assertEqual(state.current.title, "List A")
        self.assertEqual(state.last_updated, self.clock.now)

    async def test_source_is_trimmed(self):
        await self.sync.sync_from_url(f"  {URL_A}\n")
        self.assertEqual(self.client.calls, [URL_A])
        self.assertEqual(self.store.snapshot().source, URL_A)

    async def test_rejected_source_never_fetches(self):
        self.sync.sync_from_text("itemA wish perk1\n")
        before = self.store.snapshot()
        with self.assertRaises(InvalidSourceError):
            await self.sync.sync_from_url("https://evil.example/list.txt")
        self.assertEqual(self.client.calls, [])
        self.assertEqual(self.store.snapshot(), before)

    async def test_failed_fetch_keeps_previous(self):
        await self.sync.sync_from_url(URL_A)
        first = self.store.snapshot()
        self.client.responses[URL_B] = FetchError(URL_B, "HTTP 500", status_code=500)
        self.clock.now += timedelta(hours=1)
        with self.assertRaises(FetchError):
            await self.sync.sync_from_url(URL_B)
        self.assertEqual(self.store.snapshot(), first)

    async def test_failed_parse_keeps_previous(self):
        await self.sync.sync_from_url(URL_A)
        first = self.store.snapshot()
        self.client.responses[URL_B] = "dimwishlist:item=oops\n"
        with self.assertRaises(ParseError):
            await self.sync.sync_from_url(URL_B)
        self.assertEqual(self.store.snapshot(), first)

    def test_sync_from_text_scenario(self):
        result = self.sync.sync_from_text("title: Test\nitemA wish perk1,perk2\n", "local")
        self.assertTrue(result.committed)
        state = self.store.snapshot()
        self.assertEqual(len(state.current.rolls), 1)
        self.assertEqual(state.current.title, "Test")
        self.assertEqual(state.source, "local")

    def test_sync_from_text_parse_failure(self):
        self.sync.sync_from_text("title:Keep\nitemA wish perk1\n")
        before = self.store.snapshot()
        with self.assertRaises(ParseError):
            self.sync.sync_from_text("347366834 maybe 1,2\n", clear_first=True)
        self.assertEqual(self.store.snapshot(), before)

    def test_sync_from_text_clear_first(self):
        self.sync.sync_from_text("itemA wish perk1\n")
        cleared = []
        original_clear = self.store.clear

        def tracking_clear():
            original_clear()
            cleared.append(self.store.snapshot())

        self.store.clear = tracking_clear
        self.sync.sync_from_text("itemB trash perk2\n", clear_first=True)
        self.assertEqual(len(cleared), 1)
        self.assertEqual(len(cleared[0].current.rolls), 0)
        self.assertEqual(self.store.snapshot().current.rolls[0].item_id, "itemB")

    def test_resync_is_idempotent(self):
        text = "title:Same\ndimwishlist:item=1&perks=2,3\n"
        self.sync.sync_from_text(text)
        first = self.store.snapshot()
        self.clock.now += timedelta(minutes=5)
        self.sync.sync_from_text(text)
        second = self.store.snapshot()
        self.assertEqual(first.current, second.current)
        self.assertEqual(first.source, second.source)

    async def test_clear_keeps_source(self):
        await self.sync.sync_from_url(URL_A)
        self.assertTrue(self.sync.clear())
        state = self.store.snapshot()
        self.assertEqual(len(state.current.rolls), 0)
        self.assertIsNone(state.last_updated)
        self.assertEqual(state.source, URL_A)

    async def test_second_fetch_fails(self):
        await self.sync.sync_from_url(URL_A)
        expected = self.store.snapshot()
        self.client.responses[URL_A] = FetchError(URL_A, "network error: unreachable")
        with self.assertRaises(FetchError):
            await self.sync.sync_from_url(URL_A)
        self.assertEqual(self.store.snapshot(), expected)

    async def test_stale_completion_is_discarded(self):
        self.client.gates[URL_A] = asyncio.Event()
        slow = asyncio.create_task(self.sync.sync_from_url(URL_A))
        await asyncio.sleep(0)

        fast = await self.sync.sync_from_url(URL_B)
        self.assertTrue(fast.committed)

        self.client.gates[URL_A].set()
        late = await slow
        self.assertFalse(late.committed)
        state = self.store.snapshot()
        self.assertEqual(state.source, URL_B)
        self.assertEqual(state.current.title, "List B")

    async def test_older_sync_lands_when_newer_fails(self):
        self.client.gates[URL_A] = asyncio.Event()
        slow = asyncio.create_task(self.sync.sync_from_url(URL_A))
        await asyncio.sleep(0)

        self.client.responses[URL_B] = FetchError(URL_B, "HTTP 503", status_code=503)
        with self.assertRaises(FetchError):
            await self.sync.sync_from_url(URL_B)

        self.client.gates[URL_A].set()
        result = await slow
        self.assertTrue(result.committed)
        self.assertEqual(self.store.snapshot().source, URL_A)

    async def test_clear_supersedes_in_flight_sync(self):
        self.client.gates[URL_A] = asyncio.Event()
        slow = asyncio.create_task(self.sync.sync_from_url(URL_A))
        await asyncio.sleep(0)

        self.sync.clear()
        self.client.gates[URL_A].set()
        result = await slow
        self.assertFalse(result.committed)
        self.assertEqual(len(self.store.snapshot().current.rolls), 0)

    async def test_refresh_if_stale(self):
        self.assertTrue(await self.sync.refresh_if_stale(max_age_seconds=3600))
        self.assertEqual(self.client.calls, [URL_A])

        self.clock.now += timedelta(minutes=30)
        self.assertFalse(await self.sync.refresh_if_stale(max_age_seconds=3600))
        self.assertEqual(len(self.client.calls), 1)

        self.clock.now += timedelta(hours=2)
        self.assertTrue(await self.sync.refresh_if_stale(max_age_seconds=3600))
        self.assertEqual(len(self.client.calls), 2)

    async def test_commit_runs_off_event_loop(self):
        loop_thread = threading.get_ident()
        commit_threads = []
        original_replace = self.store.replace

        def tracking_replace(*args):
            commit_threads.append(threading.get_ident())
            original_replace(*args)

        self.store.replace = tracking_replace
        await self.sync.sync_from_url(URL_A)
        self.assertEqual(len(commit_threads), 1)
        self.assertNotEqual(commit_threads[0], loop_thread)

    async def test_refresh_after_clear_reloads_source(self):
        await self.sync.sync_from_url(URL_A)
        self.sync.clear()
        self.assertTrue(await self.sync.refresh_if_stale(max_age_seconds=3600))
        state = self.store.snapshot()
        self.assertEqual(state.current.title, "List A")
        self.assertEqual(len(self.client.calls), 2)

    async def test_refresh_skips_local_file(self):
        self.sync.sync_from_text("itemA wish perk1\n", LOCAL_FILE_SOURCE)
        self.clock.now += timedelta(days=30)
        self.assertFalse(await self.sync.refresh_if_stale(max_age_seconds=60))
        self.assertEqual(self.client.calls, [])

    async def test_reset_to_suggested(self):
        voltron = SUGGESTED_SOURCES["voltron"]
        self.client.responses[voltron] = "title:Voltron\ndimwishlist:item=1\n"
        result = await self.sync.reset_to_suggested("voltron")
        self.assertEqual(result.state.source, voltron)
        with self.assertRaises(InvalidSourceError):
            await self.sync.reset_to_suggested("nope")

if __name__ == '__main__':
    unittest.main()
