import asyncio
import unittest

from schemas.portfolio import MarketSnapshot, SearchResultItem
from services.coingecko.client import CoinGeckoServiceError
from services.local_storage import MemoryStorage
from services.token_search import TokenSearchWorkflow
from services.watchlist_store import WatchlistStore


def _coin(coin_id: str) -> SearchResultItem:
    return SearchResultItem(id=coin_id, name=coin_id.title(), symbol=coin_id[:3], thumb="")


class _FakeGateway:
    def __init__(self):
        self.trending = [_coin("pepe"), _coin("sui")]
        self.search_calls = []
        self.market_calls = []
        self.search_gate = None
        self.fail_search = False
        self.fail_markets = False

    async def fetch_trending(self):
        return list(self.trending)

    async def search_coins(self, query):
        self.search_calls.append(query)
        if self.search_gate is not None:
            await self.search_gate.wait()
        if self.fail_search:
            raise CoinGeckoServiceError(500, "search down")
        return [_coin(query.lower())]

    async def fetch_markets_by_ids(self, ids):
        self.market_calls.append(list(ids))
        if self.fail_markets:
            raise CoinGeckoServiceError(502, "bad gateway")
        return [
            MarketSnapshot(id=i, name=i.title(), symbol=i.upper(), image=f"{i}.png", current_price=1.0)
            for i in ids
        ]


def _workflow(gw=None, store=None):
    gw = gw or _FakeGateway()
    store = store or WatchlistStore(MemoryStorage())
    return TokenSearchWorkflow(gw, store, debounce_sec=0.25), gw, store


class TestSessionLifecycle(unittest.TestCase):
    def test_open_shows_trending_with_empty_selection(self):
        async def run():
            wf, _gw, _store = _workflow()
            await wf.open()
            return wf.is_open, [c.id for c in wf.results], wf.selected, wf.query

        is_open, ids, selected, query = asyncio.run(run())
        self.assertTrue(is_open)
        self.assertEqual(ids, ["pepe", "sui"])
        self.assertEqual(selected, frozenset())
        self.assertEqual(query, "")

    def test_close_clears_session_state(self):
        async def run():
            wf, _gw, _store = _workflow()
            await wf.open()
            wf.toggle("pepe")
            wf.set_query("btc")
            wf.close()
            return wf

        wf = asyncio.run(run())
        self.assertFalse(wf.is_open)
        self.assertEqual((wf.results, wf.selected, wf.query, wf.error), ([], frozenset(), "", None))

    def test_reopen_starts_fresh(self):
        async def run():
            wf, _gw, _store = _workflow()
            await wf.open()
            wf.toggle("pepe")
            wf.cancel()
            await wf.open()
            return wf.selected

        self.assertEqual(asyncio.run(run()), frozenset())

    def test_trending_resolving_after_close_is_ignored(self):
        class _SlowTrending(_FakeGateway):
            def __init__(self):
                super().__init__()
                self.gate = asyncio.Event()

            async def fetch_trending(self):
                await self.gate.wait()
                return list(self.trending)

        async def run():
            gw = _SlowTrending()
            wf, _gw, _store = _workflow(gw)
            opening = asyncio.create_task(wf.open())
            await asyncio.sleep(0)
            wf.close()
            gw.gate.set()
            await opening
            return wf.is_open, wf.results

        self.assertEqual(asyncio.run(run()), (False, []))


class TestDebouncedSearch(unittest.TestCase):
    def test_typing_burst_fires_one_search_after_quiet_period(self):
        async def run():
            wf, gw, _store = _workflow()
            await wf.open()
            for text in ("E", "ET", "ETH"):
                wf.set_query(text)
                await asyncio.sleep(0.05)
            await asyncio.sleep(0.1)
            early = list(gw.search_calls)
            await asyncio.sleep(0.2)
            return early, gw.search_calls, [c.id for c in wf.results]

        early, calls, results = asyncio.run(run())
        self.assertEqual(early, [])
        self.assertEqual(calls, ["ETH"])
        self.assertEqual(results, ["eth"])

    def test_close_before_debounce_means_no_search(self):
        async def run():
            wf, gw, _store = _workflow()
            await wf.open()
            wf.set_query("ETH")
            await asyncio.sleep(0.1)
            wf.close()
            await asyncio.sleep(0.3)
            return gw.search_calls

        self.assertEqual(asyncio.run(run()), [])

    def test_blank_query_keeps_previous_results(self):
        async def run():
            wf, gw, _store = _workflow()
            await wf.open()
            wf.set_query("   ")
            await asyncio.sleep(0.3)
            return gw.search_calls, [c.id for c in wf.results]

        calls, results = asyncio.run(run())
        self.assertEqual(calls, [])
        self.assertEqual(results, ["pepe", "sui"])

    def test_superseded_in_flight_search_is_discarded(self):
        async def run():
            wf, gw, _store = _workflow()
            await wf.open()
            gw.search_gate = asyncio.Event()
            wf.set_query("BTC")
            await asyncio.sleep(0.3)
            in_flight = list(gw.search_calls)

            wf.set_query("SOL")
            gw.search_gate.set()
            await asyncio.sleep(0.3)
            return in_flight, gw.search_calls, [c.id for c in wf.results]

        in_flight, calls, results = asyncio.run(run())
        self.assertEqual(in_flight, ["BTC"])
        self.assertEqual(calls, ["BTC", "SOL"])
        self.assertEqual(results, ["sol"])

    def test_close_while_search_in_flight_discards_result(self):
        async def run():
            wf, gw, _store = _workflow()
            await wf.open()
            gw.search_gate = asyncio.Event()
            wf.set_query("BTC")
            await asyncio.sleep(0.3)

            wf.close()
            gw.search_gate.set()
            await asyncio.sleep(0.05)
            return gw.search_calls, list(wf.results)

        calls, results = asyncio.run(run())
        self.assertEqual(calls, ["BTC"])
        self.assertEqual(results, [])

    def test_search_failure_keeps_results_and_surfaces_error(self):
        async def run():
            wf, gw, _store = _workflow()
            await wf.open()
            gw.fail_search = True
            wf.set_query("BTC")
            await asyncio.sleep(0.3)
            return wf.is_open, [c.id for c in wf.results], wf.error

        with self.assertLogs("services.token_search", level="WARNING"):
            is_open, results, error = asyncio.run(run())
        self.assertTrue(is_open)
        self.assertEqual(results, ["pepe", "sui"])
        self.assertEqual(error, "Coingecko error 500: search down")


class TestSelectionAndCommit(unittest.TestCase):
    def test_toggle_is_local_set_membership(self):
        async def run():
            wf, gw, _store = _workflow()
            await wf.open()
            first = wf.toggle("pepe")
            wf.toggle("sui")
            second = wf.toggle("pepe")
            return first, second, wf.selected, gw.market_calls

        first, second, selected, calls = asyncio.run(run())
        self.assertTrue(first)
        self.assertFalse(second)
        self.assertEqual(selected, frozenset({"sui"}))
        self.assertEqual(calls, [])

    def test_commit_adds_selection_with_zero_holdings_and_closes(self):
        async def run():
            wf, gw, store = _workflow()
            await wf.open()
            wf.toggle("pepe")
            wf.toggle("sui")
            ok = await wf.commit()
            return ok, wf.is_open, store.get_all(), gw.market_calls

        ok, is_open, items, calls = asyncio.run(run())
        self.assertTrue(ok)
        self.assertFalse(is_open)
        self.assertEqual(calls, [["pepe", "sui"]])
        self.assertEqual([(i.id, i.symbol, i.icon, i.holdings) for i in items], [
            ("pepe", "PEPE", "pepe.png", 0.0),
            ("sui", "SUI", "sui.png", 0.0),
        ])

    def test_commit_with_empty_selection_does_nothing(self):
        async def run():
            wf, gw, store = _workflow()
            await wf.open()
            return await wf.commit(), wf.is_open, gw.market_calls, store.get_all()

        self.assertEqual(asyncio.run(run()), (False, True, [], ()))

    def test_commit_failure_leaves_store_and_session_intact(self):
        async def run():
            wf, gw, store = _workflow()
            await wf.open()
            wf.toggle("pepe")
            gw.fail_markets = True
            ok = await wf.commit()
            return ok, wf.is_open, wf.selected, wf.error, store.get_all()

        with self.assertLogs("services.token_search", level="WARNING"):
            ok, is_open, selected, error, items = asyncio.run(run())
        self.assertFalse(ok)
        self.assertTrue(is_open)
        self.assertEqual(selected, frozenset({"pepe"}))
        self.assertEqual(error, "Coingecko error 502: bad gateway")
        self.assertEqual(items, ())

    def test_cancel_does_not_touch_store(self):
        async def run():
            wf, _gw, store = _workflow()
            await wf.open()
            wf.toggle("pepe")
            wf.cancel()
            return store.get_all()

        self.assertEqual(asyncio.run(run()), ())


if __name__ == "__main__":
    unittest.main()
