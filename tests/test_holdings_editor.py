import unittest

from schemas.portfolio import WatchlistItem
from services.holdings_editor import HoldingsEditor, parse_holdings
from services.local_storage import MemoryStorage
from services.watchlist_store import WatchlistStore


def _store() -> WatchlistStore:
    store = WatchlistStore(MemoryStorage())
    store.add_items([
        WatchlistItem(id="bitcoin", name="Bitcoin", symbol="BTC", icon="", holdings=0.05),
        WatchlistItem(id="ethereum", name="Ethereum", symbol="ETH", icon="", holdings=2.5),
    ])
    return store


class TestParseHoldings(unittest.TestCase):
    def test_accepts_finite_numbers(self):
        self.assertEqual(parse_holdings("2.5"), 2.5)
        self.assertEqual(parse_holdings(" 15000 "), 15000.0)
        self.assertEqual(parse_holdings("1e3"), 1000.0)
        self.assertEqual(parse_holdings(""), 0.0)

    def test_rejects_everything_else(self):
        for text in ("abc", "nan", "inf", "-Infinity", "1_000", "2,5", "0x10"):
            with self.subTest(text=text):
                self.assertIsNone(parse_holdings(text))


class TestHoldingsEditor(unittest.TestCase):
    def test_non_numeric_draft_is_rejected_silently(self):
        store = _store()
        editor = HoldingsEditor(store)
        editor.start_edit("bitcoin", 0.05)
        editor.set_draft("abc")

        self.assertFalse(editor.save())

        self.assertTrue(editor.is_editing("bitcoin"))
        self.assertEqual(editor.draft_value, "abc")
        self.assertEqual(store.get("bitcoin").holdings, 0.05)

    def test_numeric_draft_commits_and_returns_to_viewing(self):
        store = _store()
        editor = HoldingsEditor(store)
        editor.start_edit("bitcoin", 0.05)
        self.assertEqual(editor.draft_value, "0.05")
        editor.set_draft("2.5")

        self.assertTrue(editor.save())

        self.assertFalse(editor.is_editing("bitcoin"))
        self.assertIsNone(editor.editing_id)
        self.assertEqual(store.get("bitcoin").holdings, 2.5)

    def test_switching_rows_discards_previous_draft(self):
        store = _store()
        editor = HoldingsEditor(store)
        editor.start_edit("bitcoin", 0.05)
        editor.set_draft("9")

        editor.start_edit("ethereum", 2.5)

        self.assertFalse(editor.is_editing("bitcoin"))
        self.assertTrue(editor.is_editing("ethereum"))
        self.assertEqual(editor.draft_value, "2.5")
        self.assertTrue(editor.save())
        self.assertEqual(store.get("bitcoin").holdings, 0.05)
        self.assertEqual(store.get("ethereum").holdings, 2.5)

    def test_save_without_edit_is_noop(self):
        editor = HoldingsEditor(_store())
        editor.set_draft("3")
        self.assertFalse(editor.save())
        self.assertEqual(editor.draft_value, "")


if __name__ == "__main__":
    unittest.main()
