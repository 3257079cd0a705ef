"""
Header inspector tests - column options and the A-Z fallback
"""
import asyncio

from conftest import ACCOUNT_ID, HEADER, run
from sheetsync.services.header_inspector import FALLBACK_COLUMNS, HeaderInspector
from sheetsync.services.sheet_channels import ChannelConfigStore


def make_inspector(fake_api, file_id="SHEET123", sheet_name="Sheet1"):
    store = ChannelConfigStore()
    store.set_file_id("new", file_id)
    store.set_sheet_name("new", sheet_name)
    return store, HeaderInspector(fake_api, ACCOUNT_ID, store)


class TestHeaderInspector:
    """Test header row lookup"""

    def test_header_row_becomes_column_options(self, fake_api):
        _, inspector = make_inspector(fake_api)

        headers = run(inspector.fetch_headers("new"))

        assert headers == HEADER
        assert inspector.column_options("new") == [{"value": h, "label": h} for h in HEADER]
        assert inspector.uses_fallback("new") is False

    def test_blank_header_cells_are_dropped(self, fake_api):
        fake_api.headers[("SHEET123", "Sheet1")] = ["Name", "", "  ", " Phone "]
        _, inspector = make_inspector(fake_api)

        assert run(inspector.fetch_headers("new")) == ["Name", "Phone"]

    def test_failure_falls_back_to_letters(self, fake_api):
        _, inspector = make_inspector(fake_api, sheet_name="Missing")

        headers = run(inspector.fetch_headers("new"))

        assert headers == []
        assert inspector.errors["new"] == "Sheet not found"
        assert inspector.uses_fallback("new") is True
        options = inspector.column_options("new")
        assert len(options) == 26
        assert [o["value"] for o in options] == FALLBACK_COLUMNS
        assert options[0] == {"value": "A", "label": "A"}

    def test_unconfigured_channel_skips_lookup(self, fake_api):
        _, inspector = make_inspector(fake_api, file_id="")

        assert run(inspector.fetch_headers("new")) == []
        assert fake_api.count("get_header_row") == 0

    def test_result_for_previous_sheet_is_ignored(self, fake_api):
        store, inspector = make_inspector(fake_api)

        async def scenario():
            gate = asyncio.Event()
            fake_api.gates["get_header_row"] = gate
            pending = asyncio.ensure_future(inspector.fetch_headers("new"))
            await asyncio.sleep(0)
            store.set_sheet_name("new", "Abandoned")
            gate.set()
            return await pending

        assert run(scenario()) == []
        assert inspector.uses_fallback("new") is True

    def test_clear_restores_fallback(self, fake_api):
        _, inspector = make_inspector(fake_api)
        run(inspector.fetch_headers("new"))

        inspector.clear("new")

        assert inspector.uses_fallback("new") is True
