"""
Sync cursor engine tests - fetch, stage, commit and cursor movement
"""
import asyncio

from conftest import ACCOUNT_ID, HEADER, run
from sheetsync.models import SheetSyncRun, SyncPhase, SyncRunStatus, SyncRunType
from sheetsync.services.sync_cursor import accepted_row_count


class TestFetch:
    """Test staging rows from the cursor"""

    def test_fetch_stages_rows_from_cursor(self, configured, fake_api):
        result = run(configured.fetch("new"))

        assert result["success"] is True
        assert result["status"] == "staged"
        assert result["batch"]["header"] == HEADER
        assert result["batch"]["count"] == 3
        assert result["batch"]["startRow"] == 2
        assert configured.engine.phase("new") == SyncPhase.STAGED
        assert fake_api.calls_to("get_rows") == [("get_rows", ACCOUNT_ID, "SHEET123", "Sheet1", 2)]

    def test_fetch_unconfigured_channel_is_noop(self, integration, fake_api):
        integration.store.get("new").file_id = ""

        result = run(integration.fetch("new"))

        assert result["status"] == "noop"
        assert result["batch"] is None
        assert integration.engine.staged_batch("new") is None
        assert fake_api.count("get_rows") == 0

    def test_fetch_with_no_data_rows_is_informational(self, configured, fake_api):
        configured.store.get("new").cursor = 5

        result = run(configured.fetch("new"))

        assert result["success"] is True
        assert result["status"] == "empty"
        assert result["message"] == "No new data."
        assert configured.engine.staged_batch("new") is None
        assert configured.engine.phase("new") == SyncPhase.IDLE

    def test_fetch_replaces_previous_batch(self, configured, fake_api):
        run(configured.fetch("new"))
        fake_api.append_rows("SHEET123", "Sheet1", ["Nadia", "0550000004", "Shelf"])

        result = run(configured.fetch("new"))

        assert result["batch"]["count"] == 4
        assert len(configured.engine.staged_batch("new")) == 4

    def test_fetch_failure_surfaces_error_without_state_change(self, configured, fake_api):
        fake_api.fail.add("get_rows")

        result = run(configured.fetch("new"))

        assert result["success"] is False
        assert result["errorKind"] == "fetch_failure"
        assert configured.engine.phase("new") == SyncPhase.IDLE
        assert configured.store.get("new").cursor == 2

    def test_failed_refetch_keeps_staged_batch(self, configured, fake_api):
        configured.store.get("new").persisted_id = "cfg-1"
        run(configured.fetch("new"))
        staged_before = configured.engine.staged_batch("new").to_dict()
        fake_api.fail.add("get_rows")

        result = run(configured.fetch("new"))

        assert result["errorKind"] == "fetch_failure"
        assert configured.engine.staged_batch("new").to_dict() == staged_before
        assert configured.engine.phase("new") == SyncPhase.STAGED
        assert run(configured.commit("new"))["cursor"] == 5

    def test_batch_stays_visible_while_refetching(self, configured, fake_api):
        async def scenario():
            await configured.fetch("new")
            gate = asyncio.Event()
            fake_api.gates["get_rows"] = gate
            pending = asyncio.ensure_future(configured.fetch("new"))
            await asyncio.sleep(0)
            during = configured.engine.staged_batch("new")
            gate.set()
            await pending
            return during

        during = run(scenario())

        assert during is not None
        assert len(during) == 3


class TestCommit:
    """Test committing staged rows and advancing the cursor"""

    def test_commit_advances_cursor_by_batch_size(self, configured, fake_api):
        configured.store.get("new").persisted_id = "cfg-1"
        run(configured.fetch("new"))

        result = run(configured.commit("new"))

        assert result["success"] is True
        assert result["status"] == "committed"
        assert result["rows"] == 3
        assert result["cursor"] == 5
        assert configured.store.get("new").cursor == 5
        assert configured.engine.staged_batch("new") is None
        assert configured.engine.phase("new") == SyncPhase.IDLE
        assert fake_api.calls_to("commit_rows") == [("commit_rows", ACCOUNT_ID, "cfg-1", 2)]

    def test_commit_with_empty_batch_is_noop(self, configured, fake_api):
        configured.store.get("new").persisted_id = "cfg-1"

        result = run(configured.commit("new"))

        assert result["success"] is True
        assert result["status"] == "noop"
        assert fake_api.count("commit_rows") == 0

    def test_commit_requires_saved_channel(self, configured, fake_api):
        run(configured.fetch("new"))

        result = run(configured.commit("new"))

        assert result["success"] is False
        assert result["errorKind"] == "unsaved_channel"
        assert fake_api.count("commit_rows") == 0
        assert configured.engine.staged_batch("new") is not None

    def test_failed_commit_keeps_cursor_and_batch(self, configured, fake_api):
        configured.store.get("new").persisted_id = "cfg-1"
        run(configured.fetch("new"))
        staged_before = configured.engine.staged_batch("new").to_dict()
        fake_api.fail.add("commit_rows")

        result = run(configured.commit("new"))

        assert result["success"] is False
        assert result["errorKind"] == "commit_failure"
        assert result["retryable"] is True
        assert configured.store.get("new").cursor == 2
        assert configured.engine.staged_batch("new").to_dict() == staged_before
        assert configured.engine.phase("new") == SyncPhase.STAGED

    def test_retry_after_failed_commit_refetches_same_rows(self, configured, fake_api):
        configured.store.get("new").persisted_id = "cfg-1"
        first = run(configured.fetch("new"))
        fake_api.fail.add("commit_rows")
        run(configured.commit("new"))

        second = run(configured.fetch("new"))

        assert second["batch"] == first["batch"]
        fake_api.fail.discard("commit_rows")
        assert run(configured.commit("new"))["cursor"] == 5

    def test_rejected_commit_does_not_advance(self, configured, fake_api):
        configured.store.get("new").persisted_id = "cfg-1"
        run(configured.fetch("new"))
        fake_api.commit_status = False

        result = run(configured.commit("new"))

        assert result["errorKind"] == "commit_failure"
        assert configured.store.get("new").cursor == 2

    def test_partial_acceptance_advances_by_reported_count(self, configured, fake_api):
        configured.store.get("new").persisted_id = "cfg-1"
        run(configured.fetch("new"))
        fake_api.rows_created = 2

        result = run(configured.commit("new"))

        assert result["rows"] == 2
        assert result["partial"] is True
        assert configured.store.get("new").cursor == 4

    def test_cursor_is_monotonic_across_cycles(self, configured, fake_api):
        configured.store.get("new").persisted_id = "cfg-1"
        committed = []
        cursors = [configured.store.get("new").cursor]

        for extra in ([], [["Nadia", "0550000004", "Shelf"]], [["Omar", "1", "Rug"], ["Lina", "2", "Vase"]]):
            fake_api.append_rows("SHEET123", "Sheet1", *extra)
            fetched = run(configured.fetch("new"))
            if fetched["status"] != "staged":
                continue
            result = run(configured.commit("new"))
            committed.append(result["rows"])
            cursors.append(configured.store.get("new").cursor)

        assert cursors == sorted(cursors)
        assert cursors[-1] - cursors[0] == sum(committed)
        assert committed == [3, 1, 2]

    def test_stale_batch_is_rejected(self, configured, fake_api):
        configured.store.get("new").persisted_id = "cfg-1"
        run(configured.fetch("new"))
        configured.store.get("new").cursor = 3

        result = run(configured.commit("new"))

        assert result["errorKind"] == "stale_batch"
        assert fake_api.count("commit_rows") == 0
        assert configured.engine.staged_batch("new") is None


class TestConcurrency:
    """Test that fetch and commit never overlap on one channel"""

    def test_fetch_rejected_while_commit_in_flight(self, configured, fake_api):
        configured.store.get("new").persisted_id = "cfg-1"

        async def scenario():
            await configured.fetch("new")
            gate = asyncio.Event()
            fake_api.gates["commit_rows"] = gate
            commit_task = asyncio.ensure_future(configured.commit("new"))
            await asyncio.sleep(0)
            assert configured.engine.phase("new") == SyncPhase.COMMITTING
            fetch_result = await configured.fetch("new")
            gate.set()
            return fetch_result, await commit_task

        fetch_result, commit_result = run(scenario())

        assert fetch_result["errorKind"] == "channel_busy"
        assert commit_result["status"] == "committed"
        assert configured.store.get("new").cursor == 5
        assert fake_api.count("get_rows") == 1

    def test_commit_rejected_while_fetch_in_flight(self, configured, fake_api):
        configured.store.get("new").persisted_id = "cfg-1"

        async def scenario():
            gate = asyncio.Event()
            fake_api.gates["get_rows"] = gate
            fetch_task = asyncio.ensure_future(configured.fetch("new"))
            await asyncio.sleep(0)
            commit_result = await configured.commit("new")
            gate.set()
            return commit_result, await fetch_task

        commit_result, fetch_result = run(scenario())

        assert commit_result["errorKind"] == "channel_busy"
        assert fetch_result["status"] == "staged"
        assert fake_api.count("commit_rows") == 0

    def test_config_writes_rejected_while_commit_in_flight(self, configured, fake_api):
        run(configured.save("new"))

        async def scenario():
            await configured.fetch("new")
            gate = asyncio.Event()
            fake_api.gates["commit_rows"] = gate
            commit_task = asyncio.ensure_future(configured.commit("new"))
            await asyncio.sleep(0)
            results = {
                "toggle": await configured.toggle_auto_sync("new"),
                "save": await configured.save("new"),
                "delete": await configured.delete_channel("new"),
            }
            gate.set()
            return results, await commit_task

        results, commit_result = run(scenario())

        for result in results.values():
            assert result["errorKind"] == "channel_busy"
        assert results["toggle"]["autoSync"] is False
        assert commit_result["cursor"] == 5
        assert fake_api.count("update_channel_config") == 0
        assert fake_api.count("delete_channel_config") == 0
        assert configured.store.get("new").persisted_id == "cfg-1"

    def test_toggle_after_commit_sends_advanced_cursor(self, configured, fake_api):
        run(configured.save("new"))
        run(configured.fetch("new"))
        run(configured.commit("new"))

        run(configured.toggle_auto_sync("new"))

        assert fake_api.saved["cfg-1"]["lastRowSynced"] == configured.store.get("new").cursor - 1 == 4

    def test_commit_rejected_while_config_write_in_flight(self, configured, fake_api):
        run(configured.save("new"))

        async def scenario():
            await configured.fetch("new")
            gate = asyncio.Event()
            fake_api.gates["update_channel_config"] = gate
            toggle_task = asyncio.ensure_future(configured.toggle_auto_sync("new"))
            await asyncio.sleep(0)
            commit_result = await configured.commit("new")
            gate.set()
            return commit_result, await toggle_task

        commit_result, toggle_result = run(scenario())

        assert commit_result["errorKind"] == "channel_busy"
        assert toggle_result["autoSync"] is True
        assert fake_api.count("commit_rows") == 0
        assert configured.store.get("new").cursor == 2
        assert configured.engine.phase("new") == SyncPhase.STAGED
        assert run(configured.commit("new"))["cursor"] == 5

    def test_channels_sync_independently(self, configured, fake_api):
        configured.store.get("new").persisted_id = "cfg-1"
        abandoned = configured.store.get("abandoned")
        abandoned.file_id = "SHEET123"
        abandoned.sheet_name = "Abandoned"
        abandoned.persisted_id = "cfg-2"
        fake_api.append_rows("SHEET123", "Abandoned", ["Rim", "0660000001", "Bag"])

        async def scenario():
            await asyncio.gather(configured.fetch("new"), configured.fetch("abandoned"))
            return await asyncio.gather(configured.commit("new"), configured.commit("abandoned"))

        new_result, abandoned_result = run(scenario())

        assert new_result["cursor"] == 5
        assert abandoned_result["cursor"] == 3
        assert configured.store.get("new").cursor == 5
        assert configured.store.get("abandoned").cursor == 3


class TestSyncHistory:
    """Test that fetch and commit runs are recorded"""

    def test_runs_are_recorded(self, configured, fake_api, db_session):
        configured.store.get("new").persisted_id = "cfg-1"
        run(configured.fetch("new"))
        run(configured.commit("new"))

        runs = {r.run_type: r for r in db_session.query(SheetSyncRun).all()}

        assert set(runs) == {SyncRunType.FETCH, SyncRunType.COMMIT}
        assert all(r.status == SyncRunStatus.SUCCESS for r in runs.values())
        assert runs[SyncRunType.FETCH].rows_count == 3
        commit_run = runs[SyncRunType.COMMIT]
        assert commit_run.cursor_before == 2
        assert commit_run.cursor_after == 5
        assert commit_run.rows_count == 3
        assert commit_run.config_id == "cfg-1"

    def test_failed_commit_is_recorded(self, configured, fake_api, db_session):
        configured.store.get("new").persisted_id = "cfg-1"
        run(configured.fetch("new"))
        fake_api.fail.add("commit_rows")
        run(configured.commit("new"))

        commit_run = db_session.query(SheetSyncRun).filter(SheetSyncRun.run_type == SyncRunType.COMMIT).one()

        assert commit_run.status == SyncRunStatus.FAILED
        assert commit_run.cursor_after == 2
        assert "commit_rows failed" in commit_run.error_message
        assert len(commit_run.logs) == 1


class TestAcceptedRowCount:
    """Test bounding of the backend-reported row count"""

    def test_missing_count_falls_back_to_submitted(self):
        assert accepted_row_count({"status": True}, 3) == 3
        assert accepted_row_count({"status": True, "rowsCreated": None}, 3) == 3

    def test_reported_count_within_batch_is_trusted(self):
        assert accepted_row_count({"rowsCreated": 0}, 3) == 0
        assert accepted_row_count({"rowsCreated": 2}, 3) == 2

    def test_out_of_range_count_is_ignored(self):
        assert accepted_row_count({"rowsCreated": 7}, 3) == 3
        assert accepted_row_count({"rowsCreated": -1}, 3) == 3
        assert accepted_row_count({"rowsCreated": True}, 3) == 3
