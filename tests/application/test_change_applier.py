from __future__ import annotations

import pytest

from i18n_sync.application.canonical import to_canonical_rows
from i18n_sync.application.change_applier import ChangeApplier, build_delete_ranges
from i18n_sync.application.row_locks import RowLockCoordinator
from i18n_sync.application.snapshot_reader import SnapshotReader
from i18n_sync.domain.models import ChangeSet, LockTicket, ModifiedRow
from i18n_sync.domain.sync_errors import ConcurrencyError, SyncConfigError
from tests.fakes import FakeRemoteTable

HEADER = ["key", "en", "zh-Hans", "ko", "mark"]
LANGUAGES = ("en", "zh-Hans", "ko")


def _applier(remote, config, **kwargs) -> ChangeApplier:
    return ChangeApplier(remote, SnapshotReader(remote, config), **kwargs)


def _numbered_sheet(count: int) -> FakeRemoteTable:
    rows = [list(HEADER)]
    rows.extend([f"[M.ts][row{n}]", f"row{n}", "", "", "0"] for n in range(1, count + 1))
    return FakeRemoteTable(rows)


def test_build_delete_ranges_is_descending_and_deduplicated() -> None:
    assert build_delete_ranges([3, 7, 5, 7]) == [
        {"startIndex": 7, "endIndex": 8},
        {"startIndex": 5, "endIndex": 6},
        {"startIndex": 3, "endIndex": 4},
    ]


def test_empty_change_set_makes_zero_remote_calls(remote, config) -> None:
    report = _applier(remote, config).apply_changes(ChangeSet())

    assert report.write_calls == 0
    assert remote.calls == []


def test_batch_delete_runs_from_highest_row_down(config) -> None:
    remote = _numbered_sheet(8)
    deleted = ("[M.ts][row3]", "[M.ts][row5]", "[M.ts][row7]")

    report = _applier(remote, config).apply_changes(ChangeSet(deleted=deleted))

    assert report.deleted == 3
    assert [r["startIndex"] for r in remote.calls_to("batch_delete_rows")[0]] == [7, 5, 3]
    assert [row[0] for row in remote.rows[1:]] == [
        "[M.ts][row1]",
        "[M.ts][row2]",
        "[M.ts][row4]",
        "[M.ts][row6]",
        "[M.ts][row8]",
    ]


def test_append_update_and_delete_in_one_pass(remote, config) -> None:
    added = tuple(to_canonical_rows({"TestModule.ts": {"new_key": {"en": "new_key", "ko": "새"}}}, LANGUAGES))
    modified = (
        ModifiedRow(
            identity="[TestModule.ts][to_modify]",
            values=("[TestModule.ts][to_modify]", "to_modify", "新值", "새 값", "0"),
        ),
    )
    change_set = ChangeSet(added=added, modified=modified, deleted=("[TestModule.ts][to_delete]",))

    report = _applier(remote, config).apply_changes(change_set)

    assert (report.appended, report.updated, report.deleted, report.write_calls) == (1, 1, 1, 3)
    assert [name for name, _payload in remote.write_calls] == ["append_rows", "update_rows", "batch_delete_rows"]
    assert remote.calls_to("update_rows")[0]["data"][0]["range"] == "A3:E3"
    assert remote.rows == [
        HEADER,
        ["[TestModule.ts][existing]", "existing", "现有", "기존", "0"],
        ["[TestModule.ts][to_modify]", "to_modify", "新值", "새 값", "0"],
        ["[TestModule.ts][new_key]", "new_key", "", "새", "0"],
    ]


def test_append_to_empty_sheet_writes_header_first(config) -> None:
    remote = FakeRemoteTable()
    added = tuple(to_canonical_rows({"M.ts": {"hi": {"en": "Hi"}}}, LANGUAGES))

    _applier(remote, config).apply_changes(ChangeSet(added=added))

    assert remote.calls_to("append_rows")[0]["rows"][0] == HEADER
    assert remote.rows == [HEADER, ["[M.ts][Hi]", "Hi", "", "", "0"]]


def test_append_skips_rows_already_present(remote, config) -> None:
    added = tuple(to_canonical_rows({"TestModule.ts": {"existing": {"en": "existing"}}}, LANGUAGES))

    report = _applier(remote, config).apply_changes(ChangeSet(added=added))

    assert report.appended == 0
    assert remote.write_calls == []


def test_protect_formatting_off_uses_user_entered_values(config) -> None:
    remote = FakeRemoteTable()
    added = tuple(to_canonical_rows({"M.ts": {"hi": {"en": "Hi"}}}, LANGUAGES))

    _applier(remote, config, protect_formatting=False).apply_changes(ChangeSet(added=added))

    assert remote.calls_to("append_rows")[0]["raw"] is False


def test_header_mismatch_is_a_configuration_error(config) -> None:
    remote = FakeRemoteTable([["key", "ko", "en", "zh-Hans", "mark"], ["[M.ts][a]", "", "a", "", "0"]])

    with pytest.raises(SyncConfigError):
        _applier(remote, config).apply_changes(ChangeSet(deleted=("[M.ts][a]",)))

    assert remote.write_calls == []


def test_modified_row_deleted_remotely_raises_concurrency_error(remote, config) -> None:
    modified = (ModifiedRow(identity="[TestModule.ts][gone]", values=("[TestModule.ts][gone]", "gone", "", "", "0")),)

    with pytest.raises(ConcurrencyError):
        _applier(remote, config).apply_changes(ChangeSet(modified=modified))


def test_ticket_must_still_own_every_touched_row(remote, config) -> None:
    reader = SnapshotReader(remote, config)
    change_set = ChangeSet(deleted=("[TestModule.ts][to_delete]",))
    ticket = RowLockCoordinator(remote, reader).acquire_row_locks(change_set, "lock-1")
    remote.rows[3][5] = "LOCKED|intruder|2024-05-01T12:00:00+00:00"

    with pytest.raises(ConcurrencyError):
        ChangeApplier(remote, reader).apply_changes(change_set, ticket)

    assert remote.calls_to("batch_delete_rows") == []


def test_owned_rows_are_deleted_with_ticket(remote, config) -> None:
    reader = SnapshotReader(remote, config)
    change_set = ChangeSet(deleted=("[TestModule.ts][to_delete]",))
    ticket = RowLockCoordinator(remote, reader).acquire_row_locks(change_set, "lock-1")

    report = ChangeApplier(remote, reader).apply_changes(change_set, ticket)

    assert report.deleted == 1
    assert isinstance(ticket, LockTicket)
    assert len(remote.rows) == 3


def test_skipped_appends_count_no_writes(remote, config) -> None:
    added = tuple(to_canonical_rows({"TestModule.ts": {"existing": {"en": "existing"}}}, LANGUAGES))

    report = _applier(remote, config).apply_changes(ChangeSet(added=added))

    assert report.write_calls == 0
    assert remote.calls_to("get_rows") == ["A1:F"]


def test_deleting_an_identity_removes_every_copy(config) -> None:
    remote = _numbered_sheet(3)
    remote.rows.append(["[M.ts][row2]", "row2", "", "", "0"])

    report = _applier(remote, config).apply_changes(ChangeSet(deleted=("[M.ts][row2]",)))

    assert report.deleted == 2
    assert [r["startIndex"] for r in remote.calls_to("batch_delete_rows")[0]] == [4, 2]
    assert [row[0] for row in remote.rows[1:]] == ["[M.ts][row1]", "[M.ts][row3]"]


def test_duplicated_identity_keeps_only_its_first_row(config) -> None:
    remote = _numbered_sheet(3)
    remote.rows.append(["[M.ts][row1]", "row1", "旧", "", "0"])

    report = _applier(remote, config).apply_changes(ChangeSet(duplicated=("[M.ts][row1]",)))

    assert (report.updated, report.deleted, report.write_calls) == (0, 1, 1)
    assert [row[0] for row in remote.rows[1:]] == ["[M.ts][row1]", "[M.ts][row2]", "[M.ts][row3]"]
    assert remote.rows[1][2] == ""


def test_modified_duplicate_updates_first_row_and_drops_the_copy(config) -> None:
    remote = _numbered_sheet(2)
    remote.rows.append(["[M.ts][row1]", "row1", "", "", "0"])
    modified = (ModifiedRow(identity="[M.ts][row1]", values=("[M.ts][row1]", "row1", "一", "", "0")),)

    report = _applier(remote, config).apply_changes(ChangeSet(modified=modified))

    assert (report.updated, report.deleted) == (1, 1)
    assert remote.rows[1:] == [["[M.ts][row1]", "row1", "一", "", "0"], ["[M.ts][row2]", "row2", "", "", "0"]]


def test_unowned_duplicate_copy_stops_apply_before_writing(remote, config) -> None:
    reader = SnapshotReader(remote, config)
    change_set = ChangeSet(deleted=("[TestModule.ts][to_delete]",))
    ticket = RowLockCoordinator(remote, reader).acquire_row_locks(change_set, "lock-1")
    remote.rows.append(["[TestModule.ts][to_delete]", "to_delete", "", "", "0"])

    with pytest.raises(ConcurrencyError):
        ChangeApplier(remote, reader).apply_changes(change_set, ticket)

    assert remote.calls_to("batch_delete_rows") == []
