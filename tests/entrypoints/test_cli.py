from __future__ import annotations

import json
from pathlib import Path

import pytest

from i18n_sync.bootstrap.container import build_container
from i18n_sync.domain.sync_errors import RemotePermissionError
from i18n_sync.entrypoints import cli
from tests.fakes import FakeRemoteTable

HEADER = ["key", "en", "zh-Hans", "ko", "mark"]

pytestmark = pytest.mark.usefixtures("restore_root_logging")


@pytest.fixture
def sheet() -> FakeRemoteTable:
    return FakeRemoteTable([list(HEADER), ["[M.ts][A]", "A", "", "", "0"], ["[M.ts][B]", "B", "", "", "0"]])


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch, sheet: FakeRemoteTable) -> Path:
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps(
            {
                "spreadsheet_id": "sheet-1",
                "sheet_name": "translations",
                "credentials_path": "/secrets/sa.json",
                "languages": ["en", "zh-Hans", "ko"],
                "rate_limit_backoff_seconds": 0,
                "unknown_backoff_seconds": 0,
            }
        ),
        encoding="utf-8",
    )
    (tmp_path / "record.json").write_text(
        json.dumps({"M.ts": {"k1": {"en": "A"}, "k4": {"en": "D"}}}),
        encoding="utf-8",
    )
    monkeypatch.setattr(cli, "resolve_log_dir", lambda: tmp_path / "logs")
    monkeypatch.setattr(
        cli,
        "build_container",
        lambda config_path: build_container(config_path, remote_factory=lambda _config: sheet),
    )
    return tmp_path


def _stdout_json(capsys) -> dict:
    return json.loads(capsys.readouterr().out.strip().splitlines()[-1])


def test_push_writes_change_set_to_sheet(workspace: Path, sheet: FakeRemoteTable, capsys) -> None:
    exit_code = cli.main(["--config", str(workspace / "config.json"), "push", "--record", str(workspace / "record.json")])

    assert exit_code == cli.EXIT_OK
    output = _stdout_json(capsys)
    assert output["state"] == "DONE"
    assert (output["added"], output["modified"], output["deleted"]) == (1, 0, 1)
    assert isinstance(output["sheets_api_calls"], dict)
    assert [row[0] for row in sheet.rows[1:]] == ["[M.ts][A]", "[M.ts][D]"]


def test_status_does_not_write(workspace: Path, sheet: FakeRemoteTable, capsys) -> None:
    exit_code = cli.main(["--config", str(workspace / "config.json"), "status", "--record", str(workspace / "record.json")])

    assert exit_code == cli.EXIT_OK
    output = _stdout_json(capsys)
    assert output["added_identities"] == ["[M.ts][D]"]
    assert output["deleted_identities"] == ["[M.ts][B]"]
    assert output["duplicated_identities"] == []
    assert sheet.write_calls == []


def test_pull_saves_remote_record(workspace: Path, capsys) -> None:
    output_path = workspace / "pulled.json"

    exit_code = cli.main(["--config", str(workspace / "config.json"), "pull", "--output", str(output_path)])

    assert exit_code == cli.EXIT_OK
    assert json.loads(output_path.read_text(encoding="utf-8")) == {
        "M.ts": {"A": {"en": "A", "mark": 0}, "B": {"en": "B", "mark": 0}}
    }


def test_push_with_locked_row_exits_with_conflict_code(workspace: Path, sheet: FakeRemoteTable, capsys) -> None:
    sheet.rows[2].append("LOCKED|other|2099-01-01T00:00:00+00:00")

    exit_code = cli.main(["--config", str(workspace / "config.json"), "push", "--record", str(workspace / "record.json")])

    assert exit_code == cli.EXIT_CONFLICT
    assert "Fila ya bloqueada" in capsys.readouterr().err


def test_missing_config_exits_with_config_code(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.setattr(cli, "resolve_log_dir", lambda: tmp_path / "logs")

    exit_code = cli.main(["--config", str(tmp_path / "missing.json"), "status", "--record", "x.json"])

    assert exit_code == cli.EXIT_CONFIG
    assert "missing.json" in capsys.readouterr().err


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (RemotePermissionError("sin permisos"), cli.EXIT_CONFIG),
        (TimeoutError("read timed out"), cli.EXIT_FAILURE),
    ],
)
def test_exit_code_for_errors(error: Exception, expected: int) -> None:
    assert cli._exit_code_for(error) == expected


def test_pull_merges_local_only_entries(workspace: Path, capsys) -> None:
    output_path = workspace / "merged.json"

    exit_code = cli.main(
        [
            "--config",
            str(workspace / "config.json"),
            "pull",
            "--output",
            str(output_path),
            "--merge-with",
            str(workspace / "record.json"),
        ]
    )

    assert exit_code == cli.EXIT_OK
    merged = json.loads(output_path.read_text(encoding="utf-8"))
    assert merged["M.ts"]["A"] == {"en": "A", "mark": 0}
    assert merged["M.ts"]["k4"] == {"en": "D"}
    assert "k1" not in merged["M.ts"]
