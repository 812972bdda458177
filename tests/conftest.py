from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from i18n_sync.domain.models import TranslationRecord
from tests.fakes import FakeRemoteTable, make_config

HEADER = ["key", "en", "zh-Hans", "ko", "mark"]


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def sheet_rows() -> list[list[str]]:
    return [
        list(HEADER),
        ["[TestModule.ts][existing]", "existing", "现有", "기존", "0"],
        ["[TestModule.ts][to_modify]", "to_modify", "旧值", "오래된 값", "0"],
        ["[TestModule.ts][to_delete]", "to_delete", "删除我", "삭제", "0"],
    ]


@pytest.fixture
def remote(sheet_rows: list[list[str]]) -> FakeRemoteTable:
    return FakeRemoteTable(sheet_rows)


@pytest.fixture
def sheet_record() -> TranslationRecord:
    return {
        "TestModule.ts": {
            "existing": {"en": "existing", "zh-Hans": "现有", "ko": "기존", "mark": 0},
            "to_modify": {"en": "to_modify", "zh-Hans": "旧值", "ko": "오래된 값", "mark": 0},
            "to_delete": {"en": "to_delete", "zh-Hans": "删除我", "ko": "삭제", "mark": 0},
        }
    }


@pytest.fixture
def restore_root_logging():
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    original_hook = sys.excepthook
    yield
    for handler in list(root_logger.handlers):
        if handler not in handlers:
            root_logger.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root_logger.handlers:
            root_logger.addHandler(handler)
    root_logger.setLevel(level)
    sys.excepthook = original_hook
