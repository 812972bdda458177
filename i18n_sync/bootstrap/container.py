from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from i18n_sync.application.sync_orchestrator import SyncOrchestrator
from i18n_sync.domain.models import SyncConfig
from i18n_sync.domain.ports import RemoteTablePort, SyncConfigStorePort, TranslationRecordStorePort
from i18n_sync.domain.sync_errors import SyncConfigError
from i18n_sync.infrastructure.local_config import SyncConfigStore
from i18n_sync.infrastructure.record_store import TranslationRecordStore
from i18n_sync.infrastructure.sheets_client import SheetsTableClient


@dataclass
class SyncContainer:
    config: SyncConfig
    remote: RemoteTablePort
    orchestrator: SyncOrchestrator
    record_store: TranslationRecordStorePort


RemoteFactory = Callable[[SyncConfig], RemoteTablePort]


def open_sheets_table(config: SyncConfig) -> RemoteTablePort:
    client = SheetsTableClient(config.sheet_name)
    client.open_spreadsheet(Path(config.credentials_path), config.spreadsheet_id)
    return client


def load_sync_config(config_store: SyncConfigStorePort, location: Path | str) -> SyncConfig:
    config = config_store.load()
    if config is None:
        raise SyncConfigError(f"No hay configuración de sincronización válida en {location}.")
    return config


def build_container(
    config_path: Path | None = None,
    *,
    remote_factory: RemoteFactory = open_sheets_table,
) -> SyncContainer:
    config_store = SyncConfigStore(config_path)
    config = load_sync_config(config_store, config_store.config_path)
    # La conexión se abre solo con una configuración válida.
    remote = remote_factory(config)
    return SyncContainer(
        config=config,
        remote=remote,
        orchestrator=SyncOrchestrator(remote, config),
        record_store=TranslationRecordStore(),
    )
