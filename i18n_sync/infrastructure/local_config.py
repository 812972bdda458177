from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict
from pathlib import Path
from typing import Any

from i18n_sync.domain.models import SyncConfig
from i18n_sync.domain.sync_errors import SyncConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "I18N_SYNC_CONFIG"
_REQUIRED_FIELDS = ("spreadsheet_id", "sheet_name", "credentials_path", "languages")


def resolve_appdata_dir() -> Path:
    env_dir = os.environ.get("LOCALAPPDATA")
    if env_dir:
        base_dir = Path(env_dir)
    else:
        base_dir = Path.home() / ".local" / "share"
    return base_dir / "I18nSync"


def resolve_config_path(explicit_path: Path | None = None) -> Path:
    if explicit_path is not None:
        return explicit_path
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return resolve_appdata_dir() / "config.json"


def _as_positive_int(payload: dict[str, Any], name: str, default: int) -> int:
    raw_value = payload.get(name, default)
    try:
        value = int(raw_value)
    except (TypeError, ValueError) as exc:
        raise SyncConfigError(f"El campo '{name}' debe ser un entero (valor: {raw_value!r}).") from exc
    if value < 0:
        raise SyncConfigError(f"El campo '{name}' no puede ser negativo.")
    return value


def _as_float(payload: dict[str, Any], name: str, default: float | None) -> float | None:
    raw_value = payload.get(name, default)
    if raw_value is None:
        return None
    try:
        return float(raw_value)
    except (TypeError, ValueError) as exc:
        raise SyncConfigError(f"El campo '{name}' debe ser numérico (valor: {raw_value!r}).") from exc


def config_from_payload(payload: dict[str, Any]) -> SyncConfig:
    missing = [name for name in _REQUIRED_FIELDS if not payload.get(name)]
    if missing:
        raise SyncConfigError(f"Faltan campos obligatorios en la configuración: {', '.join(missing)}.")
    languages = payload["languages"]
    if isinstance(languages, str) or not all(isinstance(language, str) and language.strip() for language in languages):
        raise SyncConfigError("'languages' debe ser una lista de códigos de idioma.")
    if len(set(languages)) != len(languages):
        raise SyncConfigError("'languages' contiene idiomas repetidos.")
    max_attempts = _as_positive_int(payload, "max_attempts", 3)
    if max_attempts < 1:
        raise SyncConfigError("'max_attempts' debe ser al menos 1.")
    return SyncConfig(
        spreadsheet_id=str(payload["spreadsheet_id"]).strip(),
        sheet_name=str(payload["sheet_name"]).strip(),
        credentials_path=str(payload["credentials_path"]).strip(),
        languages=tuple(language.strip() for language in languages),
        max_attempts=max_attempts,
        protect_formatting=bool(payload.get("protect_formatting", True)),
        rate_limit_backoff_seconds=_as_float(payload, "rate_limit_backoff_seconds", 2.0) or 0.0,
        unknown_backoff_seconds=_as_float(payload, "unknown_backoff_seconds", 1.0) or 0.0,
        lock_ttl_seconds=_as_float(payload, "lock_ttl_seconds", None),
        restart_on_conflict=_as_positive_int(payload, "restart_on_conflict", 0),
        revalidate_before_commit=bool(payload.get("revalidate_before_commit", False)),
    )


class SyncConfigStore:
    def __init__(self, config_path: Path | None = None) -> None:
        self._config_path = resolve_config_path(config_path)

    @property
    def config_path(self) -> Path:
        return self._config_path

    def load(self) -> SyncConfig | None:
        if not self._config_path.exists():
            return None
        try:
            payload = json.loads(self._config_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.exception("No se pudo leer %s: %s", self._config_path, exc)
            return None
        if not isinstance(payload, dict):
            raise SyncConfigError(f"{self._config_path} no contiene un objeto JSON.")
        return config_from_payload(payload)

    def save(self, config: SyncConfig) -> SyncConfig:
        payload = asdict(config)
        payload["languages"] = list(config.languages)
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        self._config_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        return config
