from __future__ import annotations

import os
import tempfile
from pathlib import Path

LOG_DIR_ENV_VAR = "I18N_SYNC_LOG_DIR"
_WRITE_PROBE_NAME = "_write_test.tmp"


def project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _log_dir_candidates() -> list[Path]:
    # Los logs acompañan al proyecto que se sincroniza (cwd), no a la instalación del paquete.
    env_dir = os.environ.get(LOG_DIR_ENV_VAR)
    candidates = [Path(env_dir)] if env_dir else []
    candidates.append(Path.cwd() / "logs")
    candidates.append(Path(tempfile.gettempdir()) / "I18nSync" / "logs")
    return candidates


def _is_writable_dir(candidate: Path) -> bool:
    try:
        candidate.mkdir(parents=True, exist_ok=True)
        probe = candidate / _WRITE_PROBE_NAME
        probe.write_text("ok", encoding="utf-8")
        probe.unlink(missing_ok=True)
    except OSError:
        return False
    return True


def resolve_log_dir() -> Path:
    for candidate in _log_dir_candidates():
        if _is_writable_dir(candidate):
            return candidate
    fallback = project_root()
    fallback.mkdir(parents=True, exist_ok=True)
    return fallback
