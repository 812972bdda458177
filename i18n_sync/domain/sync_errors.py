from __future__ import annotations

from i18n_sync.core.errors import BusinessError, SyncInfraError, TransientRemoteError, ValidationError

VERSION_CONFLICT_PHRASE = "conflicto de versión remota"
ROW_LOCKED_PHRASE = "fila ya bloqueada"


class SyncError(BusinessError):
    pass


class VersionConflictError(SyncError):
    def __init__(self, expected_version: str, actual_version: str) -> None:
        super().__init__(
            f"Conflicto de versión remota: se esperaba {expected_version[:12]} y la hoja tiene {actual_version[:12]}. "
            "Vuelve a sincronizar para partir de los datos actuales.",
            expected_version=expected_version,
            actual_version=actual_version,
        )
        self.expected_version = expected_version
        self.actual_version = actual_version


class ConcurrencyError(SyncError):
    def __init__(self, message: str, *, identity: str | None = None, owner: str | None = None) -> None:
        super().__init__(message, identity=identity, owner=owner)
        self.identity = identity
        self.owner = owner


class SyncConfigError(ValidationError):
    pass


class RemoteConfigError(SyncInfraError):
    pass


class RemoteApiDisabledError(RemoteConfigError):
    pass


class RemotePermissionError(RemoteConfigError):
    pass


class RemoteAuthError(RemoteConfigError):
    pass


class RemoteNotFoundError(RemoteConfigError):
    pass


class RemoteCredentialsError(RemoteConfigError):
    pass


class RemoteRateLimitError(TransientRemoteError):
    status_code = 429
