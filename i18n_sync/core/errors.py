from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base de los errores del motor; `details` acompaña al evento en el log operativo."""

    def __init__(self, message: str = "", **details: Any) -> None:
        super().__init__(message)
        self.details = {key: value for key, value in details.items() if value is not None}


class BusinessError(AppError):
    pass


class ValidationError(BusinessError):
    pass


class SyncInfraError(AppError):
    """Fallo al hablar con la hoja remota o al preparar el acceso a ella."""


class RemoteServiceError(SyncInfraError):
    pass


class TransientRemoteError(RemoteServiceError):
    """Puede desaparecer reintentando más tarde."""
