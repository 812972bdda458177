from __future__ import annotations

import json
from typing import Optional

import gspread
from google.auth.exceptions import DefaultCredentialsError, RefreshError

from i18n_sync.core.errors import RemoteServiceError
from i18n_sync.domain.sync_errors import (
    RemoteApiDisabledError,
    RemoteAuthError,
    RemoteConfigError,
    RemoteCredentialsError,
    RemoteNotFoundError,
    RemotePermissionError,
    RemoteRateLimitError,
)


class SheetsClientError(RemoteServiceError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message, status_code=status_code)
        self.status_code = status_code


def extract_response_status_code(ex: Exception) -> int | None:
    response = getattr(ex, "response", None)
    return getattr(response, "status_code", None)


def _extract_api_error_text(ex: gspread.exceptions.APIError) -> str:
    response = getattr(ex, "response", None)
    if response is not None:
        text = getattr(response, "text", "")
        if text:
            return text
    return str(ex)


def normalize_error_text(text: str) -> str:
    return text.strip().lower()


def _credentials_not_found_message(path: Optional[str]) -> str:
    if path:
        return f"No se encuentra el fichero de credenciales en {path}. Revisa credentials_path en la configuración."
    return "No se encuentra el fichero de credenciales. Revisa credentials_path en la configuración."


def _is_rate_limited_api_error(text_lower: str, status_code: int | None) -> bool:
    if status_code == 429:
        return True
    return any(
        token in text_lower
        for token in (
            "[429]",
            "resource_exhausted",
            "rate_limit_exceeded",
            "quota exceeded",
        )
    )


def classify_api_error(text_lower: str, status_code: int | None) -> Exception:
    if _is_rate_limited_api_error(text_lower, status_code):
        return RemoteRateLimitError("Límite de Google Sheets alcanzado. Espera 1 minuto y reintenta.")
    if "google sheets api has not been used" in text_lower or "it is disabled" in text_lower:
        return RemoteApiDisabledError(
            "La API de Google Sheets no está habilitada en tu proyecto de Google Cloud. Actívala y reintenta."
        )
    if status_code == 404 or "[404]" in text_lower or "requested entity was not found" in text_lower:
        return RemoteNotFoundError("El spreadsheet_id no es válido o la hoja no existe. Revisa sheet_name y spreadsheet_id.")
    if status_code == 401 or "[401]" in text_lower or "unauthenticated" in text_lower:
        return RemoteAuthError(
            "Google Sheets rechazó la autenticación. Revisa el fichero de credenciales de la cuenta de servicio."
        )
    if status_code == 403 or "[403]" in text_lower or "permission_denied" in text_lower:
        return RemotePermissionError(
            "La hoja no está compartida con la cuenta de servicio. Compártela con permiso de edición."
        )
    return SheetsClientError(text_lower, status_code=status_code)


def map_gspread_exception(ex: Exception) -> Exception:
    if isinstance(ex, (RemoteRateLimitError, RemoteConfigError, SheetsClientError)):
        return ex
    if isinstance(ex, gspread.exceptions.APIError):
        text = _extract_api_error_text(ex)
        return classify_api_error(normalize_error_text(text), extract_response_status_code(ex))
    if isinstance(ex, FileNotFoundError):
        return RemoteCredentialsError(_credentials_not_found_message(getattr(ex, "filename", None)))
    if isinstance(ex, (json.JSONDecodeError, DefaultCredentialsError)):
        return RemoteCredentialsError("El fichero de credenciales no es válido. Revisa su contenido.")
    if isinstance(ex, RefreshError):
        return RemoteAuthError("No se pudo renovar el token de la cuenta de servicio. Revisa las credenciales.")
    if isinstance(ex, gspread.exceptions.WorksheetNotFound):
        return RemoteNotFoundError(f"No existe la pestaña {ex} en el spreadsheet. Revisa sheet_name.")
    return ex
