"""Centralized error response helpers and domain exceptions.

Every error leaving the API uses the same envelope:
    {"status": "error", "error": {"code", "message", "details"?}, "timestamp", "path"?}
"""
from __future__ import annotations
from typing import Any, Dict
import time

ERROR_CODES = {
    "validation": "VALIDATION_ERROR",
    "not_found": "NOT_FOUND",
    "order_not_found": "ORDER_NOT_FOUND",
    "menu_item_not_found": "MENU_ITEM_NOT_FOUND",
    "storage_unavailable": "STORAGE_UNAVAILABLE",
    "malformed_state": "MALFORMED_STATE",
    "db": "DB_ERROR",
    "internal": "INTERNAL_SERVER_ERROR",
}


def error_payload(code: str, message: str, details: Any | None = None, path: str | None = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "status": "error",
        "error": {
            "code": code,
            "message": message,
        },
        "timestamp": time.time(),
    }
    if details is not None:
        payload["error"]["details"] = details
    if path:
        payload["path"] = path
    return payload


class DomainError(Exception):
    """Base domain error storing standardized fields."""

    http_status = 400

    def __init__(self, code: str, message: str, details: Any | None = None):  # noqa: D401
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details


class StorageUnavailable(DomainError):
    """The durable sequence store could not be reached or did not complete.

    Callers must abort order creation; the request is safe to retry.
    """

    http_status = 503

    def __init__(self, message: str = "Tracking sequence storage unavailable", details: Any | None = None):
        super().__init__(ERROR_CODES["storage_unavailable"], message,
                         details={"retryable": True, **(details or {})})


class MalformedState(DomainError):
    """The stored counter for a date is not a valid non-negative integer."""

    http_status = 500

    def __init__(self, date_key: str, value: Any):
        super().__init__(
            ERROR_CODES["malformed_state"],
            f"Sequence counter for {date_key} is malformed: {value!r}",
            details={"date": date_key},
        )
        self.date_key = date_key
        self.value = value


class OrderNotFound(DomainError):
    http_status = 404

    def __init__(self, message: str = "Order not found"):
        super().__init__(ERROR_CODES["order_not_found"], message)


class MenuItemNotFound(DomainError):
    http_status = 404

    def __init__(self, message: str = "Menu item not found"):
        super().__init__(ERROR_CODES["menu_item_not_found"], message)


class OrderValidationError(DomainError):
    http_status = 422

    def __init__(self, message: str, details: Any | None = None):
        super().__init__(ERROR_CODES["validation"], message, details=details)


__all__ = [
    "ERROR_CODES",
    "error_payload",
    "DomainError",
    "StorageUnavailable",
    "MalformedState",
    "OrderNotFound",
    "MenuItemNotFound",
    "OrderValidationError",
]
