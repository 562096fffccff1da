"""
Custom Exception Classes for the Ads/CRM sync pipeline

This module defines custom exceptions for better error handling and debugging.
"""
from typing import Optional


class SyncError(Exception):
    """Base exception for all sync pipeline errors"""
    pass


class PlatformAPIError(SyncError):
    """Raised by the platform adapters when a remote call fails.

    Carries an HTTP-like status code so the retry policy can classify it.
    """
    def __init__(self, service: str, message: str, status_code: Optional[int] = None):
        self.service = service
        self.status_code = status_code
        status = f" (status {status_code})" if status_code is not None else ""
        super().__init__(f"{service} request failed{status}: {message}")


class MalformedResponseError(SyncError):
    """Raised when a remote response is missing the fields we page through"""
    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"Malformed response from {operation}: {message}")


class ConfigurationError(SyncError):
    """Raised when configuration is invalid or missing"""
    def __init__(self, message: str):
        super().__init__(f"Configuration error: {message}")


class SheetWriteError(SyncError):
    """Raised when writing a tab of the output spreadsheet fails"""
    def __init__(self, sheet_name: str, message: str):
        self.sheet_name = sheet_name
        super().__init__(f"Failed to write sheet '{sheet_name}': {message}")
