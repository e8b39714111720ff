"""Status definitions and exceptions for ExpenseClient.

This module provides:
    - Status: enumeration of possible client states
    - STATUS_MESSAGE: user-facing messages for each status
    - get_message: retrieve the message for a status
    - BaseStatusException: base exception carrying a Status
    - Specific exceptions (e.g., RemoteRequestException) for error handling in services
"""
import enum
import logging
from typing import Dict, Optional


class Status(enum.StrEnum):
    """Enumeration of client status codes."""
    UnknownStatus = enum.auto()
    Okay = enum.auto()

    # Config status
    ClientConfigNotFound = enum.auto()
    ClientConfigInvalid = enum.auto()

    # Remote service status
    ServiceUnavailable = enum.auto()
    RemoteRequestFailed = enum.auto()

    # Local state
    CacheInvalid = enum.auto()

    # Input
    ExpenseInvalid = enum.auto()


STATUS_MESSAGE: Dict[Status, str] = {
    Status.UnknownStatus: 'Unknown status. Please check the settings.',
    Status.Okay: 'Everything is okay.',

    Status.ClientConfigNotFound: 'Could not find the client config.',
    Status.ClientConfigInvalid: 'The client config seems to be incomplete, or contains invalid values.',

    Status.ServiceUnavailable: 'The expense service is unavailable. Changes are kept locally until it is back.',
    Status.RemoteRequestFailed: 'The expense service rejected the request.',

    Status.CacheInvalid: 'The local store is invalid. Try resetting the local data.',

    Status.ExpenseInvalid: 'The expense contains invalid values.',
}


def get_message(status: Status) -> str:
    """
    Get the message for a given status.

    Args:
        status (Status): The status enum.

    Returns:
        str: The message associated with the status.
    """
    return STATUS_MESSAGE.get(status, 'Unknown status')


class BaseStatusException(Exception):
    """Base exception for status-based errors in ExpenseClient.

    Attributes:
        status (Status): Status code associated with this error.
        status_message (str): User-facing message for the status.
        log_level (int): Level the exception is logged at when raised.
        notify (bool): Whether the error signal is emitted for the UI.

    Args:
        message (str): Optional additional context for the error.
    """
    status = Status.UnknownStatus
    log_level = logging.ERROR
    notify = True

    def __init__(self, message: Optional[str] = None):
        self.status_message = get_message(self.status)
        exception_message = f'{self.status_message} {message}' if message else self.status_message
        super().__init__(exception_message)

        logging.log(self.log_level, exception_message)

        if not self.notify:
            return

        from ..signals import signals
        signals.error.emit(message or self.status_message)


class UnknownException(BaseStatusException):
    """Exception for an unknown error during status processing."""
    pass


class ClientConfigNotFoundException(BaseStatusException):
    """Exception raised when the client configuration file cannot be found."""
    status = Status.ClientConfigNotFound


class ClientConfigInvalidException(BaseStatusException):
    """Exception raised when the client configuration is invalid or malformed."""
    status = Status.ClientConfigInvalid


class ServiceUnavailableException(BaseStatusException):
    """Exception raised when the expense service cannot be reached.

    Connectivity failures are recovered by switching to offline mode, so they are
    logged as warnings and never reported to the UI.
    """
    status = Status.ServiceUnavailable
    log_level = logging.WARNING
    notify = False


class RemoteRequestException(BaseStatusException):
    """Exception raised when the expense service answers with a non-success status.

    Attributes:
        status_code (int): HTTP status code of the failed response, if any.
    """
    status = Status.RemoteRequestFailed
    notify = False

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class CacheInvalidException(BaseStatusException):
    """Exception raised when the local store is invalid or corrupted."""
    status = Status.CacheInvalid


class ExpenseInvalidException(BaseStatusException):
    """Exception raised when expense input cannot be normalized."""
    status = Status.ExpenseInvalid
