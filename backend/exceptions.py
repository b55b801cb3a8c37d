"""
Toolkit Custom Exceptions - Centralized error handling
"""
from fastapi import HTTPException, status
from typing import Any


class ToolkitException(Exception):
    """Base exception for the job manager"""
    def __init__(self, message: str, details: Any = None):
        self.message = message
        self.details = details
        super().__init__(self.message)


class SettingsError(ToolkitException):
    """Settings persistence errors"""
    pass


class DatabaseImportError(ToolkitException):
    """Errors while importing jobs from an uploaded database"""
    pass


class LaunchError(ToolkitException):
    """Training process could not be spawned"""
    pass


# HTTP Exception helpers for consistent responses
def not_found(resource: str, id: str | int) -> HTTPException:
    """Return 404 Not Found"""
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"{resource} with ID '{id}' not found"
    )


def bad_request(message: str, details: Any = None) -> HTTPException:
    """Return 400 Bad Request"""
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"message": message, "details": details} if details else message
    )


def conflict(message: str) -> HTTPException:
    """Return 409 Conflict"""
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=message
    )


def server_error(message: str = "Internal server error") -> HTTPException:
    """Return 500 Internal Server Error"""
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=message
    )


def file_too_large(max_size_mb: int) -> HTTPException:
    """Return 400 - import files over the limit are rejected as bad input"""
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=f"File too large. Maximum size is {max_size_mb}MB."
    )


def invalid_file_type(allowed: set[str]) -> HTTPException:
    """Return 400 Bad Request for a rejected upload extension"""
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=f"Invalid file type. Please select a SQLite database file ({', '.join(sorted(allowed))})."
    )
