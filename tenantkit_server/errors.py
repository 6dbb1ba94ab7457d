# Copyright (C) 2024 TenantKit Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Domain error kinds and their HTTP mapping."""

from enum import Enum

from fastapi import status


class ErrorKind(str, Enum):
    UNAUTHENTICATED = "UNAUTHENTICATED"
    ACCESS_DENIED = "ACCESS_DENIED"
    USER_EXISTS = "USER_EXISTS"
    DUPLICATE_INVITATION = "DUPLICATE_INVITATION"
    ALREADY_ONBOARDED = "ALREADY_ONBOARDED"
    INVALID_TOKEN = "INVALID_TOKEN"
    ALREADY_USED = "ALREADY_USED"
    EXPIRED = "EXPIRED"
    EMAIL_MISMATCH = "EMAIL_MISMATCH"
    VALIDATION = "VALIDATION"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL = "INTERNAL"


HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.ACCESS_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorKind.USER_EXISTS: status.HTTP_409_CONFLICT,
    ErrorKind.DUPLICATE_INVITATION: status.HTTP_409_CONFLICT,
    ErrorKind.ALREADY_ONBOARDED: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_TOKEN: status.HTTP_400_BAD_REQUEST,
    ErrorKind.ALREADY_USED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.EXPIRED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.EMAIL_MISMATCH: status.HTTP_400_BAD_REQUEST,
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

DEFAULT_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.UNAUTHENTICATED: "Authentication required",
    ErrorKind.ACCESS_DENIED: "Access denied",
    ErrorKind.USER_EXISTS: "User with this email already exists",
    ErrorKind.DUPLICATE_INVITATION: "Pending invitation already exists for this email",
    ErrorKind.ALREADY_ONBOARDED: "User already exists and is associated with an organization",
    ErrorKind.INVALID_TOKEN: "Invalid invitation token",
    ErrorKind.ALREADY_USED: "Invitation has already been used",
    ErrorKind.EXPIRED: "Invitation has expired",
    ErrorKind.EMAIL_MISMATCH: "Email does not match the invitation",
    ErrorKind.VALIDATION: "Invalid request",
    ErrorKind.RATE_LIMITED: "Too many requests. Please try again later.",
    ErrorKind.INTERNAL: "Internal server error",
}


class ServiceError(Exception):
    """A request-terminating domain error. Converted to a JSON response at the API edge."""

    def __init__(self, kind: ErrorKind, message: str | None = None) -> None:
        self.kind = kind
        self.message = message or DEFAULT_MESSAGES[kind]
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return HTTP_STATUS[self.kind]

    def to_dict(self) -> dict:
        return {"error": self.kind.value, "detail": self.message}
