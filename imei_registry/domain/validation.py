from __future__ import annotations

import re

from imei_registry.domain.errors import InvalidInputError

# Verification accepts the wider range legacy rows were stored with; new
# registrations must be a full 15-digit IMEI.
VERIFY_IMEI_PATTERN = re.compile(r"[0-9]{10,20}")
REGISTER_IMEI_PATTERN = re.compile(r"[0-9]{15}")

IDENTIFIER_MIN_LENGTH = 5
IDENTIFIER_MAX_LENGTH = 20
PASSWORD_MIN_LENGTH = 6


def validate_verify_imei(imei: str) -> str:
    if not isinstance(imei, str) or not imei.strip():
        raise InvalidInputError("imei is required", reason="imei_required")
    value = imei.strip()
    if VERIFY_IMEI_PATTERN.fullmatch(value) is None:
        raise InvalidInputError(
            "invalid imei format: must contain only digits (10-20)",
            reason="imei_format",
        )
    return value


def validate_register_imei(imei: str) -> str:
    if not isinstance(imei, str) or not imei.strip():
        raise InvalidInputError("imei is required", reason="imei_required")
    value = imei.strip()
    if REGISTER_IMEI_PATTERN.fullmatch(value) is None:
        raise InvalidInputError("invalid imei: must be exactly 15 digits", reason="imei_format")
    return value


def validate_identifier(identifier: str) -> str:
    value = identifier.strip() if isinstance(identifier, str) else ""
    if not value:
        raise InvalidInputError("identifier is required", reason="identifier_required")
    if not IDENTIFIER_MIN_LENGTH <= len(value) <= IDENTIFIER_MAX_LENGTH:
        raise InvalidInputError(
            f"identifier must be between {IDENTIFIER_MIN_LENGTH} and {IDENTIFIER_MAX_LENGTH} characters",
            reason="identifier_format",
        )
    return value


def validate_password(password: str) -> str:
    if not isinstance(password, str) or len(password) < PASSWORD_MIN_LENGTH:
        raise InvalidInputError(
            f"password must be at least {PASSWORD_MIN_LENGTH} characters",
            reason="password_too_short",
        )
    return password
