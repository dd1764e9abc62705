"""
Input Validation Layer for Questline

Purpose
-------
Provide a centralized validation layer for all caller-supplied inputs:
identity strings, quest identifiers, XP rewards, careers and experience
levels. Enforces type safety, bounds checking, and format validation before
any store I/O happens.

Responsibilities
----------------
- Validate identifiers against the identifier charset and minimum length
- Validate XP rewards as strict positive integers (booleans and numeric
  strings are rejected)
- Validate free-text fields (names, careers) for length
- Validate choice inputs against allowed options
- Raise ValidationError with user-friendly error messages

Non-Responsibilities
--------------------
- Business rule enforcement (service layer concern)
- Authentication (identity provider concern)

Observability
-------------
Every validation failure is logged at debug level with field_name,
raw_value (repr), and reason.

Identifier Charset
------------------
Identifiers are limited to ``[A-Za-z0-9_.:-]``. The completion ledger key
joins user and quest identifiers with ``/``, which therefore can never appear
inside either part.
"""

from __future__ import annotations

import re
from typing import Any, NoReturn, Optional, Sequence

from src.core.logging.logger import get_logger
from src.modules.shared.exceptions import ValidationError

logger = get_logger(__name__)

IDENTIFIER_PATTERN = re.compile(r"[A-Za-z0-9_.:\-]+")
MAX_IDENTIFIER_LENGTH = 128


def _raise_validation_error(field_name: str, value: Any, message: str) -> NoReturn:
    """
    Centralized helper to log and raise a ValidationError.
    """
    logger.debug(
        "Input validation failed",
        extra={
            "field_name": field_name,
            "raw_value": repr(value),
            "reason": message,
        },
    )
    raise ValidationError(field_name, message)


class InputValidator:
    """
    Centralized input validation for all caller inputs.

    All validation methods:
    - Are stateless and deterministic
    - Return validated values on success
    - Raise ValidationError on failure (never silently fail)
    """

    # =========================================================================
    # IDENTIFIER VALIDATION
    # =========================================================================

    @staticmethod
    def validate_identifier(
        value: Any,
        field_name: str,
        min_length: int = 1,
        max_length: int = MAX_IDENTIFIER_LENGTH,
    ) -> str:
        """
        Validate an opaque identifier (user id, quest id).

        Args:
            value: Input value to validate
            field_name: Name of field for error messages/logging
            min_length: Minimum accepted length
            max_length: Maximum accepted length

        Returns:
            The identifier, unchanged

        Raises:
            ValidationError: If the value is missing, not a string, too
                short or long, or contains characters outside the charset
        """
        if value is None or value == "":
            _raise_validation_error(field_name, value, "Value is required")

        if not isinstance(value, str):
            _raise_validation_error(
                field_name, value, f"Must be a string, got {type(value).__name__}"
            )

        if len(value) < min_length:
            _raise_validation_error(
                field_name,
                value,
                f"Must be at least {min_length} characters, got {len(value)}",
            )

        if len(value) > max_length:
            _raise_validation_error(
                field_name,
                value,
                f"Cannot exceed {max_length} characters, got {len(value)}",
            )

        if not IDENTIFIER_PATTERN.fullmatch(value):
            _raise_validation_error(
                field_name,
                value,
                "May only contain letters, digits, '_', '.', ':' and '-'",
            )

        return value

    # =========================================================================
    # INTEGER VALIDATION
    # =========================================================================

    @staticmethod
    def validate_reward(value: Any, field_name: str = "xp_reward") -> int:
        """
        Validate an XP reward: a real ``int`` strictly greater than zero.

        Unlike CLI-facing integer parsing, no conversion is attempted;
        ``True``, ``"50"`` and ``50.0`` are all rejected.
        """
        if isinstance(value, bool) or not isinstance(value, int):
            _raise_validation_error(
                field_name,
                value,
                f"Must be a whole number, got {type(value).__name__}",
            )

        if value <= 0:
            _raise_validation_error(
                field_name, value, f"Must be a positive integer, got {value}"
            )

        return value

    @staticmethod
    def validate_integer(
        value: Any,
        field_name: str,
        min_value: Optional[int] = None,
        max_value: Optional[int] = None,
    ) -> int:
        """
        Validate and convert value to integer with optional bounds checking.

        Used for command-line arguments, where values arrive as strings.
        """
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        if isinstance(value, bool):
            _raise_validation_error(field_name, value, "Must be a whole number")

        try:
            int_value = int(value)
        except (ValueError, TypeError):
            _raise_validation_error(
                field_name, value, f"Must be a whole number, got '{value}'"
            )

        if min_value is not None and int_value < min_value:
            _raise_validation_error(
                field_name, int_value, f"Must be at least {min_value}, got {int_value}"
            )

        if max_value is not None and int_value > max_value:
            _raise_validation_error(
                field_name, int_value, f"Cannot exceed {max_value}, got {int_value}"
            )

        return int_value

    # =========================================================================
    # STRING VALIDATION
    # =========================================================================

    @staticmethod
    def validate_string(
        value: Any,
        field_name: str,
        min_length: int = 1,
        max_length: int = 200,
        strip: bool = True,
    ) -> str:
        """
        Validate free text such as a display name or career title.
        """
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        if not isinstance(value, str):
            _raise_validation_error(
                field_name, value, f"Must be a string, got {type(value).__name__}"
            )

        text = value.strip() if strip else value

        if len(text) < min_length:
            _raise_validation_error(
                field_name, value, f"Must be at least {min_length} characters"
            )

        if len(text) > max_length:
            _raise_validation_error(
                field_name, value, f"Cannot exceed {max_length} characters"
            )

        return text

    @staticmethod
    def validate_choice(
        value: Any,
        field_name: str,
        valid_choices: Sequence[str],
        case_sensitive: bool = False,
    ) -> str:
        """
        Validate that value is one of the allowed choices.

        Returns the canonical spelling from `valid_choices`.
        """
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        str_value = str(value).strip()
        for choice in valid_choices:
            if (choice == str_value) if case_sensitive else (
                choice.lower() == str_value.lower()
            ):
                return choice

        _raise_validation_error(
            field_name,
            value,
            f"Must be one of: {', '.join(valid_choices)}",
        )
