"""
Questline Validation Package

Expose the input validation primitives used by services and the command line.
Business rule enforcement stays in the services; this package is read-only
and stateless.
"""

from src.core.validation.input_validator import (
    IDENTIFIER_PATTERN,
    InputValidator,
)

__all__ = [
    "IDENTIFIER_PATTERN",
    "InputValidator",
]
