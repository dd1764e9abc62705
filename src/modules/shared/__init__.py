"""
Questline Shared Module

Domain-level foundations for the feature modules:

- BaseService: logging, config access and event emission for services
- Domain exceptions raised by services and translated at their boundaries
"""

from __future__ import annotations

from .base_service import BaseService
from .exceptions import (
    CompletionAlreadyRecordedError,
    NotFoundError,
    QuestExpiredError,
    QuestlineDomainException,
    QuestNotFoundError,
    UserNotFoundError,
    ValidationError,
)

__all__ = [
    "BaseService",
    "QuestlineDomainException",
    "NotFoundError",
    "UserNotFoundError",
    "QuestNotFoundError",
    "QuestExpiredError",
    "ValidationError",
    "CompletionAlreadyRecordedError",
]
