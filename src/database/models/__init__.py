# src/database/models/__init__.py
"""
Model registry for Questline.

Importing this package registers every table on ``Base.metadata``.
"""

from src.core.database.base import Base
from src.database.models.document import Document

__all__ = [
    "Base",
    "Document",
]
