"""
Flight Training Tracker Models.

Exports all Pydantic and SQLAlchemy models for easy importing.
"""

# Assignment and item progress
from .assignment import (
    Assignment,
    AssignmentModel,
    AssignmentUpdate,
    ItemProgress,
    ItemProgressModel,
    ItemProgressUpdate,
)

# Base
from .base import Base, SyncState, TimestampMixin, UTCDateTime

# Student
from .student import (
    REQUIRED_DOCUMENT_TYPES,
    DocumentType,
    Student,
    StudentBase,
    StudentCreate,
    StudentModel,
    StudentUpdate,
)

# Sync bookkeeping
from .sync import DeferredRecordModel, SyncCursorModel, Tombstone, TombstoneModel

# Template
from .template import CustomTemplateModel, Template, TemplateItem, TemplateSummary

__all__ = [
    # Base
    "Base",
    "SyncState",
    "TimestampMixin",
    "UTCDateTime",
    # Template
    "CustomTemplateModel",
    "Template",
    "TemplateItem",
    "TemplateSummary",
    # Assignment
    "Assignment",
    "AssignmentModel",
    "AssignmentUpdate",
    "ItemProgress",
    "ItemProgressModel",
    "ItemProgressUpdate",
    # Student
    "DocumentType",
    "REQUIRED_DOCUMENT_TYPES",
    "Student",
    "StudentBase",
    "StudentCreate",
    "StudentModel",
    "StudentUpdate",
    # Sync
    "DeferredRecordModel",
    "SyncCursorModel",
    "Tombstone",
    "TombstoneModel",
]
