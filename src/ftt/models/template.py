"""
Template models for the Flight Training Tracker.

A Template is a lesson definition bundled with the application: a named,
ordered list of checklist items. This is the TEMPLATE LAYER - shared,
read-only reference data. Per-student state lives in Assignment and
ItemProgress, which point at templates by id only.

User-created templates are the exception: they are stored in the
custom_templates table and travel to the shared store so that both devices
can resolve assignments of them.
"""

import hashlib
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ftt.utils.clock import utcnow

from .base import Base, SyncState, UTCDateTime


class TemplateItem(BaseModel):
    """One checklist line of a template."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Stable across library revisions")
    title: str = Field(..., min_length=1)
    notes: str | None = None
    order: int = Field(default=0, ge=0)


class Template(BaseModel):
    """A named, ordered, immutable lesson definition."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=500)
    category: str = Field(..., description="PPL, Instrument, Commercial, Reviews, ...")
    phase: str | None = None
    relevant_data: str | None = Field(default=None, description="Reference notes for the lesson")
    template_identifier: str | None = Field(
        default=None, description="Legacy string id, e.g. 'default_p1_l1'"
    )
    is_user_created: bool = False
    items: tuple[TemplateItem, ...] = Field(default_factory=tuple)

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("template name must not be blank")
        return value

    @field_validator("items")
    @classmethod
    def _unique_sorted_items(cls, items: tuple[TemplateItem, ...]) -> tuple[TemplateItem, ...]:
        seen: set[str] = set()
        for item in items:
            if item.id in seen:
                raise ValueError(f"duplicate template item id {item.id}")
            seen.add(item.id)
        return tuple(sorted(items, key=lambda item: item.order))

    @property
    def item_ids(self) -> frozenset[str]:
        """Ids of every item in this template."""
        return frozenset(item.id for item in self.items)

    def item(self, item_id: str) -> TemplateItem | None:
        """Look up one item by id."""
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def content_hash(self) -> str:
        """
        Hash of the lesson content, used to detect library drift between builds.

        Covers the name and item titles in display order.
        """
        titles = "|".join(item.title for item in self.items)
        content = f"{self.name}|{titles}|{len(self.items)}"
        return hashlib.sha256(content.encode("utf-8")).hexdigest()


class TemplateSummary(BaseModel):
    """Minimal template info for lists."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    category: str
    phase: str | None = None
    item_count: int


# ============================================================================
# SQLAlchemy Models (for database)
# ============================================================================


class CustomTemplateModel(Base):
    """
    SQLAlchemy model for custom_templates table.

    Holds user-created templates only; bundled ones are never stored. Items
    are kept as a JSON list since a template is immutable once created.
    """

    __tablename__ = "custom_templates"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    phase: Mapped[str | None] = mapped_column(String, nullable=True)
    relevant_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    items: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    source_template_id: Mapped[str | None] = mapped_column(String, nullable=True)

    last_modified: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
    sync_state: Mapped[str] = mapped_column(String, default=SyncState.UNSYNCED.value)

    def to_template(self) -> Template:
        """Rebuild the immutable library template."""
        return Template(
            id=self.id,
            name=self.name,
            category=self.category,
            phase=self.phase,
            relevant_data=self.relevant_data,
            is_user_created=True,
            items=tuple(TemplateItem.model_validate(item) for item in self.items),
        )
