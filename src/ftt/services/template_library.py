"""
Template catalog for the Flight Training Tracker.

The library is read-only reference data loaded once at startup, either from
the bundled sample (ftt/data/default_library.json) or from a JSON file named
by FTT_LIBRARY_PATH. Assignments point into it by template id; the legacy
template_identifier is kept as a second lookup key for records written
before ids were stable.

User-created copies are added on top, from the custom_templates table
(see custom_template_service) or as they arrive from the shared store.
"""

import json
import logging
from collections.abc import Iterable, Iterator
from importlib import resources
from pathlib import Path
from typing import Any

import pydantic

from ftt.errors import ValidationError
from ftt.models import Template, TemplateItem, TemplateSummary
from ftt.services.progress_service import categories_match
from ftt.utils.ids import generate_entity_id

logger = logging.getLogger(__name__)

DEFAULT_LIBRARY_RESOURCE = "default_library.json"


class TemplateNotFoundError(ValidationError):
    """Raised when a template id is not in the library."""

    pass


class DuplicateTemplateError(ValidationError):
    """Raised when registering a template whose id is already taken."""

    pass


class TemplateLibrary:
    """In-memory catalog of templates, keyed by id and by legacy identifier."""

    def __init__(self, templates: Iterable[Template] = (), version: str = "0"):
        self.version = version
        self._templates: dict[str, Template] = {}
        self._by_identifier: dict[str, Template] = {}
        for template in templates:
            self.register(template)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TemplateLibrary":
        """
        Build a library from its JSON document form.

        Args:
            data: {"version": "...", "templates": [...]}

        Returns:
            TemplateLibrary

        Raises:
            ValidationError: If the document or any template is malformed
        """
        try:
            templates = [Template.model_validate(t) for t in data.get("templates", [])]
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid template library: {e}") from e

        library = cls(templates, version=str(data.get("version", "0")))
        logger.info(
            "library.loaded version=%s templates=%d", library.version, len(library)
        )
        return library

    @classmethod
    def from_file(cls, path: str | Path) -> "TemplateLibrary":
        """
        Load a library from a JSON file.

        Raises:
            ValidationError: If the file cannot be read or parsed
        """
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ValidationError(f"Cannot load template library from {path}: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def load_default(cls) -> "TemplateLibrary":
        """Load the sample library bundled with the package."""
        text = resources.files("ftt.data").joinpath(DEFAULT_LIBRARY_RESOURCE).read_text("utf-8")
        return cls.from_dict(json.loads(text))

    @classmethod
    def from_settings(cls, library_path: str = "") -> "TemplateLibrary":
        """Load from FTT_LIBRARY_PATH when set, else the bundled sample."""
        if library_path:
            return cls.from_file(library_path)
        return cls.load_default()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._templates)

    def __iter__(self) -> Iterator[Template]:
        return iter(self._templates.values())

    def __contains__(self, template_id: object) -> bool:
        return template_id in self._templates

    def get(self, template_id: str) -> Template | None:
        """Get a template by id."""
        return self._templates.get(template_id)

    def require(self, template_id: str) -> Template:
        """
        Get a template by id.

        Raises:
            TemplateNotFoundError: If the id is not in the library
        """
        template = self._templates.get(template_id)
        if template is None:
            raise TemplateNotFoundError(f"Template {template_id} does not exist")
        return template

    def find_by_identifier(self, identifier: str | None) -> Template | None:
        """Get a template by its legacy string identifier."""
        if not identifier:
            return None
        return self._by_identifier.get(identifier)

    def resolve(self, template_id: str, identifier: str | None = None) -> Template | None:
        """Look up by id, falling back to the legacy identifier."""
        return self.get(template_id) or self.find_by_identifier(identifier)

    def by_category(self, category: str) -> list[Template]:
        """All templates of a category, in any spelling of the category name."""
        return [t for t in self._templates.values() if categories_match(t.category, category)]

    def summaries(self, category: str | None = None) -> list[TemplateSummary]:
        """Minimal info for listing, optionally filtered by category."""
        templates = self.by_category(category) if category else list(self._templates.values())
        return [
            TemplateSummary(
                id=t.id,
                name=t.name,
                category=t.category,
                phase=t.phase,
                item_count=len(t.items),
            )
            for t in templates
        ]

    # ------------------------------------------------------------------
    # Authoring
    # ------------------------------------------------------------------

    def register(self, template: Template) -> Template:
        """
        Add a template to the library.

        Raises:
            DuplicateTemplateError: If the id or legacy identifier is taken
        """
        if template.id in self._templates:
            raise DuplicateTemplateError(f"Template {template.id} already exists")
        if template.template_identifier and template.template_identifier in self._by_identifier:
            raise DuplicateTemplateError(
                f"Template identifier {template.template_identifier} already exists"
            )

        self._templates[template.id] = template
        if template.template_identifier:
            self._by_identifier[template.template_identifier] = template
        return template

    def custom_copy(
        self,
        template_id: str,
        name: str | None = None,
        items: Iterable[TemplateItem] | None = None,
    ) -> Template:
        """
        Build a user-authored copy of a template without registering it.

        Templates are immutable; the copy gets a fresh id, no legacy
        identifier, and is marked as user-created. Item ids are regenerated
        unless new items are supplied.

        Args:
            template_id: Template to copy
            name: New name (defaults to the original's)
            items: Replacement items

        Returns:
            The unregistered copy

        Raises:
            TemplateNotFoundError: If template_id is not in the library
        """
        source = self.require(template_id)
        if items is None:
            items = [item.model_copy(update={"id": generate_entity_id()}) for item in source.items]

        return Template(
            id=generate_entity_id(),
            name=name or source.name,
            category=source.category,
            phase=source.phase,
            relevant_data=source.relevant_data,
            template_identifier=None,
            is_user_created=True,
            items=tuple(items),
        )

    def customize(
        self,
        template_id: str,
        name: str | None = None,
        items: Iterable[TemplateItem] | None = None,
    ) -> Template:
        """
        Register a user-authored copy of a template, in memory only.

        TrainingTracker.customize_template also stores the copy so that it
        survives a restart and reaches the other device.
        """
        copy = self.register(self.custom_copy(template_id, name, items))
        logger.info("library.customized source_id=%s template_id=%s", template_id, copy.id)
        return copy
