"""
Persistence for user-created templates.

The bundled library is rebuilt from JSON on every start; templates authored
on the device are stored in custom_templates and registered into the
library again at startup.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ftt.db import commit_or_rollback
from ftt.errors import ValidationError
from ftt.models import CustomTemplateModel, SyncState, Template
from ftt.services.template_library import TemplateLibrary
from ftt.utils.clock import utcnow

logger = logging.getLogger(__name__)


def custom_template_model(
    template: Template, source_template_id: str | None = None
) -> CustomTemplateModel:
    """Build the row for a user-created template. Does not add it to a session."""
    if not template.is_user_created:
        raise ValidationError(f"Template {template.id} is not user-created")
    return CustomTemplateModel(
        id=template.id,
        name=template.name,
        category=template.category,
        phase=template.phase,
        relevant_data=template.relevant_data,
        items=[item.model_dump() for item in template.items],
        source_template_id=source_template_id,
        last_modified=utcnow(),
        sync_state=SyncState.UNSYNCED.value,
    )


async def save_custom_template(
    session: AsyncSession, template: Template, source_template_id: str | None = None
) -> CustomTemplateModel:
    """
    Store a user-created template.

    Args:
        session: Database session
        template: Template built by TemplateLibrary.custom_copy
        source_template_id: Library template it was copied from

    Returns:
        The stored row

    Raises:
        ValidationError: If the template is not user-created or already stored
        PersistenceError: If the write fails
    """
    if await session.get(CustomTemplateModel, template.id) is not None:
        raise ValidationError(f"Custom template {template.id} already exists")

    model = custom_template_model(template, source_template_id)
    session.add(model)
    await commit_or_rollback(session, "save_custom_template")

    logger.info(
        "template.saved template_id=%s source_id=%s items=%d",
        template.id,
        source_template_id,
        len(template.items),
    )
    return model


async def get_custom_template(
    session: AsyncSession, template_id: str
) -> CustomTemplateModel | None:
    """Get a stored user-created template by id."""
    return await session.get(CustomTemplateModel, template_id)


async def load_custom_templates(session: AsyncSession, library: TemplateLibrary) -> int:
    """
    Register every stored template that the library does not know yet.

    Returns:
        Number of templates registered
    """
    result = await session.execute(select(CustomTemplateModel).order_by(CustomTemplateModel.id))
    loaded = 0
    for model in result.scalars().all():
        if model.id in library:
            continue
        library.register(model.to_template())
        loaded += 1

    if loaded:
        logger.info("library.custom_loaded templates=%d", loaded)
    return loaded
