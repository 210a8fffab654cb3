"""
Tests for stored user-created templates.
"""

import pytest

from ftt.errors import ValidationError
from ftt.models import CustomTemplateModel, SyncState
from ftt.services.custom_template_service import (
    get_custom_template,
    load_custom_templates,
    save_custom_template,
)
from ftt.services.template_library import TemplateLibrary


@pytest.mark.asyncio
async def test_save_and_reload(async_session, library, p1_l1):
    """Test that a saved template comes back intact in a fresh library."""
    custom = library.custom_copy(p1_l1.id, name="P1-L1 (short field)")

    stored = await save_custom_template(async_session, custom, source_template_id=p1_l1.id)

    assert stored.sync_state == SyncState.UNSYNCED
    assert stored.source_template_id == p1_l1.id
    fresh = TemplateLibrary.load_default()
    assert await load_custom_templates(async_session, fresh) == 1
    assert fresh.get(custom.id) == custom


@pytest.mark.asyncio
async def test_load_skips_known_templates(async_session, library, p1_l1):
    """Test that templates already in the library are not registered twice."""
    custom = library.custom_copy(p1_l1.id)
    await save_custom_template(async_session, custom)
    library.register(custom)

    assert await load_custom_templates(async_session, library) == 0


@pytest.mark.asyncio
async def test_bundled_templates_are_not_stored(async_session, p1_l1):
    """Test that only user-created templates can be saved."""
    with pytest.raises(ValidationError):
        await save_custom_template(async_session, p1_l1)

    assert await get_custom_template(async_session, p1_l1.id) is None


@pytest.mark.asyncio
async def test_duplicate_save_rejected(async_session, library, p1_l1):
    """Test that saving the same template twice fails."""
    custom = library.custom_copy(p1_l1.id)
    await save_custom_template(async_session, custom)

    with pytest.raises(ValidationError):
        await save_custom_template(async_session, custom)

    assert await async_session.get(CustomTemplateModel, custom.id) is not None
