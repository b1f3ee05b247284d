import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import pytest
from profile_registry import ProfileRegistry
from utils.exceptions import DatabaseError


@pytest.mark.asyncio
async def test_profile_crud(db_session):
    registry = ProfileRegistry(db_session)
    created = await registry.create_profile({"email": "kim@example.com", "auth_user_id": "auth-1",
                                             "first_name": "Kim"})
    assert (await registry.get_profile(created.id)).email == "kim@example.com"
    assert (await registry.get_by_email("kim@example.com")).id == created.id
    assert (await registry.get_by_auth_user_id("auth-1")).id == created.id

    updated = await registry.update_profile(created.id, {"last_name": "Lee", "first_name": None})
    assert updated.first_name == "Kim"
    assert updated.last_name == "Lee"

    assert len(await registry.list_profiles()) == 1
    assert await registry.count_profiles() == 1


@pytest.mark.asyncio
async def test_soft_deleted_profile_keeps_email_reserved(db_session):
    registry = ProfileRegistry(db_session)
    created = await registry.create_profile({"email": "gone@example.com"})
    await registry.delete_profile(created.id)
    assert await registry.get_profile(created.id) is None
    assert await registry.list_profiles() == []
    assert await registry.email_exists("gone@example.com") is True
    assert await registry.email_exists("never@example.com") is False


@pytest.mark.asyncio
async def test_update_missing_profile_raises(db_session):
    registry = ProfileRegistry(db_session)
    with pytest.raises(DatabaseError):
        await registry.update_profile("missing", {"first_name": "x"})


@pytest.mark.asyncio
async def test_set_avatar_url_can_clear(db_session):
    registry = ProfileRegistry(db_session)
    created = await registry.create_profile({"email": "a@example.com"})
    await registry.set_avatar_url(created.id, "http://test/storage/a.png")
    cleared = await registry.set_avatar_url(created.id, None)
    assert cleared.avatar_url is None
