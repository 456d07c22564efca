"""Unit tests for auth module."""

import uuid

import pytest
from fastapi import HTTPException

from backend.docchat.api.auth import DEFAULT_OWNER_ID, get_current_context


@pytest.mark.asyncio
async def test_get_current_context_no_header_uses_default() -> None:
    """Test that missing auth header uses the test default owner."""
    ctx = await get_current_context(authorization=None)

    assert ctx.owner_id == DEFAULT_OWNER_ID
    assert ctx.owner_id == uuid.UUID("00000000-0000-0000-0000-000000000002")


@pytest.mark.asyncio
async def test_get_current_context_valid_token() -> None:
    """Test valid owner UUID token."""
    owner_id = uuid.uuid4()

    ctx = await get_current_context(authorization=f"Bearer {owner_id}")

    assert ctx.owner_id == owner_id


@pytest.mark.asyncio
async def test_get_current_context_invalid_bearer_format() -> None:
    """Test invalid bearer format raises 401."""
    with pytest.raises(HTTPException) as exc_info:
        await get_current_context(authorization="NotBearer token")

    assert exc_info.value.status_code == 401
    assert "Invalid authorization header format" in exc_info.value.detail


@pytest.mark.asyncio
async def test_get_current_context_invalid_uuid() -> None:
    """Test non-UUID token raises 401."""
    with pytest.raises(HTTPException) as exc_info:
        await get_current_context(authorization="Bearer not-a-uuid")

    assert exc_info.value.status_code == 401
    assert "expected owner UUID" in exc_info.value.detail
