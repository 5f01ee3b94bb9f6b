"""Tests for cabinet lookups and sync bookkeeping."""

import pytest

from sellersync.core.database import transaction
from sellersync.core.exceptions import NotFoundError
from sellersync.features.cabinets.models import Cabinet
from sellersync.features.cabinets.service import (
    KEY_REJECTED_MESSAGE,
    get_cabinet,
    list_eligible_cabinet_ids,
    mark_key_rejected,
    touch_update_completed,
    touch_update_requested,
)


class TestCabinetModel:
    """Tests for Cabinet.is_eligible."""

    @pytest.mark.parametrize(
        ("api_key", "is_valid", "expected"),
        [
            ("key", True, True),
            ("key", False, False),
            ("key", None, False),
            ("   ", True, False),
            (None, True, False),
        ],
    )
    def test_is_eligible(self, api_key, is_valid, expected):
        """Test that only a non-blank, validated key is eligible."""
        cabinet = Cabinet(name="c", api_key=api_key, is_valid=is_valid)

        assert cabinet.is_eligible is expected


class TestCabinetService:
    """Tests for cabinet service functions."""

    @pytest.mark.asyncio
    async def test_get_cabinet_not_found(self, db_session):
        """Test that an unknown id raises NotFoundError."""
        with pytest.raises(NotFoundError) as exc_info:
            await get_cabinet(db_session, 42)

        assert exc_info.value.details == {"cabinet_id": 42}

    @pytest.mark.asyncio
    async def test_eligible_ids_match_model_rule(self, session_maker, make_cabinet):
        """Test that the query agrees with Cabinet.is_eligible, ordered by id."""
        first = await make_cabinet("First")
        await make_cabinet("Blank", api_key="")
        await make_cabinet("Rejected", is_valid=False)
        second = await make_cabinet("Second", api_key=" key-2 ")

        async with session_maker() as db:
            assert await list_eligible_cabinet_ids(db) == [first, second]

    @pytest.mark.asyncio
    async def test_mark_key_rejected(self, session_maker, make_cabinet):
        """Test that a rejected key is flagged invalid with a reason."""
        cabinet_id = await make_cabinet()

        async with transaction(session_maker) as db:
            await mark_key_rejected(db, cabinet_id)

        async with session_maker() as db:
            cabinet = await db.get(Cabinet, cabinet_id)
            assert cabinet.is_valid is False
            assert cabinet.validation_error == KEY_REJECTED_MESSAGE
            assert cabinet.last_validated_at is not None
            assert await list_eligible_cabinet_ids(db) == []

    @pytest.mark.asyncio
    async def test_update_timestamps(self, session_maker, make_cabinet):
        """Test that request and completion times are stamped."""
        cabinet_id = await make_cabinet()

        async with transaction(session_maker) as db:
            await touch_update_requested(db, cabinet_id)
            await touch_update_completed(db, cabinet_id)

        async with session_maker() as db:
            cabinet = await db.get(Cabinet, cabinet_id)
            assert cabinet.last_data_update_requested_at is not None
            assert cabinet.last_data_update_at is not None
