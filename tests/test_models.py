"""Tests for segment model constraints."""

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from audience_segments.models import AudienceMemberFilterGroup
from audience_segments.models.segment import OWNER_KINDS


class TestFilterGroupOwner:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("owner_kind", OWNER_KINDS)
    async def test_known_owner_kinds_accepted(self, test_db: AsyncSession, owner_kind):
        test_db.add(AudienceMemberFilterGroup(seller_id=1, owner_kind=owner_kind, owner_id=7))
        await test_db.commit()

    @pytest.mark.asyncio
    async def test_unknown_owner_kind_rejected(self, test_db: AsyncSession):
        test_db.add(AudienceMemberFilterGroup(seller_id=1, owner_kind="campaign", owner_id=7))
        with pytest.raises(IntegrityError):
            await test_db.commit()
        await test_db.rollback()
