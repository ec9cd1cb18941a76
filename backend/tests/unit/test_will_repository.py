"""
Unit tests for WillRepository against SQLite.

The compare-and-swap tests force stale reads by overriding the model to
domain conversion, so conflicts happen deterministically.
"""

import asyncio
import logging
import uuid

import pytest

from willcraft.domain.will import SectionKey, apply_section, section_updates
from willcraft.infrastructure.db.repositories import WillRepository
from willcraft.infrastructure.exceptions import ConflictError, ValidationError

from tests.factories import OTHER_USER_ID, USER_ID


@pytest.fixture
async def owners(user_repo):
    await user_repo.ensure(USER_ID, "testator@example.com")
    await user_repo.ensure(OTHER_USER_ID, "someone.else@example.com")


class StaleReadRepository(WillRepository):
    """Reports a version one behind the stored one for the first ``stale_reads`` reads."""

    def __init__(self, *args, stale_reads: int, **kwargs):
        super().__init__(*args, **kwargs)
        self.stale_reads = stale_reads
        self.reads = 0

    def _to_domain(self, model):
        will = WillRepository._to_domain(model)
        self.reads += 1
        if self.reads <= self.stale_reads:
            return will.model_copy(update={"version": will.version - 1})
        return will


def section_mutation(section: SectionKey, data: dict, calls: list = None):
    updates = section_updates(section, data)

    def mutate(current):
        if calls is not None:
            calls.append(current.version)
        return apply_section(current, section, updates)
    return mutate


class TestCreateAndRead:

    async def test_create(self, will_repo, owners):
        will = await will_repo.create(USER_ID, "ca")

        assert will.state_compliance == "CA"
        assert will.version == 1
        assert will.progress.percent_complete == 0
        stored = await will_repo.get(will.id, USER_ID)
        assert stored.id == will.id
        assert stored.owner_id == USER_ID
        assert stored.sections == will.sections

    async def test_create_validates_state(self, will_repo, owners):
        with pytest.raises(ValidationError):
            await will_repo.create(USER_ID, None)

    async def test_foreign_and_malformed_ids(self, will_repo, owners):
        will = await will_repo.create(USER_ID, "TX")

        assert await will_repo.get(will.id, OTHER_USER_ID) is None
        assert await will_repo.get("not-a-uuid", USER_ID) is None
        assert await will_repo.get(str(uuid.uuid4()), USER_ID) is None

    async def test_list_capped_and_ordered(self, will_repo, owners):
        created = [await will_repo.create(USER_ID, "TX") for _ in range(55)]
        await will_repo.update(
            created[0].id,
            USER_ID,
            section_mutation(SectionKey.REVIEW, {"arrangements": []}),
        )

        wills = await will_repo.list(USER_ID, limit=50)

        assert len(wills) == 50
        assert wills[0].id == created[0].id
        assert wills[0].progress.percent_complete == 17
        assert wills[1].id == created[-1].id
        stamps = [will.updated_at for will in wills]
        assert stamps == sorted(stamps, reverse=True)

    async def test_list_scoped_to_owner(self, will_repo, owners):
        await will_repo.create(USER_ID, "TX")
        assert await will_repo.list(OTHER_USER_ID) == []


class TestCompareAndSwap:

    async def test_update_bumps_version(self, will_repo, owners, sample_testator):
        will = await will_repo.create(USER_ID, "TX")

        updated = await will_repo.update(
            will.id, USER_ID, section_mutation(SectionKey.PERSONAL_INFO, sample_testator)
        )

        assert updated.version == 2
        stored = await will_repo.get(will.id, USER_ID)
        assert stored.version == 2
        assert stored.sections["testator"]["lastName"] == "Doe"
        assert stored.updated_at >= will.updated_at

    async def test_foreign_update_returns_none(self, will_repo, owners, sample_testator):
        will = await will_repo.create(USER_ID, "TX")

        result = await will_repo.update(
            will.id, OTHER_USER_ID, section_mutation(SectionKey.PERSONAL_INFO, sample_testator)
        )

        assert result is None
        assert (await will_repo.get(will.id, USER_ID)).version == 1

    async def test_retries_after_lost_race(self, session_factory, owners, sample_testator, caplog):
        repo = StaleReadRepository(session_factory, max_attempts=5, stale_reads=1)
        will = await WillRepository(session_factory).create(USER_ID, "TX")
        calls = []

        with caplog.at_level(logging.WARNING):
            updated = await repo.update(
                will.id, USER_ID, section_mutation(SectionKey.PERSONAL_INFO, sample_testator, calls)
            )

        assert calls == [0, 1]
        assert updated.version == 2
        assert "Version conflict" in caplog.text

    async def test_exhausted_attempts_raise_conflict(self, session_factory, owners, sample_testator):
        repo = StaleReadRepository(session_factory, max_attempts=3, stale_reads=100)
        will = await WillRepository(session_factory).create(USER_ID, "TX")
        calls = []

        with pytest.raises(ConflictError):
            await repo.update(
                will.id, USER_ID, section_mutation(SectionKey.PERSONAL_INFO, sample_testator, calls)
            )

        assert len(calls) == 3
        stored = await WillRepository(session_factory).get(will.id, USER_ID)
        assert stored.version == 1
        assert stored.sections["testator"] is None

    async def test_mutation_error_writes_nothing(self, will_repo, owners):
        will = await will_repo.create(USER_ID, "TX")

        def mutate(current):
            raise ValidationError("rejected")

        with pytest.raises(ValidationError):
            await will_repo.update(will.id, USER_ID, mutate)

        assert (await will_repo.get(will.id, USER_ID)).version == 1

    async def test_concurrent_sections_both_counted(
        self, will_repo, owners, sample_testator, sample_assets
    ):
        will = await will_repo.create(USER_ID, "TX")

        await asyncio.gather(
            will_repo.update(will.id, USER_ID, section_mutation(SectionKey.PERSONAL_INFO, sample_testator)),
            will_repo.update(will.id, USER_ID, section_mutation(SectionKey.ASSETS, sample_assets)),
        )

        stored = await will_repo.get(will.id, USER_ID)
        assert sorted(stored.progress.completed_sections) == ["assets", "personal-info"]
        assert stored.progress.percent_complete == 33
        assert stored.version == 3
        assert stored.sections["testator"]["firstName"] == "Jane"
        assert stored.sections["realProperty"][0]["id"] == "prop-1"


class TestDelete:

    async def test_delete(self, will_repo, owners):
        will = await will_repo.create(USER_ID, "TX")

        assert await will_repo.delete(will.id, OTHER_USER_ID) is False
        assert await will_repo.delete(will.id, USER_ID) is True
        assert await will_repo.get(will.id, USER_ID) is None

    async def test_account_deletion_removes_only_owner_wills(self, will_repo, user_repo, owners):
        await will_repo.create(USER_ID, "TX")
        await will_repo.create(USER_ID, "NY")
        await will_repo.create(OTHER_USER_ID, "NY")

        assert await user_repo.delete(USER_ID) is True
        assert await will_repo.list(USER_ID) == []
        assert len(await will_repo.list(OTHER_USER_ID)) == 1
