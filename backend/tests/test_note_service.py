"""
TenantNotes Backend — Note Service Tests
=========================================

What:  Tests for NoteService (create, get, update, delete, list).
How:   Runs against the in-memory SQLite database from conftest, seeded with
       two tenants, so tenant scoping is exercised on real SQL. A couple of
       error-path tests use the mock session instead.

What we test:
    ✅ Notes are stored in the caller's tenant with the caller as author
    ✅ Naming another tenant in the payload is denied as cross-tenant
    ✅ Free plan allows three notes; the fourth is plan-limit-exceeded
    ✅ The write-time reservation rejects a create that passed on stale usage
    ✅ Another tenant's note is "not found" for get, update and delete
    ✅ Members delete their own notes; only admins delete others'
    ✅ Delete gives the plan slot back
    ✅ Listing and counting only see the caller's tenant
    ✅ Pagination never skips notes that share a created_at
    ✅ Database failures surface as DatabaseError
"""

from datetime import datetime
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from tenantnotes.exceptions import AccessDeniedError, DatabaseError, NotFoundError
from tenantnotes.models.note import Note
from tenantnotes.schemas.note import NoteCreate, NoteUpdate
from tenantnotes.services.access_guard import TenantUsage
from tenantnotes.services.note_service import NoteService
from tenantnotes.services.tenant_service import tenant_service

from conftest import principal_for


async def _create(service, db, user, title="Note", content="body"):
    return await service.create_note(db, principal_for(user), NoteCreate(title=title, content=content))


class TestCreateNote:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_create_sets_tenant_and_author(self, db_session, tenants):
        member = tenants.acme.member
        note = await _create(self.service, db_session, member, title="  Standup  ")

        assert note.tenant_id == tenants.acme.tenant.id
        assert note.author_id == member.id
        assert note.title == "Standup"

        usage = await tenant_service.get_usage(db_session, tenants.acme.tenant.id)
        assert usage == TenantUsage(count=1, limit=3)

    @pytest.mark.asyncio
    async def test_explicit_own_tenant_is_allowed(self, db_session, tenants):
        principal = principal_for(tenants.acme.admin)
        payload = NoteCreate(title="Mine", tenant_id=tenants.acme.tenant.id)
        note = await self.service.create_note(db_session, principal, payload)
        assert note.tenant_id == tenants.acme.tenant.id

    @pytest.mark.asyncio
    async def test_explicit_foreign_tenant_is_denied(self, db_session, tenants):
        principal = principal_for(tenants.acme.admin)
        payload = NoteCreate(title="Sneaky", tenant_id=tenants.globex.tenant.id)

        with pytest.raises(AccessDeniedError) as exc_info:
            await self.service.create_note(db_session, principal, payload)

        assert exc_info.value.reason == "cross-tenant"
        globex_usage = await tenant_service.get_usage(db_session, tenants.globex.tenant.id)
        assert globex_usage.count == 0

    @pytest.mark.asyncio
    async def test_fourth_note_on_free_plan_is_denied(self, db_session, tenants):
        member = tenants.acme.member
        for i in range(3):
            await _create(self.service, db_session, member, title=f"Note {i}")

        with pytest.raises(AccessDeniedError) as exc_info:
            await _create(self.service, db_session, member, title="One too many")

        assert exc_info.value.reason == "plan-limit-exceeded"
        usage = await tenant_service.get_usage(db_session, tenants.acme.tenant.id)
        assert usage.count == 3

    @pytest.mark.asyncio
    async def test_limit_is_per_tenant(self, db_session, tenants):
        for i in range(3):
            await _create(self.service, db_session, tenants.acme.member, title=f"Acme {i}")

        note = await _create(self.service, db_session, tenants.globex.admin, title="Globex 1")
        assert note.tenant_id == tenants.globex.tenant.id

    @pytest.mark.asyncio
    async def test_stale_usage_still_stopped_at_write_time(self, db_session, tenants):
        """Two racing creates can both read count=2; only one gets the last slot."""
        member = tenants.acme.member
        for i in range(3):
            await _create(self.service, db_session, member, title=f"Note {i}")

        stale = TenantUsage(count=2, limit=3)
        with patch.object(tenant_service, "get_usage", AsyncMock(return_value=stale)):
            with pytest.raises(AccessDeniedError) as exc_info:
                await _create(self.service, db_session, member, title="Raced")

        assert exc_info.value.reason == "plan-limit-exceeded"
        listing = await self.service.list_notes(db_session, principal_for(member))
        assert listing.total_count == 3

    @pytest.mark.asyncio
    async def test_create_after_upgrade(self, db_session, tenants):
        member = tenants.acme.member
        for i in range(3):
            await _create(self.service, db_session, member, title=f"Note {i}")

        await tenant_service.upgrade_plan(db_session, principal_for(tenants.acme.admin), "acme")
        note = await _create(self.service, db_session, member, title="Fourth")
        assert note.title == "Fourth"


class TestReadUpdateDelete:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_get_own_tenant_note(self, db_session, tenants):
        created = await _create(self.service, db_session, tenants.acme.member)
        fetched = await self.service.get_note(db_session, principal_for(tenants.acme.admin), created.id)
        assert fetched.id == created.id

    @pytest.mark.asyncio
    async def test_get_other_tenants_note_is_not_found(self, db_session, tenants):
        created = await _create(self.service, db_session, tenants.acme.member)

        with pytest.raises(NotFoundError):
            await self.service.get_note(db_session, principal_for(tenants.globex.admin), created.id)

    @pytest.mark.asyncio
    async def test_get_missing_note(self, db_session, tenants):
        with pytest.raises(NotFoundError):
            await self.service.get_note(db_session, principal_for(tenants.acme.admin), uuid4())

    @pytest.mark.asyncio
    async def test_update_changes_only_sent_fields(self, db_session, tenants):
        created = await _create(self.service, db_session, tenants.acme.member, title="Old", content="keep")
        updated = await self.service.update_note(
            db_session, principal_for(tenants.acme.member), created.id, NoteUpdate(title="New")
        )
        assert updated.title == "New"
        assert updated.content == "keep"
        assert updated.tenant_id == tenants.acme.tenant.id

    @pytest.mark.asyncio
    async def test_update_other_tenants_note_is_not_found(self, db_session, tenants):
        created = await _create(self.service, db_session, tenants.acme.member, title="Acme")

        with pytest.raises(NotFoundError):
            await self.service.update_note(
                db_session, principal_for(tenants.globex.admin), created.id, NoteUpdate(title="Pwned")
            )

        fetched = await self.service.get_note(db_session, principal_for(tenants.acme.member), created.id)
        assert fetched.title == "Acme"

    @pytest.mark.asyncio
    async def test_member_deletes_own_note_and_slot_is_released(self, db_session, tenants):
        member = tenants.acme.member
        created = await _create(self.service, db_session, member)

        await self.service.delete_note(db_session, principal_for(member), created.id)

        usage = await tenant_service.get_usage(db_session, tenants.acme.tenant.id)
        assert usage.count == 0
        with pytest.raises(NotFoundError):
            await self.service.get_note(db_session, principal_for(member), created.id)

    @pytest.mark.asyncio
    async def test_member_cannot_delete_admins_note(self, db_session, tenants):
        created = await _create(self.service, db_session, tenants.acme.admin)

        with pytest.raises(AccessDeniedError) as exc_info:
            await self.service.delete_note(db_session, principal_for(tenants.acme.member), created.id)

        assert exc_info.value.reason == "insufficient-role"

    @pytest.mark.asyncio
    async def test_admin_deletes_members_note(self, db_session, tenants):
        created = await _create(self.service, db_session, tenants.acme.member)
        await self.service.delete_note(db_session, principal_for(tenants.acme.admin), created.id)

        usage = await tenant_service.get_usage(db_session, tenants.acme.tenant.id)
        assert usage.count == 0

    @pytest.mark.asyncio
    async def test_admin_cannot_delete_other_tenants_note(self, db_session, tenants):
        created = await _create(self.service, db_session, tenants.acme.member)

        with pytest.raises(NotFoundError):
            await self.service.delete_note(db_session, principal_for(tenants.globex.admin), created.id)

        usage = await tenant_service.get_usage(db_session, tenants.acme.tenant.id)
        assert usage.count == 1


class TestListNotes:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_list_is_tenant_scoped(self, db_session, tenants):
        await _create(self.service, db_session, tenants.acme.member, title="Acme 1")
        await _create(self.service, db_session, tenants.acme.admin, title="Acme 2")
        await _create(self.service, db_session, tenants.globex.admin, title="Globex 1")

        acme = await self.service.list_notes(db_session, principal_for(tenants.acme.member))
        globex = await self.service.list_notes(db_session, principal_for(tenants.globex.admin))

        assert acme.total_count == 2
        assert {n.title for n in acme.notes} == {"Acme 1", "Acme 2"}
        assert globex.total_count == 1
        assert [n.title for n in globex.notes] == ["Globex 1"]

    @pytest.mark.asyncio
    async def test_filter_by_author(self, db_session, tenants):
        await _create(self.service, db_session, tenants.acme.member, title="By member")
        await _create(self.service, db_session, tenants.acme.admin, title="By admin")

        result = await self.service.list_notes(
            db_session, principal_for(tenants.acme.admin), author_id=tenants.acme.member.id
        )
        assert result.total_count == 1
        assert result.notes[0].title == "By member"

    @pytest.mark.asyncio
    async def test_author_of_other_tenant_yields_nothing(self, db_session, tenants):
        await _create(self.service, db_session, tenants.globex.admin, title="Globex")

        result = await self.service.list_notes(
            db_session, principal_for(tenants.acme.admin), author_id=tenants.globex.admin.id
        )
        assert result.total_count == 0
        assert result.notes == []

    @pytest.mark.asyncio
    async def test_pagination(self, db_session, tenants):
        for i in range(3):
            await _create(self.service, db_session, tenants.acme.member, title=f"Note {i}")
        principal = principal_for(tenants.acme.member)

        first = await self.service.list_notes(db_session, principal, limit=2)
        assert len(first.notes) == 2
        assert first.has_more is True
        assert first.next_cursor is not None
        assert first.total_count == 3

        second = await self.service.list_notes(db_session, principal, limit=2, cursor=first.next_cursor)
        assert len(second.notes) == 1
        assert second.has_more is False
        assert second.next_cursor is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("sort", ["created_at_desc", "created_at_asc"])
    async def test_pagination_with_identical_timestamps(self, db_session, tenants, sort):
        """Notes sharing created_at are ordered by id and none is skipped between pages."""
        created = [
            await _create(self.service, db_session, tenants.acme.member, title=f"Note {i}")
            for i in range(3)
        ]
        await db_session.execute(
            update(Note)
            .where(Note.tenant_id == tenants.acme.tenant.id)
            .values(created_at=datetime(2024, 1, 15, 12, 0, 0))
            .execution_options(synchronize_session=False)
        )
        db_session.expire_all()
        principal = principal_for(tenants.acme.member)

        seen = []
        cursor = None
        for _ in range(3):
            page = await self.service.list_notes(db_session, principal, limit=2, cursor=cursor, sort=sort)
            seen.extend(n.id for n in page.notes)
            if not page.has_more:
                break
            cursor = page.next_cursor

        assert len(seen) == 3
        assert set(seen) == {n.id for n in created}

    @pytest.mark.asyncio
    async def test_content_preview_truncated(self, db_session, tenants):
        await _create(self.service, db_session, tenants.acme.member, content="x" * 500)
        result = await self.service.list_notes(db_session, principal_for(tenants.acme.member))
        assert len(result.notes[0].content_preview) == 200

    @pytest.mark.asyncio
    @pytest.mark.parametrize("cursor", ["not-a-date", "2024-01-15T12:00:00", "2024-01-15T12:00:00|not-a-uuid"])
    async def test_invalid_cursor_starts_from_beginning(self, db_session, tenants, cursor):
        await _create(self.service, db_session, tenants.acme.member)
        result = await self.service.list_notes(
            db_session, principal_for(tenants.acme.member), cursor=cursor
        )
        assert len(result.notes) == 1


class TestDatabaseErrors:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_list_wraps_database_error(self, mock_db_session, tenants):
        mock_db_session.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("gone")))

        with pytest.raises(DatabaseError):
            await self.service.list_notes(mock_db_session, principal_for(tenants.acme.member))

    @pytest.mark.asyncio
    async def test_get_wraps_database_error(self, mock_db_session, tenants):
        mock_db_session.execute = AsyncMock(side_effect=RuntimeError("connection reset"))

        with pytest.raises(DatabaseError):
            await self.service.get_note(mock_db_session, principal_for(tenants.acme.member), uuid4())

    @pytest.mark.asyncio
    async def test_create_keeps_access_denied(self, mock_db_session, tenants):
        """Application errors are not rewrapped as DatabaseError."""
        with patch("tenantnotes.services.note_service.tenant_service") as mock_tenants:
            mock_tenants.get_usage = AsyncMock(return_value=TenantUsage(count=3, limit=3))
            mock_tenants.reserve_note_slot = AsyncMock()

            with pytest.raises(AccessDeniedError):
                await _create(self.service, mock_db_session, tenants.acme.member)

            mock_tenants.reserve_note_slot.assert_not_awaited()
        mock_db_session.add.assert_not_called()
