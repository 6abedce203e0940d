"""Unit tests for firehouse.services.users.store."""
import pytest
from sqlalchemy import func, select

import firehouse.services.users.store as user_store_module
from firehouse.core.errors import (
    AuthError,
    ConflictError,
    ErrorCode,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from firehouse.core.security import verify_password
from firehouse.db.models import (
    Bulletin,
    BulletinRead,
    LibraryFile,
    Message,
    MessageRead,
    PasswordResetRequest,
    ThreadParticipant,
    User,
    UserRole,
    UserStatus,
)
from firehouse.services.bulletins.store import BulletinStore
from firehouse.services.messaging.store import MessageStore
from firehouse.services.users.password_reset import PasswordResetService
from firehouse.services.users.store import UserStore


async def _count(db_session, model, *criteria) -> int:
    query = select(func.count()).select_from(model)
    if criteria:
        query = query.where(*criteria)
    return (await db_session.execute(query)).scalar_one()


# ─── Registration & login ─────────────────────────────────────────────────────

async def test_register_creates_pending_firefighter(db_session):
    user = await UserStore(db_session).register(
        "Alice@Example.COM", "Alice Smith", "alice", "secret123"
    )
    assert user.status == UserStatus.PENDING
    assert user.roles == ["firefighter"]
    assert user.primary_role == "firefighter"
    assert user.email == "alice@example.com"


async def test_register_duplicate_username_is_case_insensitive(db_session):
    store = UserStore(db_session)
    await store.register("a@example.com", "Alice", "alice", "secret123")
    with pytest.raises(ConflictError):
        await store.register("b@example.com", "Other", "ALICE", "secret123")


async def test_register_duplicate_email(db_session):
    store = UserStore(db_session)
    await store.register("a@example.com", "Alice", "alice", "secret123")
    with pytest.raises(ConflictError):
        await store.register("A@example.com", "Bob", "bob", "secret123")


async def test_authenticate_is_case_insensitive(db_session, make_user):
    await make_user("Bob", ["officer"], password="hunter22")
    user = await UserStore(db_session).authenticate("bOB", "hunter22")
    assert user.username == "Bob"


async def test_authenticate_wrong_password(db_session, make_user):
    await make_user("bob", password="hunter22")
    with pytest.raises(AuthError):
        await UserStore(db_session).authenticate("bob", "nope")


async def test_authenticate_pending_account_is_refused(db_session, make_user):
    await make_user("penny", status=UserStatus.PENDING, password="hunter22")
    with pytest.raises(ForbiddenError) as exc_info:
        await UserStore(db_session).authenticate("penny", "hunter22")
    assert exc_info.value.code == ErrorCode.AUTH_ACCOUNT_PENDING


async def test_authenticate_repairs_legacy_empty_role_set(db_session, make_user):
    user = await make_user("legacy", roles=[], password="hunter22")
    user.primary_role = "training"
    await db_session.commit()

    loaded = await UserStore(db_session).authenticate("legacy", "hunter22")
    assert loaded.roles == ["training"]
    assert await _count(db_session, UserRole, UserRole.user_id == user.id) == 1


async def test_change_password_clears_forced_change(db_session, make_user):
    user = await make_user("carl", password="oldpass1")
    user.must_change_password = True
    await db_session.commit()

    store = UserStore(db_session)
    with pytest.raises(AuthError):
        await store.change_password(user, "wrong", "newpass1")
    await store.change_password(user, "oldpass1", "newpass1")
    assert user.must_change_password is False
    assert verify_password("newpass1", user.password_hash)


# ─── Approval ─────────────────────────────────────────────────────────────────

async def test_chief_approves_and_assigns_role(db_session, make_user):
    chief = await make_user("chief", ["chief"])
    pending = await make_user("newbie", status=UserStatus.PENDING)

    approved = await UserStore(db_session).approve(pending.id, "training", chief)
    assert approved.status == UserStatus.ACTIVE
    assert approved.roles == ["training", "firefighter"]
    assert approved.primary_role == "training"


async def test_approve_below_chief_is_refused_and_target_stays_pending(db_session, make_user):
    deputy = await make_user("deputy", ["deputy"])
    pending = await make_user("newbie", status=UserStatus.PENDING)

    store = UserStore(db_session)
    with pytest.raises(ForbiddenError):
        await store.approve(pending.id, "officer", deputy)
    assert (await store.get(pending.id)).status == UserStatus.PENDING


async def test_approve_requires_pending_target(db_session, make_user):
    chief = await make_user("chief", ["chief"])
    active = await make_user("active")
    with pytest.raises(ValidationError):
        await UserStore(db_session).approve(active.id, "officer", chief)


async def test_approve_unknown_role(db_session, make_user):
    chief = await make_user("chief", ["chief"])
    pending = await make_user("newbie", status=UserStatus.PENDING)
    with pytest.raises(ValidationError):
        await UserStore(db_session).approve(pending.id, "mascot", chief)


async def test_only_super_user_assigns_super_user(db_session, make_user):
    admin = await make_user("admin", ["admin"])
    root = await make_user("root", ["super_user"])
    pending = await make_user("newbie", status=UserStatus.PENDING)

    store = UserStore(db_session)
    with pytest.raises(ForbiddenError):
        await store.approve(pending.id, "super_user", admin)
    approved = await store.approve(pending.id, "super_user", root)
    assert approved.primary_role == "super_user"


async def test_chief_cannot_assign_admin(db_session, make_user):
    chief = await make_user("chief", ["chief"])
    pending = await make_user("newbie", status=UserStatus.PENDING)
    with pytest.raises(ForbiddenError):
        await UserStore(db_session).approve(pending.id, "admin", chief)


async def test_reject_deletes_pending_user(db_session, make_user):
    chief = await make_user("chief", ["chief"])
    pending = await make_user("newbie", status=UserStatus.PENDING)
    store = UserStore(db_session)

    await store.reject(pending.id, chief)
    assert await store.find(pending.id) is None


async def test_reject_clears_reset_requests_of_pending_user(db_session, make_user):
    chief = await make_user("chief", ["chief"])
    pending = await make_user("newbie", status=UserStatus.PENDING)
    await PasswordResetService(db_session).request_reset("newbie")

    await UserStore(db_session).reject(pending.id, chief)
    assert await _count(db_session, PasswordResetRequest) == 0


async def test_list_pending_requires_chief(db_session, make_user):
    officer = await make_user("officer", ["officer"])
    with pytest.raises(ForbiddenError):
        await UserStore(db_session).list_pending(officer)


# ─── Role sets ────────────────────────────────────────────────────────────────

async def test_set_roles_replaces_set_and_recomputes_primary(db_session, make_user):
    user = await make_user("multi", ["training"])
    updated = await UserStore(db_session).set_roles(user.id, ["officer", "chief", "officer"])
    assert updated.roles == ["chief", "officer"]
    assert updated.primary_role == "chief"


@pytest.mark.parametrize("roles", [[], ["officer", "mascot"]])
async def test_set_roles_rejects_empty_or_unknown(db_session, make_user, roles):
    user = await make_user("multi", ["training"])
    with pytest.raises(ValidationError):
        await UserStore(db_session).set_roles(user.id, roles)


async def test_set_roles_failure_leaves_previous_state(db_session, make_user, monkeypatch):
    user = await make_user("steady", ["training"])
    # The rollback expires every instance in the session, ``user`` included.
    user_id = user.id
    store = UserStore(db_session)

    def _fail(_roles):
        raise RuntimeError("simulated failure")

    monkeypatch.setattr(user_store_module, "highest_role", _fail)
    with pytest.raises(RuntimeError):
        await store.set_roles(user_id, ["chief", "officer"])
    monkeypatch.undo()

    reloaded = await store.get(user_id)
    assert reloaded.roles == ["training"]
    assert reloaded.primary_role == "training"


async def test_users_by_role_uses_full_role_set(db_session, make_user):
    await make_user("two_hats", ["chief", "training"])
    await make_user("trainer", ["training"])
    await make_user("other", ["officer"])

    names = [u.username for u in await UserStore(db_session).users_by_role("training")]
    assert sorted(names) == ["trainer", "two_hats"]


# ─── Admin management ─────────────────────────────────────────────────────────

async def test_create_user_requires_admin(db_session, make_user):
    chief = await make_user("chief", ["chief"])
    with pytest.raises(ForbiddenError):
        await UserStore(db_session).create_user(
            chief,
            email="x@example.com",
            name="X",
            username="xman",
            password="secret123",
            roles=["officer"],
        )


async def test_admin_creates_active_user_with_role_set(db_session, make_user):
    admin = await make_user("admin", ["admin"])
    user = await UserStore(db_session).create_user(
        admin,
        email="X@example.com",
        name="X",
        username="xman",
        password="secret123",
        roles=["officer", "training"],
    )
    assert user.status == UserStatus.ACTIVE
    assert user.roles == ["training", "officer"]
    assert user.primary_role == "training"


async def test_admin_cannot_edit_super_user(db_session, make_user):
    admin = await make_user("admin", ["admin"])
    root = await make_user("root", ["super_user"])
    with pytest.raises(ForbiddenError):
        await UserStore(db_session).update_user(
            admin,
            root.id,
            email=root.email,
            name="Renamed",
            username=root.username,
            roles=["super_user"],
        )


async def test_update_user_rejects_taken_username(db_session, make_user):
    admin = await make_user("admin", ["admin"])
    await make_user("taken")
    target = await make_user("target")
    with pytest.raises(ConflictError):
        await UserStore(db_session).update_user(
            admin,
            target.id,
            email=target.email,
            name=target.name,
            username="TAKEN",
            roles=["officer"],
        )


async def test_admin_cannot_reset_super_user_password(db_session, make_user):
    admin = await make_user("admin", ["admin"])
    root = await make_user("root", ["super_user"])
    with pytest.raises(ForbiddenError):
        await UserStore(db_session).reset_password(admin, root.id, "brandnew1")


async def test_super_user_can_never_be_deleted(db_session, make_user):
    root = await make_user("root", ["super_user"])
    other_root = await make_user("root2", ["super_user"])
    with pytest.raises(ForbiddenError) as exc_info:
        await UserStore(db_session).delete_user(other_root, root.id)
    assert exc_info.value.code == ErrorCode.USER_PROTECTED


async def test_admin_cannot_delete_self(db_session, make_user):
    admin = await make_user("admin", ["admin"])
    with pytest.raises(ValidationError):
        await UserStore(db_session).delete_user(admin, admin.id)


async def test_delete_missing_user(db_session, make_user):
    admin = await make_user("admin", ["admin"])
    with pytest.raises(NotFoundError):
        await UserStore(db_session).delete_user(admin, 9999)


async def test_delete_user_removes_everything_referencing_them(
    db_session, make_user, storage
):
    admin = await make_user("admin", ["admin"])
    doomed = await make_user("doomed", ["deputy"])
    friend = await make_user("friend")

    bulletin = await BulletinStore(db_session, storage).post(
        title="Drill", body="Saturday", category="west-wing", author=doomed
    )
    messages = MessageStore(db_session, storage)
    sent = await messages.send(doomed, [friend.id], "Hi", "Hello")
    reply = await messages.send(friend, [doomed.id], "Re: Hi", "Hey", thread_id=sent.thread_id)
    await messages.mark_read(friend.id, sent.id)
    await BulletinStore(db_session, storage).mark_read(friend.id, bulletin.id)
    db_session.add(
        LibraryFile(
            title="SOP",
            description="",
            category="sops",
            uploaded_by=doomed.id,
            filename="abc.pdf",
            original_filename="sop.pdf",
            file_path="/srv/library/abc.pdf",
            file_size=3,
            mime_type="application/pdf",
        )
    )
    await db_session.commit()

    orphaned = await UserStore(db_session).delete_user(admin, doomed.id)

    assert orphaned == ["/srv/library/abc.pdf"]
    assert await _count(db_session, User, User.id == doomed.id) == 0
    assert await _count(db_session, UserRole, UserRole.user_id == doomed.id) == 0
    assert await _count(db_session, Bulletin) == 0
    assert await _count(db_session, BulletinRead) == 0
    assert await _count(db_session, Message, Message.id.in_([sent.id, reply.id])) == 0
    assert await _count(db_session, MessageRead) == 0
    assert await _count(db_session, ThreadParticipant, ThreadParticipant.user_id == doomed.id) == 0
    assert await _count(db_session, LibraryFile) == 0
