import pytest

from workhub.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from workhub.services.cached_user_service import user_cache_key


@pytest.fixture
def admin(user_service):
    return user_service.register_user("Ada Admin", "ada@example.com", is_admin=True)


class TestRegister:
    def test_register(self, user_service):
        user = user_service.register_user("  Dana Doe  ", "dana@example.com")
        assert user.id is not None
        assert user.name == "Dana Doe"
        assert user.is_verified is False

    def test_duplicate_email(self, user_service, alice):
        with pytest.raises(ConflictError):
            user_service.register_user("Alice Again", "alice@example.com")

    def test_invalid_email(self, user_service):
        with pytest.raises(ValidationError) as exc:
            user_service.register_user("Dana Doe", "not-an-email")
        assert exc.value.rule == "format"

    def test_short_name(self, user_service):
        with pytest.raises(ValidationError):
            user_service.register_user("D", "dana@example.com")


class TestAccess:
    def test_self_access(self, user_service, alice):
        assert user_service.get_user(alice.id, alice.id).email == "alice@example.com"

    def test_other_user_is_forbidden(self, user_service, alice, bob):
        with pytest.raises(ForbiddenError):
            user_service.get_user(bob.id, alice.id)
        with pytest.raises(ForbiddenError):
            user_service.update_user(bob.id, alice.id, name="Hijacked")
        with pytest.raises(ForbiddenError):
            user_service.delete_user(bob.id, alice.id)

    def test_admin_may_manage_anyone(self, user_service, admin, alice):
        assert user_service.get_user(admin.id, alice.id).id == alice.id
        assert user_service.update_user(admin.id, alice.id, name="Alice Renamed").name == "Alice Renamed"
        assert user_service.delete_user(admin.id, alice.id) is True

    def test_unknown_user(self, user_service, alice):
        with pytest.raises(NotFoundError) as exc:
            user_service.get_user(alice.id, 999)
        assert exc.value.detail == "User with ID 999 not found"

    def test_unknown_actor_is_forbidden(self, user_service, alice):
        with pytest.raises(ForbiddenError):
            user_service.get_user(999, alice.id)


class TestUpdate:
    def test_email_change_resets_verification(self, user_service, alice):
        user_service.verify_email(alice.id)

        updated = user_service.update_user(alice.id, alice.id, email="alice@new.example.com")

        assert updated.email == "alice@new.example.com"
        assert updated.is_verified is False

    def test_same_email_keeps_verification(self, user_service, alice):
        user_service.verify_email(alice.id)
        updated = user_service.update_user(alice.id, alice.id, email="alice@example.com")
        assert updated.is_verified is True

    def test_email_taken(self, user_service, alice, bob):
        with pytest.raises(ConflictError):
            user_service.update_user(alice.id, alice.id, email="bob@example.com")

    def test_nothing_to_update(self, user_service, alice):
        with pytest.raises(ValidationError):
            user_service.update_user(alice.id, alice.id)

    def test_verify_email_is_idempotent(self, user_service, alice, clock):
        first = user_service.verify_email(alice.id)
        clock.advance(hours=1)
        second = user_service.verify_email(alice.id)
        assert first.email_verified_at == second.email_verified_at


class TestDelete:
    def test_deleted_user_is_gone(self, user_service, alice, admin):
        user_service.delete_user(alice.id, alice.id)
        with pytest.raises(NotFoundError):
            user_service.get_user(admin.id, alice.id)


class TestCaching:
    def test_reads_are_cached(self, user_service, cache, alice):
        user_service.get_user(alice.id, alice.id)
        assert user_cache_key(alice.id) in cache

    def test_cached_reads_still_authorize(self, user_service, alice, bob):
        user_service.get_user(alice.id, alice.id)
        with pytest.raises(ForbiddenError):
            user_service.get_user(bob.id, alice.id)

    def test_update_invalidates(self, user_service, cache, alice):
        user_service.get_user(alice.id, alice.id)
        user_service.update_user(alice.id, alice.id, name="Alice Renamed")

        assert user_cache_key(alice.id) not in cache
        assert user_service.get_user(alice.id, alice.id).name == "Alice Renamed"

    def test_delete_invalidates(self, user_service, cache, alice, admin):
        user_service.get_user(alice.id, alice.id)
        user_service.delete_user(admin.id, alice.id)

        with pytest.raises(NotFoundError):
            user_service.get_user(admin.id, alice.id)

    def test_verify_invalidates(self, user_service, alice):
        user_service.get_user(alice.id, alice.id)
        user_service.verify_email(alice.id)
        assert user_service.get_user(alice.id, alice.id).is_verified is True
