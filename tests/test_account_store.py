"""Unit tests for accounts/store.py and accounts/alerts.py.

Covers:
- create_user() stores roles; duplicates raise IntegrityError; unknown roles raise ValueError
- update_profile(): email change -> Alert for that user; phone-only change -> None
- update_profile(): unknown id or wrong kind -> NotFoundError
- update_profile(): a failing alert policy rolls the profile change back
- mark_alert_read(): idempotent; unknown id -> NotFoundError
- list_alerts(): per user and unfiltered
- AlertEmitter rules in isolation
"""

from __future__ import annotations

import shutil

import pytest
from sqlalchemy.exc import IntegrityError

from accounts.alerts import CATEGORY_SECURITY, AlertEmitter
from accounts.models import User
from accounts.store import AccountStore
from conftest import make_user
from core.errors import NotFoundError, UpstreamUnavailableError


class TestUsers:
    def test_create_and_fetch_with_roles(self, store: AccountStore) -> None:
        alice = make_user(store, "alice", "client")
        assert alice.id is not None
        assert alice.roles == {"client"}
        assert store.get_by_username("alice").email == "alice@userportal.io"
        assert store.get_by_login("alice@userportal.io").id == alice.id

    def test_unknown_lookup_returns_none(self, store: AccountStore) -> None:
        assert store.get_by_id(999) is None
        assert store.get_by_login("nobody") is None

    def test_duplicate_username_rejected(self, store: AccountStore) -> None:
        make_user(store, "alice", "client")
        with pytest.raises(IntegrityError):
            store.create_user(User(username="alice", email="other@userportal.io", roles={"client"}))

    def test_unknown_role_rejected(self, store: AccountStore) -> None:
        with pytest.raises(ValueError):
            store.create_user(User(username="eve", email="eve@userportal.io", roles={"admin"}))

    def test_list_users_includes_roles(self, store: AccountStore) -> None:
        make_user(store, "alice", "client")
        make_user(store, "bob", "employee")
        users = store.list_users()
        assert [(u.username, u.roles) for u in users] == [("alice", {"client"}), ("bob", {"employee"})]


class TestUpdateProfile:
    def test_email_change_creates_alert(self, store: AccountStore) -> None:
        alice = make_user(store, "alice", "client")
        alert = store.update_profile(alice.id, {"email": "alice.new@userportal.io"}, kind="client")
        assert alert is not None
        assert alert.id is not None
        assert alert.user_id == alice.id
        assert alert.category == CATEGORY_SECURITY
        assert alert.is_read is False
        assert "email address" in alert.message
        assert "alice@userportal.io" not in alert.message
        assert "alice.new@userportal.io" not in alert.message
        assert store.get_by_id(alice.id).email == "alice.new@userportal.io"

    def test_phone_change_creates_no_alert(self, store: AccountStore) -> None:
        alice = make_user(store, "alice", "client")
        assert store.update_profile(alice.id, {"phone": "+34 600 000 000"}, kind="client") is None
        assert store.get_by_id(alice.id).phone == "+34 600 000 000"
        assert store.list_alerts(alice.id) == []

    def test_same_email_creates_no_alert(self, store: AccountStore) -> None:
        alice = make_user(store, "alice", "client")
        assert store.update_profile(alice.id, {"email": "alice@userportal.io"}, kind="client") is None

    def test_employee_kind(self, store: AccountStore) -> None:
        bob = make_user(store, "bob", "employee")
        alert = store.update_profile(bob.id, {"username": "robert"}, kind="employee")
        assert alert is not None
        assert "employee" in alert.message

    def test_unknown_user(self, store: AccountStore) -> None:
        with pytest.raises(NotFoundError):
            store.update_profile(999, {"phone": "1"}, kind="client")

    def test_wrong_kind_is_not_found(self, store: AccountStore) -> None:
        bob = make_user(store, "bob", "employee")
        with pytest.raises(NotFoundError):
            store.update_profile(bob.id, {"phone": "1"}, kind="client")

    def test_unknown_field_rejected(self, store: AccountStore) -> None:
        alice = make_user(store, "alice", "client")
        with pytest.raises(ValueError):
            store.update_profile(alice.id, {"is_active": False}, kind="client")

    def test_duplicate_email_rolls_back(self, store: AccountStore) -> None:
        alice = make_user(store, "alice", "client")
        make_user(store, "carol", "client")
        with pytest.raises(IntegrityError):
            store.update_profile(alice.id, {"email": "carol@userportal.io"}, kind="client")
        assert store.get_by_id(alice.id).email == "alice@userportal.io"
        assert store.list_alerts() == []

    def test_failing_policy_rolls_back_update(self, store: AccountStore) -> None:
        """The profile change and its alert are committed together or not at all."""

        class BrokenEmitter(AlertEmitter):
            def emit(self, kind, before, after):
                raise RuntimeError("policy failure")

        alice = make_user(store, "alice", "client")
        with pytest.raises(RuntimeError):
            store.update_profile(alice.id, {"email": "x@userportal.io"}, kind="client", emitter=BrokenEmitter())
        assert store.get_by_id(alice.id).email == "alice@userportal.io"
        assert store.list_alerts() == []


class TestAlerts:
    def test_mark_read_is_idempotent(self, store: AccountStore) -> None:
        alice = make_user(store, "alice", "client")
        alert = store.update_profile(alice.id, {"email": "a2@userportal.io"}, kind="client")
        first = store.mark_alert_read(alert.id)
        second = store.mark_alert_read(alert.id)
        assert first.is_read is True
        assert second.is_read is True
        assert store.get_alert(alert.id).is_read is True

    def test_mark_read_leaves_content_unchanged(self, store: AccountStore) -> None:
        alice = make_user(store, "alice", "client")
        alert = store.update_profile(alice.id, {"email": "a2@userportal.io"}, kind="client")
        store.mark_alert_read(alert.id)
        stored = store.get_alert(alert.id)
        assert (stored.message, stored.category, stored.created_at) == (
            alert.message,
            alert.category,
            alert.created_at,
        )

    def test_mark_read_unknown(self, store: AccountStore) -> None:
        with pytest.raises(NotFoundError):
            store.mark_alert_read(12345)

    def test_list_by_user_and_all(self, store: AccountStore) -> None:
        alice = make_user(store, "alice", "client")
        bob = make_user(store, "bob", "employee")
        a1 = store.update_profile(alice.id, {"email": "a2@userportal.io"}, kind="client")
        b1 = store.update_profile(bob.id, {"email": "b2@userportal.io"}, kind="employee")
        assert [a.id for a in store.list_alerts(alice.id)] == [a1.id]
        assert [a.id for a in store.list_alerts()] == [b1.id, a1.id]


class TestAlertEmitter:
    def _user(self, **overrides) -> User:
        fields = dict(id=1, username="alice", email="alice@userportal.io", roles={"client"}, hashed_password="h1")
        fields.update(overrides)
        return User(**fields)

    def test_no_change(self) -> None:
        assert AlertEmitter().emit("client", self._user(), self._user()) is None

    def test_untracked_fields_only(self) -> None:
        after = self._user(full_name="Alice A.", phone="123", address="Main St 1")
        assert AlertEmitter().emit("client", self._user(), after) is None

    def test_password_change(self) -> None:
        draft = AlertEmitter().emit("client", self._user(), self._user(hashed_password="h2"))
        assert draft is not None
        assert "password" in draft.message
        assert draft.user_id == 1

    def test_several_changes_one_alert(self) -> None:
        draft = AlertEmitter().emit("client", self._user(), self._user(email="n@userportal.io", username="al"))
        assert "email address and username" in draft.message


def test_unreachable_database_maps_to_upstream_error(tmp_path) -> None:
    store = AccountStore(f"sqlite:///{tmp_path / 'accounts.db'}")
    make_user(store, "alice", "client")
    store.close()
    shutil.rmtree(tmp_path)
    with pytest.raises(UpstreamUnavailableError):
        store.get_by_id(1)
