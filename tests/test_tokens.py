"""Unit tests for auth/tokens.py -- TokenAuthority, password hashing, login check.

Covers:
- issue() then validate() returns the identity's role set
- ExpiredTokenError at exactly iat + window and later; valid one second before
- InvalidTokenError for foreign keys, any changed character, garbage and missing claims
- refresh() produces a new token value with a new expiry
- authenticate_user() by username or email; AuthenticationError otherwise
"""

from __future__ import annotations

import string

import pytest
from jose import jwt

from accounts.models import User
from auth.tokens import TokenAuthority, authenticate_user, hash_password, verify_password
from conftest import FakeClock, make_user
from core.errors import AuthenticationError, ExpiredTokenError, InvalidTokenError

_KEY = "k" * 48
_WINDOW = 3600
_BASE64URL = string.ascii_uppercase + string.ascii_lowercase + string.digits + "-_"


def _identity(roles=frozenset({"client"})) -> User:
    return User(id=7, username="alice", email="alice@userportal.io", roles=set(roles))


@pytest.fixture
def authority(clock: FakeClock) -> TokenAuthority:
    return TokenAuthority(_KEY, _WINDOW, clock=clock)


class TestIssueAndValidate:
    def test_round_trip_returns_roles(self, authority: TokenAuthority) -> None:
        claims = authority.validate(authority.issue(_identity()))
        assert claims.user_id == 7
        assert claims.username == "alice"
        assert claims.roles == frozenset({"client"})

    def test_multiple_roles_preserved(self, authority: TokenAuthority) -> None:
        claims = authority.validate(authority.issue(_identity({"client", "employee"})))
        assert claims.roles == frozenset({"client", "employee"})

    def test_expiry_window_recorded(self, authority: TokenAuthority, clock: FakeClock) -> None:
        claims = authority.validate(authority.issue(_identity()))
        assert claims.issued_at == int(clock.now)
        assert claims.expires_at == int(clock.now) + _WINDOW

    def test_unsaved_identity_rejected(self, authority: TokenAuthority) -> None:
        with pytest.raises(ValueError):
            authority.issue(User(username="ghost", email="ghost@userportal.io"))


class TestExpiry:
    def test_valid_one_second_before_expiry(self, authority: TokenAuthority, clock: FakeClock) -> None:
        token = authority.issue(_identity())
        clock.advance(_WINDOW - 1)
        assert authority.validate(token).username == "alice"

    def test_expired_exactly_at_window(self, authority: TokenAuthority, clock: FakeClock) -> None:
        token = authority.issue(_identity())
        clock.advance(_WINDOW)
        with pytest.raises(ExpiredTokenError):
            authority.validate(token)

    def test_expired_long_after_window(self, authority: TokenAuthority, clock: FakeClock) -> None:
        token = authority.issue(_identity())
        clock.advance(_WINDOW * 10)
        with pytest.raises(ExpiredTokenError):
            authority.validate(token)

    def test_expired_is_not_reported_as_invalid(self, authority: TokenAuthority, clock: FakeClock) -> None:
        """The API maps the two to different codes, so the classes must stay distinct."""
        token = authority.issue(_identity())
        clock.advance(_WINDOW)
        with pytest.raises(ExpiredTokenError) as exc_info:
            authority.validate(token)
        assert not isinstance(exc_info.value, InvalidTokenError)


class TestInvalidTokens:
    def test_foreign_key_rejected(self, authority: TokenAuthority, clock: FakeClock) -> None:
        other = TokenAuthority("z" * 48, _WINDOW, clock=clock)
        with pytest.raises(InvalidTokenError):
            authority.validate(other.issue(_identity()))

    def test_garbage_rejected(self, authority: TokenAuthority) -> None:
        with pytest.raises(InvalidTokenError):
            authority.validate("not-a-token")

    def test_every_changed_character_rejected(self, authority: TokenAuthority) -> None:
        token = authority.issue(_identity())
        for i, original in enumerate(token):
            for ch in _BASE64URL:
                if ch == original:
                    continue
                tampered = token[:i] + ch + token[i + 1 :]
                with pytest.raises(InvalidTokenError):
                    authority.validate(tampered)

    def test_spare_bits_in_signature_rejected(self, authority: TokenAuthority) -> None:
        """The last signature character carries two unused bits; flipping them still changes the token."""
        token = authority.issue(_identity())
        head, last = token[:-1], token[-1]
        index = _BASE64URL.index(last)
        for ch in _BASE64URL[index & ~0b11 : (index & ~0b11) + 4]:
            if ch == last:
                continue
            with pytest.raises(InvalidTokenError):
                authority.validate(head + ch)

    def test_forged_tokens_fail_even_after_expiry(self, authority: TokenAuthority, clock: FakeClock) -> None:
        """Signature is checked before expiry: a forged, stale token is invalid, not expired."""
        other = TokenAuthority("z" * 48, _WINDOW, clock=clock)
        token = other.issue(_identity())
        clock.advance(_WINDOW * 2)
        with pytest.raises(InvalidTokenError):
            authority.validate(token)

    def test_missing_roles_claim_rejected(self, authority: TokenAuthority, clock: FakeClock) -> None:
        token = jwt.encode(
            {"sub": "alice", "user_id": 7, "iat": int(clock.now), "exp": int(clock.now) + 60},
            _KEY,
            algorithm="HS256",
        )
        with pytest.raises(InvalidTokenError):
            authority.validate(token)


class TestRefresh:
    def test_refresh_mints_new_value(self, authority: TokenAuthority) -> None:
        token = authority.issue(_identity())
        fresh = authority.refresh(authority.validate(token))
        assert fresh != token
        assert authority.validate(fresh).roles == frozenset({"client"})

    def test_refresh_moves_expiry_forward(self, authority: TokenAuthority, clock: FakeClock) -> None:
        token = authority.issue(_identity())
        clock.advance(1800)
        claims = authority.validate(token)
        fresh = authority.validate(authority.refresh(claims))
        assert fresh.expires_at == claims.expires_at + 1800
        assert fresh.user_id == claims.user_id

    def test_old_token_still_expires_on_schedule(self, authority: TokenAuthority, clock: FakeClock) -> None:
        token = authority.issue(_identity())
        clock.advance(1800)
        fresh = authority.refresh(authority.validate(token))
        clock.advance(1800)
        with pytest.raises(ExpiredTokenError):
            authority.validate(token)
        assert authority.validate(fresh).username == "alice"


class TestPasswords:
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("s3cret-pass")
        assert hashed != "s3cret-pass"
        assert verify_password("s3cret-pass", hashed)
        assert not verify_password("wrong", hashed)

    def test_malformed_hash_is_false(self) -> None:
        assert verify_password("anything", "not-a-bcrypt-hash") is False


class TestAuthenticateUser:
    def test_by_username(self, store) -> None:
        make_user(store, "alice", "client", password="alicepass123")
        user = authenticate_user(store, "alice", "alicepass123")
        assert user.roles == {"client"}

    def test_by_email(self, store) -> None:
        make_user(store, "alice", "client", password="alicepass123")
        assert authenticate_user(store, "alice@userportal.io", "alicepass123").username == "alice"

    def test_wrong_password(self, store) -> None:
        make_user(store, "alice", "client", password="alicepass123")
        with pytest.raises(AuthenticationError):
            authenticate_user(store, "alice", "nope")

    def test_unknown_login(self, store) -> None:
        with pytest.raises(AuthenticationError):
            authenticate_user(store, "nobody", "whatever")

    def test_inactive_user(self, store) -> None:
        store.create_user(
            User(
                username="dora",
                email="dora@userportal.io",
                roles={"client"},
                hashed_password=hash_password("dorapass123"),
                is_active=False,
            )
        )
        with pytest.raises(AuthenticationError):
            authenticate_user(store, "dora", "dorapass123")

    def test_login_scenario_alice_client(self, store, clock: FakeClock) -> None:
        """Login as alice (client) -> token validates to role set {client}."""
        make_user(store, "alice", "client", password="alicepass123")
        authority = TokenAuthority(_KEY, _WINDOW, clock=clock)
        token = authority.issue(authenticate_user(store, "alice", "alicepass123"))
        assert authority.validate(token).roles == frozenset({"client"})
