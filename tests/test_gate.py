from datetime import timedelta

import jwt
import pytest

from matrix_ai.auth.gate import AccessGate, Principal, access_gate
from matrix_ai.auth.security import hash_password, verify_password
from matrix_ai.core.errors import Forbidden, Unauthenticated
from matrix_ai.db.models.common import UserRole


def test_password_hashing():
    hashed = hash_password("s3cret-pass")
    assert hashed != "s3cret-pass"
    assert verify_password("s3cret-pass", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("s3cret-pass", "not-a-bcrypt-hash")


class TestAuthenticate:
    def test_valid_token(self, db, analyst):
        principal = access_gate.authenticate(db, access_gate.create_access_token(analyst))
        assert principal == Principal(id=analyst.id, username="analyst", role=UserRole.ANALYST)

    def test_token_claims(self, analyst):
        token = access_gate.create_access_token(analyst)
        claims = jwt.decode(token, access_gate.secret, algorithms=[access_gate.algorithm])
        assert claims["sub"] == analyst.id
        assert claims["username"] == "analyst"
        assert claims["role"] == "analyst"
        assert "exp" in claims

    @pytest.mark.parametrize("token", [None, "", "not.a.jwt"])
    def test_missing_or_malformed(self, db, token):
        with pytest.raises(Unauthenticated):
            access_gate.authenticate(db, token)

    def test_expired(self, db, analyst):
        token = access_gate.create_access_token(analyst, expires_in=timedelta(seconds=-10))
        with pytest.raises(Unauthenticated, match="expired"):
            access_gate.authenticate(db, token)

    def test_wrong_secret(self, db, analyst):
        other = AccessGate(secret="another-secret-that-is-long-enough-123")
        with pytest.raises(Unauthenticated):
            access_gate.authenticate(db, other.create_access_token(analyst))

    def test_unknown_user(self, db, analyst):
        token = access_gate.create_access_token(analyst)
        db.delete(analyst)
        db.commit()
        with pytest.raises(Unauthenticated):
            access_gate.authenticate(db, token)

    def test_deactivated_user_is_forbidden(self, db, make_user):
        user = make_user("sleeper", UserRole.ANALYST, is_active=False)
        with pytest.raises(Forbidden):
            access_gate.authenticate(db, access_gate.create_access_token(user))


def _principal(role):
    return Principal(id="u1", username="someone", role=role)


@pytest.mark.parametrize("role, allowed", [
    (UserRole.ADMIN, True),
    (UserRole.ANALYST, True),
    (UserRole.USER, False),
])
def test_authorize_event_writers(role, allowed):
    assert access_gate.authorize(_principal(role), [UserRole.ADMIN, UserRole.ANALYST]) is allowed

def test_authorize_accepts_role_names():
    assert access_gate.authorize(_principal(UserRole.ADMIN), ["admin"])
    assert not access_gate.authorize(_principal(UserRole.ANALYST), ["admin"])

def test_owner_or_admin():
    assert access_gate.authorize_owner_or_admin(_principal(UserRole.USER), "u1")
    assert not access_gate.authorize_owner_or_admin(_principal(UserRole.USER), "u2")
    assert not access_gate.authorize_owner_or_admin(_principal(UserRole.ANALYST), None)
    assert access_gate.authorize_owner_or_admin(_principal(UserRole.ADMIN), "u2")
