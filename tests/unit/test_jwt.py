"""Unit tests for bearer token verification and capability claims."""

import uuid
from datetime import timedelta

from jose import jwt

from playtest_levels.kernel.identity.jwt import JWTManager


class TestJWTManager:
    def test_round_trip_with_capabilities(self, jwt_manager: JWTManager):
        user_id = uuid.uuid4()
        token, _, jti = jwt_manager.create_access_token(user_id, capabilities=["levels:admin"])
        payload = jwt_manager.verify_access_token(token)
        assert payload.sub == str(user_id)
        assert payload.jti == jti
        assert payload.has_capability("levels:admin")

    def test_no_capabilities_by_default(self, jwt_manager: JWTManager):
        token, _, _ = jwt_manager.create_access_token(uuid.uuid4())
        assert jwt_manager.verify_access_token(token).capabilities == []

    def test_wrong_secret_rejected(self, jwt_manager: JWTManager):
        other = JWTManager(secret_key="another-secret-key", algorithm="HS256", access_token_expire_minutes=30)
        token, _, _ = other.create_access_token(uuid.uuid4())
        assert jwt_manager.verify_access_token(token) is None

    def test_expired_token_rejected(self, jwt_manager: JWTManager):
        token, _, _ = jwt_manager.create_access_token(uuid.uuid4(), expires_delta=timedelta(seconds=-10))
        assert jwt_manager.verify_access_token(token) is None

    def test_non_access_token_rejected(self, jwt_manager: JWTManager):
        token = jwt.encode(
            {"sub": str(uuid.uuid4()), "type": "refresh", "exp": 4102444800, "iat": 0, "jti": "x"},
            jwt_manager.secret_key,
            algorithm="HS256",
        )
        assert jwt_manager.verify_access_token(token) is None
