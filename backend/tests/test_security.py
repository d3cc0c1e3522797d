"""
Unit tests for password hashing and the token codec.
"""
from unittest.mock import patch

import pytest
from jose import jwt

from core import security
from core.config import settings
from core.security import (
    InvalidToken,
    TokenCodec,
    access_codec,
    burn_password_check,
    create_access_token,
    create_refresh_token,
    decode_token,
    encode_token,
    generate_jti,
    get_password_hash,
    hash_token_id,
    refresh_codec,
    verify_access_token,
    verify_password,
)


class TestPasswordHasher:
    """Test bcrypt hashing helpers."""

    @pytest.mark.asyncio
    async def test_hash_and_verify(self):
        digest = await get_password_hash("Secret123")
        assert digest != "Secret123"
        assert digest.startswith("$2")
        assert await verify_password("Secret123", digest) is True
        assert await verify_password("Secret124", digest) is False

    @pytest.mark.asyncio
    async def test_hash_is_salted(self):
        first = await get_password_hash("Secret123")
        second = await get_password_hash("Secret123")
        assert first != second

    @pytest.mark.asyncio
    @pytest.mark.parametrize("digest", ["", None, "not-a-hash", "$2b$12$tooshort"])
    async def test_malformed_digest_fails_closed(self, digest):
        assert await verify_password("Secret123", digest) is False

    @pytest.mark.asyncio
    async def test_unknown_user_check_does_no_hashing(self):
        """The dummy digest exists before the first unknown-user login."""
        assert security._DUMMY_PASSWORD_HASH.startswith("$2")
        with patch.object(security.pwd_context, "hash") as hash_password:
            await burn_password_check("Secret123")
        hash_password.assert_not_called()


class TestTokenCodec:
    """Test signing, verification and type discrimination."""

    def test_access_token_round_trip(self):
        token = create_access_token("user-1", "user")
        payload = access_codec.verify(token)
        assert payload["sub"] == "user-1"
        assert payload["role"] == "user"
        assert payload["type"] == "access"
        assert payload["exp"] - payload["iat"] == settings.access_token_ttl_seconds

    def test_refresh_token_carries_jti(self):
        jti = generate_jti()
        payload = refresh_codec.verify(create_refresh_token("user-1", "admin", jti))
        assert payload["jti"] == jti
        assert payload["type"] == "refresh"
        assert payload["exp"] - payload["iat"] == settings.refresh_token_ttl_seconds

    def test_refresh_token_rejected_as_access_token(self):
        token = create_refresh_token("user-1", "user", generate_jti())
        with pytest.raises(InvalidToken):
            access_codec.verify(token)
        assert verify_access_token(token) is None

    def test_access_token_rejected_as_refresh_token(self):
        with pytest.raises(InvalidToken):
            refresh_codec.verify(create_access_token("user-1", "user"))

    def test_type_checked_even_with_shared_secret(self):
        """A correctly signed token of the wrong type still fails."""
        access = TokenCodec("shared", 60, "access")
        refresh = TokenCodec("shared", 60, "refresh")
        token = refresh.sign({"sub": "user-1", "role": "user", "jti": generate_jti()})
        with pytest.raises(InvalidToken):
            access.verify(token)

    def test_missing_type_claim_rejected(self):
        token = encode_token({"sub": "user-1", "role": "user"}, settings.JWT_ACCESS_SECRET, 60)
        with pytest.raises(InvalidToken):
            access_codec.verify(token)

    def test_expired_token_rejected(self):
        codec = TokenCodec(settings.JWT_ACCESS_SECRET, -30, "access")
        token = codec.sign({"sub": "user-1", "role": "user"})
        with pytest.raises(InvalidToken):
            access_codec.verify(token)

    def test_forged_signature_rejected(self):
        forged = TokenCodec("attacker-secret", 60, "access").sign({"sub": "user-1", "role": "admin"})
        with pytest.raises(InvalidToken):
            access_codec.verify(forged)

    @pytest.mark.parametrize("token", ["", "abc", "a.b.c", "Bearer x.y.z"])
    def test_malformed_token_rejected(self, token):
        with pytest.raises(InvalidToken):
            access_codec.verify(token)

    def test_refresh_token_without_jti_rejected(self):
        token = TokenCodec(settings.JWT_REFRESH_SECRET, 60, "refresh").sign({"sub": "user-1", "role": "user"})
        with pytest.raises(InvalidToken):
            refresh_codec.verify(token)

    def test_token_without_subject_rejected(self):
        token = jwt.encode({"type": "access", "role": "user"}, settings.JWT_ACCESS_SECRET, algorithm="HS256")
        with pytest.raises(InvalidToken):
            decode_token(token, settings.JWT_ACCESS_SECRET)


class TestTokenIdentifiers:
    """Test jti generation and hashing."""

    def test_jti_is_unique(self):
        assert len({generate_jti() for _ in range(100)}) == 100

    def test_hash_is_stable_and_hides_the_jti(self):
        jti = generate_jti()
        assert hash_token_id(jti) == hash_token_id(jti)
        assert hash_token_id(jti) != jti
        assert len(hash_token_id(jti)) == 64
