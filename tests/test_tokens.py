"""Unit tests for auth/tokens.py -- TokenService issue/verify.

Covers:
- issue() then verify() returns the same user id, with iat/exp set from the clock
- any bit flipped in the signature -> InvalidSignature
- a payload swapped under the original signature -> InvalidSignature
- a token from another secret -> InvalidSignature
- past exp (clock advanced) -> TokenExpired even though the signature is valid
- garbage, wrong segment count, unexpected alg, and signed-but-incomplete claims -> MalformedToken
- no elevation claim in the payload
"""

from __future__ import annotations

import base64
import json

import pytest
from jose import jwt

from auth.errors import InvalidSignature, MalformedToken, TokenExpired, Unauthorized
from auth.tokens import TokenService

SECRET = "s" * 48
OTHER_SECRET = "o" * 48


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _unb64(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


_B64URL = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"


def _signature_text_variants(token: str):
    """Yield the token with each signature character moved one bit within the base64url alphabet."""
    header, payload, sig = token.split(".")
    for pos, char in enumerate(sig):
        value = _B64URL.index(char)
        for bit in range(6):
            swapped = _B64URL[value ^ (1 << bit)]
            yield f"{header}.{payload}.{sig[:pos]}{swapped}{sig[pos + 1 :]}"


def _flip_signature_bit(token: str, bit: int) -> str:
    header, payload, sig = token.split(".")
    raw = bytearray(_unb64(sig))
    raw[bit // 8] ^= 1 << (bit % 8)
    return f"{header}.{payload}.{_b64(bytes(raw))}"


@pytest.fixture
def tokens(clock) -> TokenService:
    return TokenService(SECRET, ttl=3600, clock=clock)


class TestIssueVerify:
    def test_round_trip_preserves_user_id(self, tokens: TokenService, clock) -> None:
        claims = tokens.verify(tokens.issue("u1"))
        assert claims.user_id == "u1"
        assert claims.issued_at == int(clock.now)
        assert claims.expires_at == int(clock.now) + 3600

    def test_payload_carries_no_elevation(self, tokens: TokenService) -> None:
        payload = json.loads(_unb64(tokens.issue("u1").split(".")[1]))
        assert set(payload) == {"sub", "iat", "exp"}

    def test_default_ttl_is_seven_days(self, clock) -> None:
        svc = TokenService(SECRET, clock=clock)
        claims = svc.verify(svc.issue("u1"))
        assert claims.expires_at - claims.issued_at == 7 * 24 * 3600

    def test_empty_secret_rejected(self) -> None:
        with pytest.raises(ValueError):
            TokenService("")


class TestSignature:
    @pytest.mark.parametrize("bit", [0, 7, 100, 255])
    def test_flipped_signature_bit_fails(self, tokens: TokenService, bit: int) -> None:
        token = tokens.issue("u1")
        with pytest.raises(InvalidSignature):
            tokens.verify(_flip_signature_bit(token, bit))

    def test_every_signature_character_bit_fails(self, tokens: TokenService) -> None:
        token = tokens.issue("u1")
        variants = list(_signature_text_variants(token))
        assert len(variants) == 43 * 6
        for forged in variants:
            with pytest.raises(InvalidSignature):
                tokens.verify(forged)

    def test_spare_low_bits_of_last_character_are_not_ignored(self, tokens: TokenService) -> None:
        header, payload, sig = tokens.issue("u1").split(".")
        last = _B64URL.index(sig[-1])
        forged = f"{header}.{payload}.{sig[:-1]}{_B64URL[last ^ 1]}"
        with pytest.raises(InvalidSignature):
            tokens.verify(forged)

    @pytest.mark.parametrize("suffix", ["=", "\n", " ", "+", "/"])
    def test_foreign_characters_in_signature_fail(self, tokens: TokenService, suffix: str) -> None:
        with pytest.raises(InvalidSignature):
            tokens.verify(tokens.issue("u1") + suffix)

    def test_swapped_payload_fails(self, tokens: TokenService) -> None:
        header, payload, sig = tokens.issue("u1").split(".")
        claims = json.loads(_unb64(payload))
        claims["sub"] = "u2"
        forged = f"{header}.{_b64(json.dumps(claims).encode())}.{sig}"
        with pytest.raises(InvalidSignature):
            tokens.verify(forged)

    def test_token_from_other_secret_fails(self, tokens: TokenService, clock) -> None:
        foreign = TokenService(OTHER_SECRET, ttl=3600, clock=clock).issue("u1")
        with pytest.raises(InvalidSignature):
            tokens.verify(foreign)

    def test_rotated_secret_invalidates_outstanding_tokens(self, clock) -> None:
        token = TokenService(SECRET, clock=clock).issue("u1")
        rotated = TokenService(OTHER_SECRET, clock=clock)
        with pytest.raises(InvalidSignature):
            rotated.verify(token)


class TestExpiry:
    def test_expired_token_fails_despite_valid_signature(self, tokens: TokenService, clock) -> None:
        token = tokens.issue("u1")
        clock.advance(3601)
        with pytest.raises(TokenExpired):
            tokens.verify(token)

    def test_token_valid_at_exact_expiry(self, tokens: TokenService, clock) -> None:
        token = tokens.issue("u1")
        clock.advance(3600)
        assert tokens.verify(token).user_id == "u1"

    def test_signature_checked_before_expiry(self, tokens: TokenService, clock) -> None:
        token = _flip_signature_bit(tokens.issue("u1"), 3)
        clock.advance(10_000)
        with pytest.raises(InvalidSignature):
            tokens.verify(token)


class TestMalformed:
    @pytest.mark.parametrize("token", ["", "not-a-token", "a.b", "a.b.c.d", "a.b.c", "!!!.???.***"])
    def test_unparseable_tokens(self, tokens: TokenService, token: str) -> None:
        with pytest.raises(MalformedToken):
            tokens.verify(token)

    def test_unexpected_algorithm(self, tokens: TokenService) -> None:
        _header, payload, sig = tokens.issue("u1").split(".")
        none_header = _b64(json.dumps({"alg": "none", "typ": "JWT"}).encode())
        with pytest.raises(MalformedToken):
            tokens.verify(f"{none_header}.{payload}.{sig}")

    def test_signed_token_without_subject(self, tokens: TokenService) -> None:
        token = jwt.encode({"iat": 1, "exp": 2}, SECRET, algorithm="HS256")
        with pytest.raises(MalformedToken):
            tokens.verify(token)

    def test_signed_token_with_string_expiry(self, tokens: TokenService) -> None:
        token = jwt.encode({"sub": "u1", "iat": 1, "exp": "never"}, SECRET, algorithm="HS256")
        with pytest.raises(MalformedToken):
            tokens.verify(token)

    def test_all_token_failures_are_unauthorized(self) -> None:
        for kind in (MalformedToken, InvalidSignature, TokenExpired):
            assert issubclass(kind, Unauthorized)
            assert kind.public_code == "unauthorized"
