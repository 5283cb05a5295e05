from __future__ import annotations

import jwt
import pytest

from theraway.core.claims import Claims, ClaimsCodec, ClaimsErrorKind, ClaimsFailure
from theraway.domain.identity import Role

SECRET = "unit-test-secret-0123456789abcdef"
T0 = 1_700_000_000


class Ticker:
    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_codec(now: float = T0, *, secret: str = SECRET, leeway: int = 0) -> tuple[ClaimsCodec, Ticker]:
    ticker = Ticker(now)
    codec = ClaimsCodec(
        secret,
        issuer="theraway.net",
        audience="theraway.net",
        default_ttl_seconds=3600,
        leeway_seconds=leeway,
        clock=ticker,
    )
    return codec, ticker


def test_issue_then_parse_returns_the_same_identity():
    codec, _ = make_codec()
    token = codec.issue(user_id="user_1", role=Role.THERAPIST, name="Ana", email="ana@example.com")

    claims = codec.parse(token)

    assert isinstance(claims, Claims)
    assert claims.user_id == "user_1"
    assert claims.role is Role.THERAPIST
    assert claims.name == "Ana"
    assert claims.email == "ana@example.com"
    assert claims.issued_at == T0
    assert claims.expires_at == T0 + 3600


def test_expiry_is_inclusive_at_exp():
    codec, ticker = make_codec()
    token = codec.issue(user_id="user_1", role=Role.CLIENT, name="Ana")

    ticker.now = T0 + 3599
    assert isinstance(codec.parse(token), Claims)

    ticker.now = T0 + 3600
    result = codec.parse(token)
    assert isinstance(result, ClaimsFailure)
    assert result.kind is ClaimsErrorKind.EXPIRED


def test_leeway_extends_the_window():
    codec, ticker = make_codec(leeway=30)
    token = codec.issue(user_id="user_1", role=Role.CLIENT, name="Ana")
    ticker.now = T0 + 3610
    assert isinstance(codec.parse(token), Claims)


def test_expired_wins_over_bad_signature():
    forger, _ = make_codec(secret="some-other-secret-0123456789abcdef")
    token = forger.issue(user_id="user_1", role=Role.ADMIN, name="Mallory")
    codec, ticker = make_codec()
    ticker.now = T0 + 7200

    result = codec.parse(token)

    assert isinstance(result, ClaimsFailure)
    assert result.kind is ClaimsErrorKind.EXPIRED


def test_foreign_signature_is_rejected():
    forger, _ = make_codec(secret="some-other-secret-0123456789abcdef")
    token = forger.issue(user_id="user_1", role=Role.ADMIN, name="Mallory")
    codec, _ = make_codec()

    result = codec.parse(token)

    assert isinstance(result, ClaimsFailure)
    assert result.kind is ClaimsErrorKind.SIGNATURE_INVALID


def test_tampered_payload_is_rejected():
    codec, _ = make_codec()
    token = codec.issue(user_id="user_1", role=Role.CLIENT, name="Ana")
    header, _, signature = token.split(".")
    other = codec.issue(user_id="user_1", role=Role.ADMIN, name="Ana")
    forged = ".".join([header, other.split(".")[1], signature])

    result = codec.parse(forged)

    assert isinstance(result, ClaimsFailure)
    assert result.kind is ClaimsErrorKind.SIGNATURE_INVALID


@pytest.mark.parametrize("token", ["", "not-a-token", "a.b.c", "onlyone.part"])
def test_garbage_is_malformed(token):
    codec, _ = make_codec()
    result = codec.parse(token)
    assert isinstance(result, ClaimsFailure)
    assert result.kind is ClaimsErrorKind.MALFORMED


def test_token_from_the_future_is_not_yet_valid():
    future, _ = make_codec(now=T0 + 600)
    token = future.issue(user_id="user_1", role=Role.CLIENT, name="Ana")
    codec, _ = make_codec()

    result = codec.parse(token)

    assert isinstance(result, ClaimsFailure)
    assert result.kind is ClaimsErrorKind.NOT_YET_VALID


def _raw_token(data, **overrides) -> str:
    payload = {"iss": "theraway.net", "aud": "theraway.net", "iat": T0, "exp": T0 + 60, "data": data}
    payload.update(overrides)
    return jwt.encode(payload, SECRET, algorithm="HS256")


def test_unknown_role_is_invalid():
    codec, _ = make_codec()
    token = _raw_token({"userId": "user_1", "role": "SUPERUSER", "name": "X"})
    result = codec.parse(token)
    assert isinstance(result, ClaimsFailure)
    assert result.kind is ClaimsErrorKind.INVALID


def test_wrong_audience_is_invalid():
    codec, _ = make_codec()
    token = _raw_token({"userId": "user_1", "role": "CLIENT", "name": "X"}, aud="elsewhere.example")
    result = codec.parse(token)
    assert isinstance(result, ClaimsFailure)
    assert result.kind is ClaimsErrorKind.INVALID


def test_missing_user_id_is_invalid():
    codec, _ = make_codec()
    token = _raw_token({"role": "CLIENT", "name": "X"})
    result = codec.parse(token)
    assert isinstance(result, ClaimsFailure)
    assert result.kind is ClaimsErrorKind.INVALID


def test_missing_name_defaults():
    codec, _ = make_codec()
    token = _raw_token({"userId": "user_1", "role": "CLIENT"})
    claims = codec.parse(token)
    assert isinstance(claims, Claims)
    assert claims.name == "User"


def test_empty_secret_is_a_configuration_error():
    with pytest.raises(RuntimeError):
        ClaimsCodec("", issuer="theraway.net", audience="theraway.net")


def test_asymmetric_algorithm_is_refused():
    with pytest.raises(RuntimeError):
        ClaimsCodec(SECRET, issuer="theraway.net", audience="theraway.net", algorithm="RS256")


def test_negative_ttl_is_refused():
    codec, _ = make_codec()
    with pytest.raises(ValueError):
        codec.issue(user_id="user_1", role=Role.CLIENT, name="Ana", ttl_seconds=-1)


def test_zero_ttl_is_expired_a_second_later():
    codec, ticker = make_codec()
    token = codec.issue(user_id="user_1", role=Role.CLIENT, name="Ana", ttl_seconds=0)
    ticker.now = T0 + 1
    result = codec.parse(token)
    assert isinstance(result, ClaimsFailure)
    assert result.kind is ClaimsErrorKind.EXPIRED


def test_empty_display_name_round_trips():
    codec, _ = make_codec()
    claims = codec.parse(codec.issue(user_id="user_1", role=Role.CLIENT, name=""))
    assert isinstance(claims, Claims)
    assert claims.name == ""
