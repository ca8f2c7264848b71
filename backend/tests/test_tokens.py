from __future__ import annotations

import time
from datetime import timedelta
from uuid import uuid4

import pytest
from jose import jwt

from tenant_erp.auth import (
    create_access_token,
    decode_token,
    hash_password,
    principal_from_token,
    verify_password,
)
from tenant_erp.config import settings
from tenant_erp.domain_errors import Unauthorized
from tenant_erp.enums import PrincipalKind
from tenant_erp.permissions import Role
from tenant_erp.services.credentials import PrincipalSeed


def _seed(role: Role = Role.MANAGER, company_id=None) -> PrincipalSeed:
    kind = PrincipalKind.SUPER_ADMIN if role == Role.SUPER_ADMIN else PrincipalKind.TENANT_USER
    return PrincipalSeed(
        kind=kind,
        user_id=uuid4(),
        email="someone@acme.test",
        role=role,
        company_id=company_id if role != Role.SUPER_ADMIN else None,
    )


def _encode(claims: dict) -> str:
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def test_round_trip_preserves_principal_claims() -> None:
    seed = _seed(company_id=uuid4())
    principal = principal_from_token(create_access_token(seed))

    assert principal.user_id == seed.user_id
    assert principal.email == seed.email
    assert principal.role is Role.MANAGER
    assert principal.company_id == seed.company_id


def test_super_admin_token_has_no_company_claim() -> None:
    token = create_access_token(_seed(Role.SUPER_ADMIN))
    payload = decode_token(token)
    assert "company_id" not in payload
    assert principal_from_token(token).is_super_admin


def test_default_expiry_is_one_day() -> None:
    payload = decode_token(create_access_token(_seed(company_id=uuid4())))
    assert payload["exp"] - payload["iat"] == settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60
    assert settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES == 24 * 60


def test_expired_token_is_rejected() -> None:
    token = create_access_token(
        _seed(company_id=uuid4()),
        expires_delta=timedelta(seconds=-(settings.JWT_LEEWAY_SECONDS + 60)),
    )
    with pytest.raises(Unauthorized) as exc_info:
        decode_token(token)
    assert exc_info.value.code == "TOKEN_EXPIRED"
    assert exc_info.value.http_status == 401


def test_tampered_signature_is_rejected() -> None:
    token = jwt.encode(
        {"sub": str(uuid4()), "exp": int(time.time()) + 60, "type": "access"},
        "some-other-secret",
        algorithm=settings.JWT_ALGORITHM,
    )
    with pytest.raises(Unauthorized) as exc_info:
        decode_token(token)
    assert exc_info.value.code == "TOKEN_INVALID"


def test_garbage_token_is_rejected() -> None:
    with pytest.raises(Unauthorized):
        decode_token("not-a-jwt")


def test_token_without_exp_is_rejected() -> None:
    with pytest.raises(Unauthorized) as exc_info:
        decode_token(_encode({"sub": str(uuid4()), "type": "access"}))
    assert exc_info.value.code == "TOKEN_INVALID"


def test_token_issued_in_the_future_is_rejected() -> None:
    now = int(time.time())
    token = _encode({"sub": str(uuid4()), "iat": now + 3600, "exp": now + 7200, "type": "access"})
    with pytest.raises(Unauthorized):
        decode_token(token)


@pytest.mark.parametrize(
    "claims",
    [
        {"sub": "not-a-uuid", "email": "a@b.c", "role": "MANAGER", "company_id": str(uuid4())},
        {"sub": str(uuid4()), "email": "a@b.c", "role": "EMPEROR", "company_id": str(uuid4())},
        {"sub": str(uuid4()), "email": "a@b.c", "role": "MANAGER"},
        {"sub": str(uuid4()), "role": "MANAGER", "company_id": str(uuid4())},
    ],
)
def test_malformed_claims_are_rejected(claims: dict) -> None:
    now = int(time.time())
    token = _encode({**claims, "iat": now, "exp": now + 60, "type": "access"})
    with pytest.raises(Unauthorized):
        principal_from_token(token)


def test_non_access_token_type_is_rejected() -> None:
    now = int(time.time())
    token = _encode({
        "sub": str(uuid4()),
        "email": "a@b.c",
        "role": "SUPER_ADMIN",
        "iat": now,
        "exp": now + 60,
        "type": "refresh",
    })
    with pytest.raises(Unauthorized):
        principal_from_token(token)


def test_password_hashing() -> None:
    hashed = hash_password("correct horse")
    assert hashed != "correct horse"
    assert verify_password("correct horse", hashed) is True
    assert verify_password("wrong", hashed) is False


def test_corrupted_hash_verifies_as_false() -> None:
    assert verify_password("anything", "not-a-bcrypt-hash") is False
