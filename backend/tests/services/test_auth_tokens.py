from datetime import timedelta

import pytest
from jose import jwt

from app.config import Settings, settings
from app.models.schemas import Role
from app.services.auth import (
    create_access_token, decode_access_token, get_password_hash, verify_password
)


def test_token_round_trip_carries_username_and_role():
    token = create_access_token({"sub": "maria", "role": Role.MANAGER.value})

    identity = decode_access_token(token)

    assert identity.username == "maria"
    assert identity.role == Role.MANAGER
    assert jwt.get_unverified_claims(token)["username"] == "maria"


def test_token_signed_with_another_key_is_rejected():
    forged = jwt.encode(
        {"sub": "maria", "role": "admin"},
        "another-signing-key-that-is-long-enough-0002",
        algorithm=settings.ALGORITHM,
    )

    assert decode_access_token(forged) is None


def test_expired_token_is_rejected():
    token = create_access_token({"sub": "maria", "role": "employee"}, expires_delta=timedelta(seconds=-5))

    assert decode_access_token(token) is None


def test_token_with_unknown_role_is_rejected():
    token = create_access_token({"sub": "maria", "role": "superuser"})

    assert decode_access_token(token) is None


def test_password_hashing():
    hashed = get_password_hash("hunter22")

    assert verify_password("hunter22", hashed)
    assert not verify_password("hunter23", hashed)
    assert not verify_password("hunter22", None)


@pytest.mark.parametrize("key", ["short-key", "x" * 26 + "secret" + "y" * 10])
def test_settings_reject_weak_signing_keys(key):
    with pytest.raises(ValueError):
        Settings.model_validate({"SECRET_KEY": key, "DATABASE_URL": "sqlite://"})


def test_supported_currencies_normalization():
    custom = Settings.model_validate(
        {
            "SECRET_KEY": "another-signing-key-that-is-long-enough-0002",
            "DATABASE_URL": "sqlite://",
            "SUPPORTED_CURRENCIES": " usd , EUR , gbp , usd ",
        }
    )
    assert custom.supported_currencies == ["USD", "EUR", "GBP"]
