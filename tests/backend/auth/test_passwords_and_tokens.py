from types import SimpleNamespace

import jwt
import pytest

from backend.auth import jwt_handler
from backend.auth.passwords import (
    generate_temporary_password,
    hash_password,
    password_strength,
    validate_password_strength,
    verify_password,
)
from backend.core import config
from backend.core.errors import AuthenticationError


def make_user(**overrides) -> SimpleNamespace:
    values = {
        'id': 7,
        'email': 'admin@clinic.example.com',
        'role': 'ADMIN',
        'first_name': 'Clinic',
        'last_name': 'Admin',
        'token_version': 0,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_hash_password_round_trips_through_verify() -> None:
    hashed = hash_password('Secret123!')

    assert hashed != 'Secret123!'
    assert verify_password('Secret123!', hashed)
    assert not verify_password('secret123!', hashed)


def test_verify_password_rejects_missing_hash() -> None:
    assert verify_password('Secret123!', '') is False


@pytest.mark.parametrize(
    ('password', 'expected_error'),
    [
        ('Sh0rt!', 'Password must be at least 8 characters long'),
        ('lowercase1!', 'Password must contain an uppercase letter'),
        ('UPPERCASE1!', 'Password must contain a lowercase letter'),
        ('NoDigits!!', 'Password must contain a number'),
        ('NoSpecial12', 'Password must contain a special character'),
        ('With Space1!', 'Password must not contain spaces'),
    ],
)
def test_validate_password_strength_reports_each_rule(password: str, expected_error: str) -> None:
    check = validate_password_strength(password)

    assert not check.is_valid
    assert expected_error in check.errors


def test_validate_password_strength_accepts_strong_password() -> None:
    check = validate_password_strength('Secret123!')

    assert check.is_valid
    assert check.errors == []
    assert check.strength == password_strength('Secret123!')


def test_password_strength_rewards_length_and_variety() -> None:
    assert password_strength('') == 0
    assert password_strength('aaaaaaaa') < password_strength('Abcdef12!')
    assert password_strength('Xy9!kq2@Lm7#Pw4$') == 100


def test_generate_temporary_password_satisfies_rules() -> None:
    password = generate_temporary_password(16)

    assert len(password) == 16
    assert validate_password_strength(password).is_valid


def test_access_token_carries_user_claims() -> None:
    token = jwt_handler.create_access_token(make_user())

    payload = jwt_handler.decode_access_token(token)

    assert payload['sub'] == '7'
    assert payload['role'] == 'ADMIN'
    assert payload['email'] == 'admin@clinic.example.com'


def test_refresh_token_is_not_accepted_as_access_token() -> None:
    refresh_token = jwt_handler.create_refresh_token(make_user(token_version=3))

    assert jwt_handler.decode_refresh_token(refresh_token)['token_version'] == 3
    with pytest.raises(AuthenticationError) as exception_info:
        jwt_handler.decode_access_token(refresh_token)

    assert exception_info.value.code == 'INVALID_TOKEN'


def test_expired_access_token_is_reported_as_expired() -> None:
    token = jwt.encode(
        {
            'sub': '7',
            'iss': config.JWT_ISSUER,
            'aud': config.JWT_AUDIENCE,
            'exp': 1,
        },
        config.JWT_SECRET_KEY,
        algorithm=config.JWT_ALGORITHM,
    )

    with pytest.raises(AuthenticationError) as exception_info:
        jwt_handler.decode_access_token(token)

    assert exception_info.value.code == 'TOKEN_EXPIRED'


def test_create_token_pair_reports_expiry_in_seconds() -> None:
    tokens = jwt_handler.create_token_pair(make_user())

    assert tokens['token_type'] == 'bearer'
    assert tokens['expires_in'] == config.JWT_EXPIRES_MINUTES * 60
    assert set(tokens) == {'access_token', 'refresh_token', 'token_type', 'expires_in'}
