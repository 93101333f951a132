"""Tests for request schema validation."""

import pydantic
import pytest

from bookworm_auth.schemas.user import ProfileUpdate, UserCreate


@pytest.mark.parametrize("value", ["   ", "  a  ", "ab "])
def test_blank_or_short_display_name_rejected(value):
    with pytest.raises(pydantic.ValidationError):
        ProfileUpdate(display_name=value)
    with pytest.raises(pydantic.ValidationError):
        UserCreate(username="alice", email="alice@example.com", password="Passw0rd", display_name=value)


def test_display_name_is_trimmed():
    assert ProfileUpdate(display_name="  Book Lover ").display_name == "Book Lover"


def test_registration_normalizes_identifiers():
    payload = UserCreate(username=" Alice ", email=" Alice@Example.COM", password="Passw0rd")

    assert payload.username == "alice"
    assert payload.email == "alice@example.com"


@pytest.mark.parametrize("password", ["password1", "PASSWORD1", "Password", "Pw1"])
def test_weak_passwords_rejected(password):
    with pytest.raises(pydantic.ValidationError):
        UserCreate(username="alice", email="alice@example.com", password=password)
