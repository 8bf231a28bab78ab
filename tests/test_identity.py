"""Tests for sender identity resolution."""

from types import SimpleNamespace

import pytest

from bot.identity import display_name_of, resolve_sender_id
from utils.validators import normalize_sender_id, validate_sender_id


def message(from_user=None, chat_id=123456789, chat_type="private"):
    return SimpleNamespace(
        from_user=from_user,
        chat=SimpleNamespace(id=chat_id, type=chat_type),
    )


def user(user_id, is_bot=False, full_name="Ana Gómez", username="ana"):
    return SimpleNamespace(id=user_id, is_bot=is_bot, full_name=full_name, username=username)


def test_from_user_wins_over_chat():
    assert resolve_sender_id(message(from_user=user(987654321), chat_id=123456789)) == "987654321"


def test_private_chat_id_is_the_fallback():
    assert resolve_sender_id(message(from_user=None, chat_id=123456789)) == "123456789"


def test_group_without_user_has_no_identity():
    assert resolve_sender_id(message(from_user=None, chat_id=-100123456, chat_type="supergroup")) is None


def test_bots_are_not_buyers():
    assert resolve_sender_id(message(from_user=user(555555555, is_bot=True), chat_type="group")) is None


def test_short_ids_fail_validation():
    assert resolve_sender_id(message(from_user=user(42), chat_id=42)) is None


def test_display_name():
    assert display_name_of(message(from_user=user(987654321))) == "Ana Gómez"
    assert display_name_of(message(from_user=user(987654321, full_name=""))) == "ana"
    assert display_name_of(message()) == ""


@pytest.mark.parametrize("raw,expected", [
    (987654321, "987654321"),
    ("+57 300 111 2233", "573001112233"),
    (None, ""),
])
def test_normalize_sender_id(raw, expected):
    assert normalize_sender_id(raw) == expected


@pytest.mark.parametrize("value,valid", [
    ("987654321", True),
    ("1234", False),
    ("12a456789", False),
    ("", False),
])
def test_validate_sender_id(value, valid):
    assert validate_sender_id(value) is valid
