"""Canonical sender identity for inbound Telegram messages."""

from __future__ import annotations

from typing import Optional

from aiogram import types

from utils.validators import normalize_sender_id, validate_sender_id


def resolve_sender_id(message: types.Message) -> Optional[str]:
    """Return the user key of ``message`` or ``None`` if it has none.

    Precedence:
      1. ``from_user.id``: the person who wrote the message
      2. ``chat.id`` of a private chat, equal to the user id there
      3. nothing; group, channel and anonymous senders are not buyers

    The key is the digits of the numeric id, so it is stable across
    display-name changes and doubles as the chat id for replies.
    """
    candidates = []
    if message.from_user is not None and not message.from_user.is_bot:
        candidates.append(message.from_user.id)
    if message.chat is not None and message.chat.type == "private":
        candidates.append(message.chat.id)

    for candidate in candidates:
        if candidate is None or int(candidate) <= 0:
            continue
        sender_id = normalize_sender_id(candidate)
        if validate_sender_id(sender_id):
            return sender_id
    return None


def display_name_of(message: types.Message) -> str:
    user = message.from_user
    if user is None:
        return ""
    return (user.full_name or user.username or "").strip()
