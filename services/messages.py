"""User-facing chat texts of the purchase funnel (HTML parse mode)."""

from __future__ import annotations

from html import escape
from typing import Iterable, Optional

from core.constants import PurchaseMessageFormat

ACCEPTED_FORMATS = "JPG, PNG or WEBP, up to 10 MB"


def format_money(amount: int) -> str:
    return f"${amount:,}"


def example_purchase_message() -> str:
    return (
        f"{PurchaseMessageFormat.DECLARATION}\n"
        "Sticker Rueda y Gana: 10 items - $10,000\n"
        "Total items: 10\n"
        "Total amount: $10,000"
    )


def order_confirmation(
    *,
    display_name: str,
    item_count: int,
    total_amount: int,
    raffle_name: str,
    raffle_icon: str,
    timeout_minutes: int,
) -> str:
    greeting = f"Hi {escape(display_name)}! " if display_name else ""
    return (
        f"✅ <b>Order received</b> {raffle_icon}\n\n"
        f"{greeting}We registered your purchase for <b>{escape(raffle_name)}</b>.\n\n"
        f"📦 Items: <b>{item_count}</b>\n"
        f"💰 Total: <b>{format_money(total_amount)}</b>\n\n"
        "💳 <b>How to pay</b>\n"
        "1. Transfer the total to the payment key in the next message\n"
        "2. Send a screenshot of the receipt here\n\n"
        f"⏰ You have a maximum of <b>{timeout_minutes} minutes</b> to send the receipt."
    )


def payment_key(key: str) -> str:
    return escape(key)


def active_purchase_notice(remaining_minutes: int, attempts_left: int) -> str:
    return (
        "⚠️ <b>You already have a purchase in progress</b>\n\n"
        "Finish it before starting a new one.\n\n"
        f"⏰ Time left: <b>{remaining_minutes} min</b>\n"
        f"🔁 Receipt attempts left: <b>{attempts_left}</b>\n\n"
        "📸 Send the payment receipt as an image."
    )


def receipt_reminder(remaining_minutes: int) -> str:
    return (
        "📸 <b>We are waiting for your payment receipt</b>\n\n"
        "Send a screenshot of the transfer as an image.\n"
        f"Accepted formats: {ACCEPTED_FORMATS}.\n\n"
        f"⏰ Time left: <b>{remaining_minutes} min</b>"
    )


def under_review_reminder() -> str:
    return (
        "⏳ <b>Your receipt is under review</b>\n\n"
        "An administrator will confirm your purchase shortly. "
        "You can send a new image if you need to replace the receipt."
    )


def invalid_receipt(attempt: int, max_attempts: int, reason: str) -> str:
    return (
        "❌ <b>Invalid receipt</b>\n\n"
        f"Reason: {escape(reason)}\n"
        f"Attempt <b>{attempt}/{max_attempts}</b>\n\n"
        f"Accepted formats: {ACCEPTED_FORMATS}.\n"
        "💡 Send a clear screenshot of the payment."
    )


def attempts_exceeded(max_attempts: int) -> str:
    return (
        "🚫 <b>Purchase canceled</b>\n\n"
        f"You reached the limit of {max_attempts} invalid receipts.\n\n"
        "You can start a new purchase by sending the purchase message again."
    )


def session_expired(item_count: int, total_amount: int, timeout_minutes: int) -> str:
    return (
        "⏰ <b>Purchase expired</b>\n\n"
        f"Your purchase exceeded the {timeout_minutes} minute limit.\n\n"
        f"📦 Items: {item_count}\n"
        f"💰 Total: {format_money(total_amount)}\n\n"
        "Send the purchase message again to start over."
    )


def receipt_received(replaced: bool) -> str:
    if replaced:
        return (
            "🔄 <b>Receipt replaced</b>\n\n"
            "We kept your new image. Your purchase is waiting for admin review."
        )
    return (
        "✅ <b>Receipt received</b>\n\n"
        "Your purchase is waiting for admin review. "
        "We will send your raffle numbers as soon as it is approved."
    )


def no_active_purchase() -> str:
    return (
        "ℹ️ <b>No purchase in progress</b>\n\n"
        "Send the purchase message from the shop before the payment receipt.\n\n"
        f"<i>Example:</i>\n<pre>{escape(example_purchase_message())}</pre>"
    )


def info_message(support_phone: str) -> str:
    return (
        "👋 <b>Welcome to Sticker Rueda y Gana</b>\n\n"
        "To buy stickers:\n"
        "1. Pick your stickers in the web shop\n"
        "2. Copy the generated purchase message\n"
        "3. Paste it here\n\n"
        f"<i>Example:</i>\n<pre>{escape(example_purchase_message())}</pre>\n\n"
        f"📞 Support: {escape(support_phone)}"
    )


def invalid_purchase_data() -> str:
    return (
        "❌ <b>We could not read your purchase</b>\n\n"
        "The quantity and the total must be greater than zero. "
        "Copy the purchase message from the shop again without editing it."
    )


def registration_required(support_phone: str) -> str:
    return (
        "📝 <b>Registration required</b>\n\n"
        "Your number is not registered yet. Register in the web shop and "
        "send the purchase message again.\n\n"
        f"📞 Support: {escape(support_phone)}"
    )


def purchase_not_allowed(support_phone: str) -> str:
    return (
        "⛔ <b>Purchase not allowed</b>\n\n"
        "Your account cannot buy in this raffle right now.\n\n"
        f"📞 Support: {escape(support_phone)}"
    )


def purchase_approved(item_count: int, total_amount: int, numbers: Iterable[str]) -> str:
    numbers_text = ", ".join(numbers)
    return (
        "🎉 <b>Purchase approved!</b>\n\n"
        f"📦 Items: {item_count}\n"
        f"💰 Total: {format_money(total_amount)}\n\n"
        f"🎟️ Your numbers: <b>{escape(numbers_text)}</b>\n\n"
        "Good luck!"
    )


def purchase_rejected(reason: str) -> str:
    return (
        "❌ <b>Purchase rejected</b>\n\n"
        f"Reason: {escape(reason)}\n\n"
        "You can start a new purchase by sending the purchase message again."
    )


def intervention_required(support_phone: str) -> str:
    return (
        "⚠️ <b>ATTENTION REQUIRED</b>\n\n"
        "We received your payment but could not link it to a registered account. "
        "Please contact support to finish your purchase.\n\n"
        f"📞 Support: {escape(support_phone)}"
    )


def user_blocked(reason: Optional[str]) -> str:
    text = "🚫 <b>Your account has been blocked</b>\n\nYour pending purchases were canceled."
    if reason:
        text += f"\n\nReason: {escape(reason)}"
    return text


def generic_error() -> str:
    return "❌ Something went wrong while processing your message. Please try again in a moment."
