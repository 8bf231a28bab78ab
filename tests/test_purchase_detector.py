"""Unit tests for PurchaseDetector."""

import pytest

from services.purchase_detector import PurchaseDetector
from tests.conftest import purchase_text


@pytest.fixture
def detector():
    return PurchaseDetector()


def test_complete_declaration_is_a_purchase(detector):
    assert detector.classify(purchase_text()) is True


def test_lines_may_be_indented_and_reordered(detector):
    text = (
        "   Total amount: $10,000  \n"
        "I want to buy these stickers!\n"
        "\n"
        "  Sticker Rueda y Gana: 10 items - $10,000\n"
        "Total items: 10"
    )
    assert detector.classify(text) is True


@pytest.mark.parametrize("missing_line", [0, 1, 2, 3])
def test_any_missing_line_is_not_a_purchase(detector, missing_line):
    lines = purchase_text().splitlines()
    del lines[missing_line]
    assert detector.classify("\n".join(lines)) is False


def test_all_fragments_on_one_line_are_not_a_purchase(detector):
    text = purchase_text().replace("\n", " ")
    assert detector.classify(text) is False


def test_casual_chatter_is_not_a_purchase(detector):
    assert detector.classify("hello, I want to buy stickers! how much?") is False


@pytest.mark.parametrize("text", [None, "", "short", "123456789"])
def test_short_text_is_never_a_purchase(detector, text):
    assert detector.classify(text) is False


def test_extract_reads_quantity_and_total(detector):
    result = detector.extract(purchase_text(items=10, amount="10,000"))
    assert result.is_valid
    assert result.item_count == 10
    assert result.total_amount == 10000
    assert result.amount_estimated is False
    assert len(result.items) == 1
    assert result.items[0].quantity == 10


def test_extract_takes_largest_dollar_amount(detector):
    text = (
        "I want to buy these stickers!\n"
        "Sticker A: 2 items - $2,000\n"
        "Sticker B: 3 items - $3,000\n"
        "Total items: 5\n"
        "Total amount: $5,000"
    )
    result = detector.extract(text)
    assert result.item_count == 5
    assert result.total_amount == 5000
    assert [item.amount for item in result.items] == [2000, 3000]


def test_extract_estimates_low_amount_from_quantity(detector):
    result = detector.extract(purchase_text(items=4, amount="4"))
    assert result.item_count == 4
    assert result.total_amount == 4000
    assert result.amount_estimated is True


def test_extract_without_numbers_returns_zeros(detector):
    result = detector.extract("nothing useful here")
    assert result.item_count == 0
    assert result.total_amount == 0
    assert result.is_valid is False


def test_extract_never_raises(detector):
    result = detector.extract(None)
    assert result.is_valid is False


def test_payload_uses_wire_names(detector):
    payload = detector.extract(purchase_text()).to_payload()
    assert payload["itemCount"] == 10
    assert payload["totalAmount"] == 10000
    assert payload["items"][0]["quantity"] == 10
