"""Tests for receipt validation and storage."""

import pytest

from core.exceptions import ReceiptStorageError, ReceiptValidationError
from services.receipt_storage import validate_receipt


@pytest.mark.parametrize("mime,size", [
    ("image/jpeg", 1024),
    ("image/png", 10 * 1024 * 1024),
    ("IMAGE/WEBP", 1),
    ("image/jpeg", None),
])
def test_acceptable_receipts(mime, size):
    validate_receipt(mime, size)


@pytest.mark.parametrize("mime,size,message", [
    ("application/pdf", 1024, "unsupported format"),
    (None, 1024, "unsupported format"),
    ("image/jpeg", 0, "empty image"),
    ("image/jpeg", 10 * 1024 * 1024 + 1, "too large"),
])
def test_rejected_receipts(mime, size, message):
    with pytest.raises(ReceiptValidationError, match=message):
        validate_receipt(mime, size)


@pytest.mark.asyncio
async def test_save_and_overwrite(receipts):
    ref = await receipts.save("573001112233", b"one", "image/png")
    assert ref.startswith("receipt_573001112233_")
    assert ref.endswith(".png")

    again = await receipts.save("573001112233", b"two", "image/png", existing_ref=ref)
    assert again == ref
    assert receipts.path_for(ref).read_bytes() == b"two"
    assert len(receipts.list_for_user("573001112233")) == 1


@pytest.mark.asyncio
async def test_delete_for_user_keeps_listed_refs(receipts):
    keep = await receipts.save("573001112233", b"keep", "image/jpeg")
    receipts.path_for(keep).with_name("receipt_573001112233_1.jpg").write_bytes(b"old")
    other = await receipts.save("573009998877", b"other", "image/jpeg")

    removed = await receipts.delete_for_user("573001112233", keep=[keep])

    assert removed == 1
    assert [p.name for p in receipts.list_for_user("573001112233")] == [keep]
    assert receipts.path_for(other).exists()


def test_refs_cannot_escape_the_folder(receipts):
    with pytest.raises(ReceiptStorageError):
        receipts.path_for("../config.py")
    with pytest.raises(ReceiptStorageError):
        receipts.path_for("notes.txt")


@pytest.mark.asyncio
async def test_empty_content_is_refused(receipts):
    with pytest.raises(ReceiptStorageError):
        await receipts.save("573001112233", b"", "image/jpeg")


@pytest.mark.asyncio
async def test_format_change_gets_a_matching_ref(receipts):
    ref = await receipts.save("573001112233", b"\xff\xd8jpeg", "image/jpeg")

    again = await receipts.save("573001112233", b"\x89PNGpng", "image/png", existing_ref=ref)

    assert again != ref
    assert again.endswith(".png")
    assert receipts.path_for(again).read_bytes() == b"\x89PNGpng"
    # The caller removes the replaced file once the record points elsewhere
    assert receipts.path_for(ref).exists()


@pytest.mark.asyncio
async def test_jpg_aliases_keep_the_same_ref(receipts):
    ref = await receipts.save("573001112233", b"one", "image/jpeg")

    assert await receipts.save("573001112233", b"two", "image/jpg", existing_ref=ref) == ref
