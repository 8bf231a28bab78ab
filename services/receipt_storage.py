"""Receipt image persistence.

One file per user and session: a resubmission overwrites the file the
first accepted receipt created instead of adding a new one.
"""

from __future__ import annotations

import asyncio
import os
import re
from pathlib import Path
from typing import Iterable, List, Optional

from core import get_logger
from core.constants import ReceiptLimits
from core.exceptions import ReceiptStorageError, ReceiptValidationError
from database.models import utcnow

logger = get_logger(__name__)

RECEIPT_PREFIX = "receipt_"
RECEIPT_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}


def validate_receipt(
    mime_type: Optional[str],
    size: Optional[int],
    *,
    max_size: int = ReceiptLimits.MAX_FILE_SIZE,
    allowed_mime_types=ReceiptLimits.ALLOWED_MIME_TYPES,
) -> None:
    """Raise ``ReceiptValidationError`` unless the image is an acceptable receipt.

    An unknown ``size`` is accepted here; callers re-check with the byte
    count once the image has been downloaded.
    """
    mime = (mime_type or "").lower()
    if mime not in allowed_mime_types:
        raise ReceiptValidationError(f"unsupported format {mime or 'unknown'}")
    if size is None:
        return
    if size <= 0:
        raise ReceiptValidationError("empty image")
    if size > max_size:
        raise ReceiptValidationError(
            f"image too large ({size // (1024 * 1024)} MB, max {max_size // (1024 * 1024)} MB)"
        )


def _safe_user(user: str) -> str:
    return re.sub(r"[^A-Za-z0-9]", "", user) or "unknown"


class ReceiptStorage:
    """Stores receipts under ``base_dir`` named ``receipt_<user>_<ms>.<ext>``."""

    def __init__(self, base_dir: Path | str) -> None:
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, ref: str) -> Path:
        name = Path(ref).name
        if name != ref or not name.startswith(RECEIPT_PREFIX):
            raise ReceiptStorageError(f"Invalid receipt reference: {ref!r}")
        return self.base_dir / name

    @staticmethod
    def extension_for(mime_type: str) -> str:
        return ReceiptLimits.EXTENSIONS.get((mime_type or "").lower(), ".jpg")

    def new_ref(self, user: str, mime_type: str) -> str:
        extension = self.extension_for(mime_type)
        stamp = int(utcnow().timestamp() * 1000)
        return f"{RECEIPT_PREFIX}{_safe_user(user)}_{stamp}{extension}"

    @staticmethod
    def _write(path: Path, content: bytes) -> None:
        temp_path = path.with_name(path.name + ".tmp")
        with open(temp_path, "wb") as handle:
            handle.write(content)
        os.replace(temp_path, path)

    async def save(
        self,
        user: str,
        content: bytes,
        mime_type: str,
        existing_ref: Optional[str] = None,
    ) -> str:
        """Persist ``content``; reuses ``existing_ref`` so resubmissions overwrite.

        When the new image has a different format it gets a new ref with the
        matching extension, so the extension always describes the stored
        bytes. The caller deletes the replaced file once nothing points at
        it. Returns the ref in use.
        """
        if not content:
            raise ReceiptStorageError("Refusing to store an empty receipt")
        ref = existing_ref
        if ref is None or Path(ref).suffix.lower() != self.extension_for(mime_type):
            ref = self.new_ref(user, mime_type)
        path = self.path_for(ref)
        try:
            await asyncio.to_thread(self._write, path, content)
        except OSError as e:
            raise ReceiptStorageError(f"Failed to store receipt {ref}: {e}") from e
        logger.info(
            f"🧾 Receipt stored ({len(content)} bytes)",
            extra={"user": user, "reason": "overwrite" if ref == existing_ref else "new"},
        )
        return ref

    async def delete(self, ref: str) -> bool:
        path = self.path_for(ref)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            return False
        return True

    def _matches_user(self, path: Path, user: str) -> bool:
        return (
            path.name.startswith(f"{RECEIPT_PREFIX}{_safe_user(user)}_")
            and path.suffix.lower() in RECEIPT_EXTENSIONS
        )

    def list_for_user(self, user: str) -> List[Path]:
        return sorted(p for p in self.base_dir.iterdir() if p.is_file() and self._matches_user(p, user))

    async def delete_for_user(self, user: str, keep: Iterable[str] = ()) -> int:
        """Remove stored receipts of ``user`` except the refs in ``keep``.

        Returns the number of files removed.
        """
        kept = set(keep)

        def _delete() -> int:
            removed = 0
            for path in self.list_for_user(user):
                if path.name in kept:
                    continue
                try:
                    path.unlink()
                    removed += 1
                except FileNotFoundError:
                    continue
                except OSError as e:
                    logger.warning(f"Could not delete receipt {path.name}: {e}", extra={"user": user})
            return removed

        removed = await asyncio.to_thread(_delete)
        if removed:
            logger.info(f"🗑️ Deleted {removed} receipt file(s)", extra={"user": user})
        return removed
