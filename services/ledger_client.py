"""HTTP client for the external user registry and purchase ledger."""

from __future__ import annotations

import asyncio
import secrets
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

from core import get_logger
from core.constants import LedgerDefaults

logger = get_logger(__name__)


@dataclass(slots=True)
class ValidationResult:
    valid: bool
    purchase_allowed: bool = False
    user: Optional[Dict[str, Any]] = None
    provisional: bool = False
    error: Optional[str] = None


@dataclass(slots=True)
class RegistrationResult:
    success: bool
    external_purchase_id: Optional[str] = None
    assigned_numbers: List[str] = field(default_factory=list)
    total_numbers: Optional[int] = None
    user: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    user_not_found: bool = False


def is_user_not_found(error: Optional[str]) -> bool:
    lowered = (error or "").lower()
    return any(marker in lowered for marker in LedgerDefaults.USER_NOT_FOUND_MARKERS)


class LedgerClient:
    """Talks to ``validateUser`` and ``registerPurchase``.

    Calls are never retried. Timeouts and transport errors come back as
    failed results, which the funnel treats like a failed validation.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str = "",
        validate_timeout: float = LedgerDefaults.VALIDATE_TIMEOUT,
        register_timeout: float = LedgerDefaults.REGISTER_TIMEOUT,
        forbidden_soft_pass: bool = True,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.validate_timeout = aiohttp.ClientTimeout(total=validate_timeout)
        self.register_timeout = aiohttp.ClientTimeout(total=register_timeout)
        self.forbidden_soft_pass = forbidden_soft_pass
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"X-API-Key": self.api_key} if self.api_key else None
            self._session = aiohttp.ClientSession(headers=headers)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()

    async def _post(
        self,
        endpoint: str,
        payload: Dict[str, Any],
        timeout: aiohttp.ClientTimeout,
    ) -> tuple[int, Dict[str, Any]]:
        session = self._get_session()
        async with session.post(f"{self.base_url}/{endpoint}", json=payload, timeout=timeout) as response:
            try:
                body = await response.json(content_type=None)
            except ValueError:
                body = {}
            return response.status, body if isinstance(body, dict) else {}

    async def validate_user(
        self,
        user: str,
        raffle_id: int,
        text: str,
        is_purchase: bool,
        purchase_data: Optional[Dict[str, Any]] = None,
    ) -> ValidationResult:
        payload = {
            "number": user,
            "raffleId": raffle_id,
            "text": text,
            "isPurchase": is_purchase,
            "purchaseData": purchase_data,
        }
        try:
            status, body = await self._post("validateUser", payload, self.validate_timeout)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"User validation failed: {e!r}", extra={"user": user})
            return ValidationResult(valid=False, error=f"validation unavailable: {e!r}")

        if status == 403 and self.forbidden_soft_pass:
            # Upstream answers 403 for some registered users; let them through provisionally
            logger.warning("Ledger answered 403, accepting user provisionally", extra={"user": user})
            return ValidationResult(valid=True, purchase_allowed=is_purchase, provisional=True)

        if status >= 400 or not body.get("success"):
            error = body.get("error") or f"HTTP {status}"
            logger.info(f"User not validated: {error}", extra={"user": user})
            return ValidationResult(valid=False, error=str(error))

        return ValidationResult(
            valid=True,
            purchase_allowed=bool(body.get("purchaseAllowed", True)),
            user=body.get("user"),
        )

    async def register_purchase(
        self,
        user: str,
        raffle_id: int,
        quantity: int,
        amount: int,
        purchase_id: str,
    ) -> RegistrationResult:
        payload = {
            "number": user,
            "raffleId": raffle_id,
            "quantity": quantity,
            "amount": amount,
            "purchaseId": purchase_id,
            "nonce": secrets.token_hex(LedgerDefaults.NONCE_BYTES),
        }
        try:
            status, body = await self._post("registerPurchase", payload, self.register_timeout)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(
                f"Purchase registration failed: {e!r}",
                extra={"user": user, "record_id": purchase_id},
            )
            return RegistrationResult(success=False, error=f"ledger unavailable: {e!r}")

        if status >= 400 or not body.get("success"):
            error = str(body.get("error") or f"HTTP {status}")
            return RegistrationResult(
                success=False,
                error=error,
                user_not_found=is_user_not_found(error),
            )

        numbers = [str(number) for number in body.get("assignedNumbers") or []]
        total = body.get("totalNumbers")
        logger.info(
            f"🎟️ Ledger assigned {len(numbers)} numbers",
            extra={"user": user, "record_id": purchase_id},
        )
        return RegistrationResult(
            success=True,
            external_purchase_id=str(body["purchaseId"]) if body.get("purchaseId") is not None else None,
            assigned_numbers=numbers,
            total_numbers=int(total) if total is not None else len(numbers),
            user=body.get("user"),
        )
