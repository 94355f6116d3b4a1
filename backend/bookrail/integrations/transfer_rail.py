"""
Transfer rail: ACH credits to provider bank accounts.

The production adapter is a thin httpx client for the Plaid Transfer API.
A credit is two calls: an authorization, then the transfer itself. Both carry
the caller's idempotency key, so a retried settlement never moves money twice.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
import json
import logging
import time
from typing import Any, Dict, List, Optional, Protocol, cast
from uuid import uuid4

import httpx
from pydantic import SecretStr

from ..core.exceptions import RailError, RailRejectedException, RailTransientException
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

RAIL_NAME = "transfer"

# Plaid caps the transfer description at 15 characters
MAX_DESCRIPTION_LENGTH = 15

TRANSIENT_ERROR_TYPES = {"RATE_LIMIT_EXCEEDED", "API_ERROR", "INSTITUTION_ERROR"}
PAYOUT_ACCOUNT_SUBTYPES = {"checking", "savings"}


@dataclass(frozen=True)
class PayoutAccount:
    """A provider's linked, verified bank account."""

    access_token: str
    account_id: str
    legal_name: str


@dataclass(frozen=True)
class BankAccount:
    account_id: str
    name: str
    type: str
    subtype: Optional[str] = None
    mask: Optional[str] = None

    @property
    def is_payout_eligible(self) -> bool:
        """ACH credits go to depository checking or savings accounts only."""
        return self.type == "depository" and self.subtype in PAYOUT_ACCOUNT_SUBTYPES


@dataclass(frozen=True)
class LinkedItem:
    access_token: str
    item_id: str


@dataclass
class TransferResult:
    reference: str
    status: str
    authorization_id: Optional[str] = None


class TransferRail(Protocol):
    def create_link_token(self, user_id: str) -> str:
        ...

    def exchange_public_token(self, public_token: str) -> LinkedItem:
        ...

    def get_accounts(self, access_token: str) -> List[BankAccount]:
        ...

    def authorize_transfer(
        self,
        *,
        account: PayoutAccount,
        amount: Decimal,
        idempotency_key: str,
    ) -> str:
        ...

    def execute_transfer(
        self,
        *,
        account: PayoutAccount,
        authorization_id: str,
        description: str,
        idempotency_key: str,
    ) -> TransferResult:
        ...

    def get_transfer(self, reference: str) -> TransferResult:
        ...


def format_amount(amount: Decimal) -> str:
    """Plaid expects a decimal string with exactly two places."""
    return str(amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


class PlaidTransferRail:
    """Thin client for the Plaid Transfer REST API."""

    def __init__(
        self,
        *,
        client_id: str,
        secret: str | SecretStr,
        base_url: str = "https://sandbox.plaid.com",
        timeout: float = 10.0,
        client_name: str = "Bookrail",
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        secret_value = secret.get_secret_value() if isinstance(secret, SecretStr) else secret
        if not client_id or not secret_value:
            raise ValueError("Plaid client id and secret must be provided")

        self._client_id = client_id
        self._secret = secret_value
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client_name = client_name

    # Account linking

    def create_link_token(self, user_id: str) -> str:
        """Create a Link token the provider's browser uses to open Plaid Link."""
        response = self.request(
            "/link/token/create",
            {
                "user": {"client_user_id": user_id},
                "client_name": self._client_name,
                "products": ["auth", "transfer"],
                "country_codes": ["US"],
                "language": "en",
            },
        )
        return cast(str, response["link_token"])

    def exchange_public_token(self, public_token: str) -> LinkedItem:
        if not public_token:
            raise ValueError("public_token must be provided")
        response = self.request("/item/public_token/exchange", {"public_token": public_token})
        return LinkedItem(access_token=response["access_token"], item_id=response["item_id"])

    def get_accounts(self, access_token: str) -> List[BankAccount]:
        response = self.request("/accounts/get", {"access_token": access_token})
        return [
            BankAccount(
                account_id=account["account_id"],
                name=account.get("name") or "",
                type=account.get("type") or "",
                subtype=account.get("subtype"),
                mask=account.get("mask"),
            )
            for account in response.get("accounts", [])
        ]

    # Transfers

    def authorize_transfer(
        self,
        *,
        account: PayoutAccount,
        amount: Decimal,
        idempotency_key: str,
    ) -> str:
        """Request an authorization for an ACH credit; returns the authorization id."""
        authorization = self.request(
            "/transfer/authorization/create",
            {
                "access_token": account.access_token,
                "account_id": account.account_id,
                "type": "credit",
                "network": "ach",
                "amount": format_amount(amount),
                "ach_class": "ppd",
                "user": {"legal_name": account.legal_name},
                "idempotency_key": idempotency_key,
            },
        ).get("authorization", {})

        decision = authorization.get("decision")
        if decision != "approved":
            rationale = authorization.get("decision_rationale") or {}
            logger.warning(
                f"Plaid transfer authorization {decision} for {idempotency_key}: {rationale}"
            )
            raise RailRejectedException(
                rationale.get("description") or f"Transfer authorization {decision}",
                rail=RAIL_NAME,
                rail_code=rationale.get("code") or str(decision),
            )
        return cast(str, authorization["id"])

    def execute_transfer(
        self,
        *,
        account: PayoutAccount,
        authorization_id: str,
        description: str,
        idempotency_key: str,
    ) -> TransferResult:
        transfer = self.request(
            "/transfer/create",
            {
                "access_token": account.access_token,
                "account_id": account.account_id,
                "authorization_id": authorization_id,
                "description": description[:MAX_DESCRIPTION_LENGTH],
                "idempotency_key": idempotency_key,
            },
        )["transfer"]

        logger.info(f"Plaid transfer {transfer['id']} created with status {transfer.get('status')}")
        return TransferResult(
            reference=transfer["id"],
            status=transfer.get("status", "pending"),
            authorization_id=authorization_id,
        )

    def get_transfer(self, reference: str) -> TransferResult:
        if not reference:
            raise ValueError("reference must be provided")
        transfer = self.request("/transfer/get", {"transfer_id": reference})["transfer"]
        return TransferResult(reference=transfer["id"], status=transfer.get("status", "pending"))

    def request(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """POST ``body`` to ``path`` with credentials and return the parsed JSON payload."""
        url = f"{self._base_url}{path}"
        payload = {"client_id": self._client_id, "secret": self._secret, **body}
        start = time.monotonic()
        try:
            with httpx.Client(
                timeout=self._timeout,
                transport=self._transport,
                headers={"Accept": "application/json"},
            ) as client:
                response = client.post(url, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise self._map_status_error(path, exc.response) from exc
        except httpx.TimeoutException as exc:
            logger.error("Plaid request timed out for %s: %s", path, str(exc))
            raise RailTransientException(
                "Transfer rail timed out", rail=RAIL_NAME, rail_code="timeout"
            ) from exc
        except httpx.RequestError as exc:
            logger.error("Plaid request failure for %s: %s", path, str(exc))
            raise RailTransientException(
                "Failed to reach transfer rail", rail=RAIL_NAME, rail_code="network"
            ) from exc
        finally:
            prometheus_metrics.observe_rail_call("plaid", path, time.monotonic() - start)

        try:
            return cast(Dict[str, Any], response.json())
        except json.JSONDecodeError as exc:
            logger.error("Invalid JSON from Plaid for %s: %s", path, response.text[:500])
            raise RailTransientException(
                "Received malformed JSON from transfer rail", rail=RAIL_NAME
            ) from exc

    @staticmethod
    def _map_status_error(path: str, response: httpx.Response) -> RailError:
        status = response.status_code
        error_type: Optional[str] = None
        error_code: Optional[str] = None
        message = f"Transfer rail responded with status {status}"
        try:
            body = response.json()
            if isinstance(body, dict):
                error_type = body.get("error_type")
                error_code = body.get("error_code")
                message = body.get("display_message") or body.get("error_message") or message
        except json.JSONDecodeError:
            pass

        logger.error("Plaid API error %s for %s: %s", status, path, response.text[:500])
        details = {"http_status": status, "error_type": error_type}
        if status == 429 or status >= 500 or error_type in TRANSIENT_ERROR_TYPES:
            return RailTransientException(
                message, rail=RAIL_NAME, rail_code=error_code, details=details
            )
        return RailRejectedException(message, rail=RAIL_NAME, rail_code=error_code, details=details)


class FakeTransferRail:
    """In-memory transfer rail for development and tests. Honors idempotency keys."""

    def __init__(self) -> None:
        self.transfers: Dict[str, TransferResult] = {}
        self.amounts: Dict[str, Decimal] = {}
        self._by_key: Dict[str, str] = {}
        self._pending_errors: List[Exception] = []
        self._authorizations: Dict[str, str] = {}
        self._authorized_amounts: Dict[str, Decimal] = {}
        self.authorize_calls = 0
        self.execute_calls = 0
        self.items: Dict[str, LinkedItem] = {}
        self.accounts: List[BankAccount] = [
            BankAccount(
                account_id="acct_fake_checking",
                name="Fake Checking",
                type="depository",
                subtype="checking",
                mask="0000",
            )
        ]
        self._logger = logging.getLogger(self.__class__.__name__)

    def fail_next(self, exc: Exception) -> None:
        """Raise ``exc`` from the next rail call."""
        self._pending_errors.append(exc)

    def create_link_token(self, user_id: str) -> str:
        self._maybe_fail()
        return f"link-fake-{uuid4().hex[:16]}"

    def exchange_public_token(self, public_token: str) -> LinkedItem:
        self._maybe_fail()
        item = self.items.get(public_token)
        if item is None:
            item = LinkedItem(
                access_token=f"access-fake-{uuid4().hex[:16]}",
                item_id=f"item_fake_{uuid4().hex[:12]}",
            )
            self.items[public_token] = item
        return item

    def get_accounts(self, access_token: str) -> List[BankAccount]:
        self._maybe_fail()
        return list(self.accounts)

    def authorize_transfer(
        self,
        *,
        account: PayoutAccount,
        amount: Decimal,
        idempotency_key: str,
    ) -> str:
        self.authorize_calls += 1
        self._maybe_fail()
        authorization_id = self._authorizations.get(idempotency_key)
        if authorization_id is None:
            authorization_id = f"auth_fake_{uuid4().hex[:12]}"
            self._authorizations[idempotency_key] = authorization_id
            self._authorized_amounts[authorization_id] = amount
        return authorization_id

    def execute_transfer(
        self,
        *,
        account: PayoutAccount,
        authorization_id: str,
        description: str,
        idempotency_key: str,
    ) -> TransferResult:
        self.execute_calls += 1
        self._maybe_fail()
        existing = self._by_key.get(idempotency_key)
        if existing is not None:
            return self.transfers[existing]

        reference = f"tr_fake_{uuid4().hex[:24]}"
        result = TransferResult(reference=reference, status="pending", authorization_id=authorization_id)
        self.transfers[reference] = result
        self.amounts[reference] = self._authorized_amounts[authorization_id]
        self._by_key[idempotency_key] = reference
        self._logger.debug("Fake transfer created", extra={"reference": reference})
        return result

    def _maybe_fail(self) -> None:
        if self._pending_errors:
            raise self._pending_errors.pop(0)

    def get_transfer(self, reference: str) -> TransferResult:
        result = self.transfers.get(reference)
        if result is None:
            raise RailRejectedException(
                f"No such transfer: {reference}", rail=RAIL_NAME, rail_code="TRANSFER_NOT_FOUND"
            )
        return result

    @property
    def distinct_transfers(self) -> int:
        return len(self.transfers)
