"""
Supplier API client (gift cards).

Thin HTTP wrapper over the supplier's REST API using `requests`:

- OAuth2 client-credentials token, cached in-process until shortly before
  it expires
- Versioned Accept header on every call
- Transport-level retries for idempotent GETs only (a retried POST /orders
  would buy a second card)
- Non-2xx responses become SupplierError carrying status, body and code

Only response *shapes* matter to the rest of the system; paths and headers
stay inside this module.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Mapping, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config.settings import SupplierSettings, get_settings
from domain.errors import ProcessingError, SupplierError, SupplierTransportError
from domain.product import GiftCardProduct

logger = logging.getLogger(__name__)

# Refresh tokens this many seconds before the supplier says they expire.
_TOKEN_EXPIRY_BUFFER_SECONDS = 300
_TOKEN_MIN_TTL_SECONDS = 60


def _build_session() -> requests.Session:
    retry = Retry(
        total=2,
        connect=2,
        read=2,
        status=0,
        backoff_factor=1.0,
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def _json_body(response: Any) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {"data": body}


def _is_ok(response: Any) -> bool:
    return 200 <= int(response.status_code) < 300


class SupplierClient:
    """Supplier gift card API. One instance is safe to share across threads."""

    def __init__(
        self,
        settings: SupplierSettings,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._session = session or _build_session()
        self._clock = clock
        self._token: Optional[str] = None
        self._token_expires_at: float = 0.0
        self._token_lock = threading.Lock()

    @property
    def settings(self) -> SupplierSettings:
        return self._settings

    # -------------------- auth --------------------

    def _access_token(self) -> str:
        with self._token_lock:
            if self._token and self._clock() < self._token_expires_at:
                return self._token

            if not self._settings.has_credentials:
                raise SupplierError(
                    "Missing supplier credentials. Set SUPPLIER_CLIENT_ID and SUPPLIER_CLIENT_SECRET.",
                    code="MISSING_CREDENTIALS",
                    status=500,
                )

            try:
                response = self._session.request(
                    "POST",
                    self._settings.auth_url,
                    json={
                        "client_id": self._settings.client_id,
                        "client_secret": self._settings.client_secret,
                        "grant_type": "client_credentials",
                        "audience": self._settings.base_url,
                    },
                    headers={"Content-Type": "application/json"},
                    timeout=self._settings.request_timeout_seconds,
                )
            except requests.RequestException as exc:
                logger.error("Supplier token request failed", extra={"error": str(exc)})
                raise SupplierTransportError(
                    "Supplier token fetch failed",
                    code="TOKEN_ERROR",
                    status=500,
                    details={"originalError": str(exc)},
                ) from exc
            body = _json_body(response)
            if not _is_ok(response) or not body.get("access_token"):
                raise SupplierError(
                    f"Supplier token fetch failed: {response.status_code}",
                    code="TOKEN_ERROR",
                    status=int(response.status_code),
                    details=body,
                )

            expires_in = int(body.get("expires_in") or 3600)
            ttl = max(expires_in - _TOKEN_EXPIRY_BUFFER_SECONDS, _TOKEN_MIN_TTL_SECONDS)
            self._token = str(body["access_token"])
            self._token_expires_at = self._clock() + ttl
            return self._token

    def _invalidate_token(self) -> None:
        with self._token_lock:
            self._token = None
            self._token_expires_at = 0.0

    def _request(self, method: str, path: str, payload: Optional[Mapping[str, Any]] = None) -> Any:
        headers = {
            "Authorization": f"Bearer {self._access_token()}",
            "Accept": self._settings.api_version,
        }
        if payload is not None:
            headers["Content-Type"] = "application/json"

        response = self._session.request(
            method,
            f"{self._settings.base_url}{path}",
            json=dict(payload) if payload is not None else None,
            headers=headers,
            timeout=self._settings.request_timeout_seconds,
        )
        if int(response.status_code) == 401:
            self._invalidate_token()
        return response

    # -------------------- endpoints --------------------

    def get_product(self, product_id: str) -> Optional[GiftCardProduct]:
        """Fetch a product; None if the supplier does not know it."""

        response = self._request("GET", f"/products/{product_id}")
        body = _json_body(response)
        if int(response.status_code) == 404:
            return None
        if not _is_ok(response):
            raise SupplierError(
                f"Failed to fetch product {product_id}",
                code="PRODUCT_FETCH_ERROR",
                status=int(response.status_code),
                details=body,
            )
        return GiftCardProduct.from_supplier(body)

    def place_order(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """
        Create a supplier order. Every successful call buys a card.

        Raises:
            SupplierTransportError: the request did not complete; the supplier
                may or may not have placed the order
            SupplierError: non-2xx response
        """

        try:
            response = self._request("POST", "/orders", payload)
        except requests.RequestException as exc:
            logger.error(
                "Supplier order request failed; purchase outcome unknown",
                extra={"custom_identifier": payload.get("customIdentifier"), "error": str(exc)},
            )
            raise SupplierTransportError(
                "Failed to order gift card",
                code="ORDER_ERROR",
                status=500,
                details={"originalError": str(exc)},
            ) from exc
        body = _json_body(response)
        if not _is_ok(response):
            raise SupplierError(
                str(body.get("message") or "Failed to order gift card"),
                code=str(body.get("errorCode") or "ORDER_ERROR"),
                status=int(response.status_code),
                details=body,
            )
        return body

    def get_card(self, transaction_id: str) -> dict[str, Any]:
        """
        Fetch the card issued for a supplier transaction.

        Raises:
            ProcessingError: 404, the order is still being processed
            SupplierError: any other non-2xx response
        """

        response = self._request("GET", f"/orders/transactions/{transaction_id}/cards")
        body = _json_body(response)
        status = int(response.status_code)
        if status == 404:
            raise ProcessingError("Order is still processing", details=body)
        if not _is_ok(response):
            raise SupplierError(
                "Unauthorized" if status == 401 else "Failed to fetch gift card details",
                code="CARD_FETCH_ERROR",
                status=status,
                details=body,
            )
        # Some supplier versions answer with a list of cards.
        data = body.get("data") if "data" in body and len(body) == 1 else None
        if isinstance(data, list):
            return data[0] if data else {}
        return body

    def get_redeem_instructions(self, product_id: str) -> Optional[str]:
        """Per-product redeem instructions; None when absent or on non-2xx."""

        response = self._request("GET", f"/redeem-instructions/{product_id}")
        if not _is_ok(response):
            return None
        content = _json_body(response).get("content")
        return str(content) if content else None

    def get_balance(self) -> dict[str, Any]:
        response = self._request("GET", "/accounts/balance")
        body = _json_body(response)
        if not _is_ok(response):
            raise SupplierError(
                f"Balance fetch failed: {response.status_code}",
                code="BALANCE_FETCH_ERROR",
                status=int(response.status_code),
                details=body,
            )
        return body


_default_client: Optional[SupplierClient] = None
_default_lock = threading.Lock()


def get_supplier_client() -> SupplierClient:
    """Process-wide client built from settings."""

    global _default_client
    if _default_client is None:
        with _default_lock:
            if _default_client is None:
                _default_client = SupplierClient(get_settings().supplier)
    return _default_client


__all__ = ["SupplierClient", "get_supplier_client"]
