from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import os
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Iterable
from urllib.parse import quote

import httpx
from pydantic import TypeAdapter, ValidationError

from .errors import (
    CoinbaseConfigError,
    CoinbaseDecodeError,
    CoinbaseNetworkError,
    CoinbaseStatusError,
)
from .models import ErrorMessage

logger = logging.getLogger(__name__)

PRODUCTION_URL = "https://api.pro.coinbase.com"
SANDBOX_URL = "https://api-public.sandbox.pro.coinbase.com"

# how much of a response body is kept on errors
_BODY_SNIPPET = 300


@dataclass(frozen=True)
class CoinbaseConfig:
    base_url: str = PRODUCTION_URL
    user_agent: str = "coinbase-client"


@dataclass(frozen=True)
class Credentials:
    key: str
    secret: str = field(repr=False)  # base64, as issued by the exchange
    passphrase: str = field(repr=False)

    @classmethod
    def from_env(cls, prefix: str = "CB_API_") -> Credentials:
        values = {}
        for name in ("key", "secret", "passphrase"):
            var = f"{prefix}{name.upper()}"
            value = os.environ.get(var)
            if not value:
                raise CoinbaseConfigError(f"Missing environment variable {var}")
            values[name] = value
        return cls(**values)


def build_query(pairs: Iterable[tuple[str, Any]]) -> str:
    """
    Render ``(key, value)`` pairs as a query string.

    Pairs whose value is None are skipped; the result is prefixed with a
    single ``?`` and is empty when nothing is left.
    """
    parts = [f"{k}={quote(str(v), safe='')}" for k, v in pairs if v is not None]
    if not parts:
        return ""
    return "?" + "&".join(parts)


def path_segment(value: Any) -> str:
    """Percent-encode one path segment so the signed path is the path sent."""
    return quote(str(value), safe="")


@lru_cache(maxsize=None)
def _adapter(model: Any) -> TypeAdapter:
    return TypeAdapter(model)


def _check_header_value(name: str, value: str) -> bytes:
    # HTAB and obs-text are legal in field values, CR/LF/NUL and other controls are not
    if not value or any((ord(ch) < 0x20 and ch != "\t") or ord(ch) == 0x7F for ch in value):
        raise CoinbaseConfigError(f"Invalid characters in {name} header value")
    try:
        return value.encode("latin-1")
    except UnicodeEncodeError as e:
        raise CoinbaseConfigError(f"{name} header value is not latin-1 text", cause=e) from e


class BaseClient:
    """
    Signed request pipeline shared by every endpoint.

    Signature:
      prehash = timestamp + method + path + body   (body omitted when absent)
      sign    = base64(HMAC-SHA256(base64decode(secret), prehash))

    Headers:
      User-Agent, CB-ACCESS-KEY, CB-ACCESS-SIGN, CB-ACCESS-TIMESTAMP, CB-ACCESS-PASSPHRASE
    """

    def __init__(
        self,
        credentials: Credentials,
        config: CoinbaseConfig = CoinbaseConfig(),
        *,
        session: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        self.credentials = credentials
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self._owns_session = session is None
        self.session = session or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_session:
            await self.session.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ---------- canonicalization + signing ----------
    def _timestamp(self) -> str:
        return str(int(time.time()))

    def _compact_json(self, body: Any) -> str:
        # the text signed must be byte-identical to the text sent
        return json.dumps(body, separators=(",", ":"), ensure_ascii=False)

    def sign_message(self, path: str, body: str | None, timestamp: str, method: str) -> str:
        prehash = f"{timestamp}{method}{path}"
        if body is not None:
            prehash += body

        try:
            key = base64.b64decode(self.credentials.secret, validate=True)
        except (binascii.Error, ValueError) as e:
            raise CoinbaseConfigError("Unable to decode secret, it must be base64", cause=e) from e

        digest = hmac.new(key, prehash.encode("utf-8"), hashlib.sha256).digest()
        return base64.b64encode(digest).decode("ascii")

    def _access_headers(self, path: str, body: str | None, method: str) -> dict[str, str | bytes]:
        timestamp = self._timestamp()
        signature = self.sign_message(path, body, timestamp, method)

        headers: dict[str, str | bytes] = {
            "User-Agent": _check_header_value("User-Agent", self.config.user_agent),
            "CB-ACCESS-KEY": _check_header_value("CB-ACCESS-KEY", self.credentials.key),
            "CB-ACCESS-SIGN": signature,
            "CB-ACCESS-TIMESTAMP": timestamp,
            "CB-ACCESS-PASSPHRASE": _check_header_value("CB-ACCESS-PASSPHRASE", self.credentials.passphrase),
        }
        if body is not None:
            headers["Content-Type"] = "application/json"
        return headers

    # ---------- request core ----------
    async def _send(self, method: str, path: str, body: str | None = None) -> httpx.Response:
        url = f"{self.base_url}{path}"
        headers = self._access_headers(path, body, method)

        logger.debug("%s %s", method, path)
        try:
            return await self.session.request(
                method,
                url,
                headers=headers,
                content=body.encode("utf-8") if body is not None else None,
            )
        except httpx.TimeoutException as e:
            logger.error("%s %s timed out", method, path)
            raise CoinbaseNetworkError(f"Timeout calling {url}", cause=e) from e
        except httpx.RequestError as e:
            logger.error("%s %s network error: %s", method, path, e)
            raise CoinbaseNetworkError(f"Network error calling {url}: {e}", cause=e) from e

    async def _get(self, path: str, model: Any = None) -> Any:
        response = await self._send("GET", path)
        return self._decode_response(response, model)

    async def _post_raw(self, path: str, body: Any = None) -> httpx.Response:
        """POST without decoding, for callers that inspect the status themselves."""
        body_str = None if body is None else self._compact_json(body)
        return await self._send("POST", path, body_str)

    async def _post(self, path: str, body: Any = None, model: Any = None) -> Any:
        response = await self._post_raw(path, body)
        return self._decode_response(response, model)

    async def _delete(self, path: str, model: Any = None) -> Any:
        response = await self._send("DELETE", path)
        return self._decode_response(response, model)

    # ---------- response decoding ----------
    def _request_info(self, response: httpx.Response) -> dict[str, Any]:
        request = response.request
        return {
            "method": request.method,
            "path": request.url.raw_path.decode("ascii"),
            "body": (response.text or "")[:_BODY_SNIPPET],
        }

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return

        info = self._request_info(response)
        try:
            error = _adapter(ErrorMessage).validate_json(response.content)
        except ValidationError as e:
            logger.error("%s %s HTTP %d with undecodable error body", info["method"], info["path"], response.status_code)
            raise CoinbaseDecodeError(
                response.status_code,
                f"Invalid error payload: {e}",
                source="error",
                cause=e,
                **info,
            ) from e

        logger.error("%s %s HTTP %d: %s", info["method"], info["path"], response.status_code, error.message)
        raise CoinbaseStatusError(response.status_code, error.message, **info)

    def _decode_response(self, response: httpx.Response, model: Any = None) -> Any:
        """
        Decode a response into ``model`` (a pydantic model or any type
        ``TypeAdapter`` accepts, e.g. ``list[Account]``); plain JSON when None.
        """
        self._raise_for_status(response)

        try:
            if model is None:
                return response.json()
            return _adapter(model).validate_json(response.content)
        except (ValidationError, ValueError) as e:
            info = self._request_info(response)
            logger.error("%s %s response did not match expected shape: %s", info["method"], info["path"], e)
            raise CoinbaseDecodeError(
                response.status_code,
                f"Invalid response body: {e}",
                source="response",
                cause=e,
                **info,
            ) from e
