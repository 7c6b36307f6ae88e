from __future__ import annotations

"""
Async HTTP JSON-RPC 2.0 transport.

- Built on httpx.AsyncClient; one instance per endpoint, reused across calls.
- Transport failures (timeouts, connection errors, HTTP 429/502/503/504) are
  retried with exponential backoff and full jitter, then surfaced as
  `Transient` carrying the attempt count.
- JSON-RPC error objects are classified by `errors.from_jsonrpc_error`:
  rate-limit / unavailable codes become `Transient` and share the retry
  budget; everything else is `Rejected` and never retried.

Example:
    from zkrollup_sdk.rpc.http import RpcTransport
    async with RpcTransport("http://localhost:3030") as rpc:
        info = await rpc.request("account_info", ["0x..."])
"""

import json
import logging
import time
from dataclasses import dataclass, field
from itertools import count
from typing import (Any, Dict, Iterator, List, Mapping, Optional, Sequence,
                    Tuple, Union)

import httpx

from ..config import ClientConfig
from ..errors import (JsonRpcCode, Rejected, RpcError, Transient,
                      from_jsonrpc_error)
from ..utils.clock import Clock, SystemClock
from ..utils.retry import aretry_call
from ..version import user_agent

log = logging.getLogger(__name__)

JSON = Union[dict, list, str, int, float, bool, None]
Params = Union[Sequence[Any], Mapping[str, Any], None]
Payload = Union[Dict[str, Any], List[Dict[str, Any]]]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _is_retriable_http(status: int) -> bool:
    # Typical transient HTTP statuses: 429/502/503/504
    return status in (429, 502, 503, 504)


def _method_of(payload: Payload) -> str:
    if isinstance(payload, list):
        return "batch"
    return str(payload.get("method"))


@dataclass
class RpcTransport:
    """Asynchronous JSON-RPC 2.0 client over HTTP."""

    url: str
    timeout: float = 10.0
    max_retries: int = 3
    backoff_base: float = 0.25
    backoff_max: float = 5.0
    headers: Optional[Mapping[str, str]] = None
    clock: Optional[Clock] = None
    client: Optional[httpx.AsyncClient] = None
    _id_counter: Iterator[int] = field(default_factory=lambda: count(start=_now_ms()))
    _owns_client: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        merged_headers: Dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": user_agent(),
        }
        if self.headers:
            merged_headers.update(dict(self.headers))
        if self.clock is None:
            self.clock = SystemClock()
        if self.client is None:
            self.client = httpx.AsyncClient(timeout=self.timeout, headers=merged_headers)
            self._owns_client = True

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        *,
        url: Optional[str] = None,
        clock: Optional[Clock] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "RpcTransport":
        return cls(
            url=url or config.rpc_url,
            timeout=config.request_timeout,
            max_retries=config.max_retries,
            backoff_base=config.backoff_base,
            backoff_max=config.backoff_max,
            headers=config.http_headers(),
            clock=clock,
            client=client,
        )

    # --- context manager -------------------------------------------------

    async def __aenter__(self) -> "RpcTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client and self.client is not None:
            await self.client.aclose()

    # --- public API ------------------------------------------------------

    async def request(self, method: str, params: Params = None) -> JSON:
        """Perform a single JSON-RPC request and return `result`, or raise Transient/Rejected."""
        payload = self._make_payload(method, params)
        return await self._send_with_retries(payload)

    async def batch(self, calls: Sequence[Tuple[str, Params]]) -> List[JSON]:
        """
        Perform a JSON-RPC batch; returns results in the same order as `calls`.
        The first error item is raised.
        """
        batch_payload = [self._make_payload(method, params) for method, params in calls]
        resp = await self._send_with_retries(batch_payload)
        if not isinstance(resp, list):
            raise Rejected(
                method="batch",
                code=JsonRpcCode.MALFORMED_RESPONSE,
                message="invalid batch response (not a list)",
                data=resp,
            )
        by_id: Dict[Any, Dict[str, Any]] = {}
        for item in resp:
            if not isinstance(item, dict) or "id" not in item:
                raise Rejected(
                    method="batch",
                    code=JsonRpcCode.MALFORMED_RESPONSE,
                    message="malformed item in batch response",
                    data=item,
                )
            by_id[item["id"]] = item
        out: List[JSON] = []
        for p in batch_payload:
            item = by_id.get(p["id"])
            if item is None:
                raise Rejected(
                    method=p["method"],
                    code=JsonRpcCode.MALFORMED_RESPONSE,
                    message=f"missing result for id {p['id']}",
                    request_id=p["id"],
                )
            out.append(self._unwrap(item, p))
        return out

    # --- internals -------------------------------------------------------

    def _make_payload(self, method: str, params: Params) -> Dict[str, Any]:
        if params is None:
            params = []
        elif isinstance(params, Mapping):
            params = dict(params)
        elif isinstance(params, Sequence) and not isinstance(params, (str, bytes, bytearray)):
            params = list(params)
        else:
            params = [params]  # type: ignore[list-item]
        return {"jsonrpc": "2.0", "id": next(self._id_counter), "method": method, "params": params}

    def _unwrap(self, resp: Any, payload: Dict[str, Any]) -> JSON:
        method, rid = payload["method"], payload["id"]
        if not isinstance(resp, dict):
            raise Rejected(
                method=method,
                code=JsonRpcCode.MALFORMED_RESPONSE,
                message="invalid JSON-RPC response type",
                data=type(resp).__name__,
                request_id=rid,
            )
        if resp.get("error") is not None:
            raise from_jsonrpc_error(resp["error"] or {}, method=method, request_id=rid)
        if "result" not in resp:
            raise Rejected(
                method=method,
                code=JsonRpcCode.MALFORMED_RESPONSE,
                message="malformed JSON-RPC response",
                data=resp,
                request_id=rid,
            )
        return resp["result"]

    async def _send_with_retries(self, payload: Payload) -> JSON:
        attempts = 0

        async def once() -> JSON:
            nonlocal attempts
            attempts += 1
            resp = await self._send_once(payload)
            if isinstance(payload, dict):
                return self._unwrap(resp, payload)
            return resp

        def on_retry(attempt: int, exc: BaseException, delay: float) -> None:
            log.warning("%s failed (%s); retry %d/%d in %.2fs", _method_of(payload), exc, attempt, self.max_retries, delay)

        try:
            return await aretry_call(
                once,
                retries=self.max_retries,
                base=self.backoff_base,
                max_delay=self.backoff_max,
                jitter="full",
                exceptions=Transient,
                on_retry=on_retry,
                clock=self.clock,
                reraise=True,
            )
        except Transient as e:
            e.attempts = attempts
            raise

    async def _send_once(self, payload: Payload) -> JSON:
        method = _method_of(payload)
        rid = payload.get("id") if isinstance(payload, dict) else None
        body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
        log.debug("-> %s %s id=%s", self.url, method, rid)
        try:
            r = await self.client.post(self.url, content=body)
        except httpx.TransportError as e:
            # Timeouts, connection refused/reset, protocol errors.
            raise Transient(
                method=method,
                code=JsonRpcCode.TRANSPORT_ERROR,
                message=f"network error: {e.__class__.__name__}",
                data=str(e),
                request_id=rid,
            ) from e
        if _is_retriable_http(r.status_code):
            code = JsonRpcCode.RATE_LIMITED if r.status_code == 429 else JsonRpcCode.SERVICE_UNAVAILABLE
            raise Transient(
                method=method,
                code=code,
                message=f"HTTP {r.status_code}",
                data=r.text[:256],
                request_id=rid,
                http_status=r.status_code,
            )
        try:
            resp = r.json()
        except ValueError as e:
            raise Rejected(
                method=method,
                code=JsonRpcCode.MALFORMED_RESPONSE,
                message="non-JSON response from RPC",
                data=f"HTTP {r.status_code}: {r.text[:256]}",
                request_id=rid,
                http_status=r.status_code,
            ) from e
        if r.status_code >= 400 and not (isinstance(resp, dict) and resp.get("error")):
            raise Rejected(
                method=method,
                code=JsonRpcCode.INTERNAL_ERROR,
                message=f"HTTP {r.status_code}",
                data=resp,
                request_id=rid,
                http_status=r.status_code,
            )
        log.debug("<- %s id=%s http=%d", method, rid, r.status_code)
        return resp


__all__ = ["RpcTransport", "RpcError", "JSON", "Params"]
