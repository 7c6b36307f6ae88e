"""
SDK configuration: operator/L1 endpoints, retry/timeouts, signing policy and
default polling behaviour.

- Loads sane defaults and supports overrides via environment variables (ZKROLLUP_*).
- Provides helpers for building HTTP headers and validating endpoints.
- There is no process-wide default instance: build a ClientConfig and pass it
  to the components that need it.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Optional

from .types.core import L1AuthPolicy
from .version import user_agent as _default_user_agent

_DEFAULT_RPC = "http://127.0.0.1:3030"
_DEFAULT_L1_RPC = "http://127.0.0.1:8545"

_HEX_RE = re.compile(r"^0x[0-9a-fA-F]+$")


def _parse_chain_id(val: Any, default: int = 9) -> int:
    """
    Accepts int, decimal str, or 0x-hex str and returns int.
    """
    if val is None or val == "":
        return int(default)
    if isinstance(val, int):
        return val
    s = str(val).strip()
    if _HEX_RE.match(s):
        return int(s, 16)
    return int(s, 10)


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    return v if v is not None else default


def _ensure_scheme(url: Optional[str], allowed: tuple[str, ...]) -> Optional[str]:
    if not url:
        return url
    lower = url.lower()
    if not any(lower.startswith(f"{sch}://") for sch in allowed):
        raise ValueError(f"URL must start with {allowed}, got: {url!r}")
    return url


@dataclass(frozen=True)
class PollConfig:
    """
    Polling schedule for confirmation and priority-operation waits.

    Delay before poll k (k >= 1) is min(interval * backoff**(k-1), max_interval).
    Waiting stops with Timeout when `max_wait` seconds elapsed or, if set,
    `max_polls` status queries were made.
    """

    interval: float = 1.0
    backoff: float = 1.5
    max_interval: float = 10.0
    max_wait: float = 300.0
    max_polls: Optional[int] = None

    def __post_init__(self) -> None:
        if self.interval <= 0:
            raise ValueError("interval must be positive")
        if self.backoff < 1.0:
            raise ValueError("backoff multiplier must be >= 1.0")
        if self.max_wait < 0:
            raise ValueError("max_wait must be non-negative")
        if self.max_polls is not None and self.max_polls < 1:
            raise ValueError("max_polls must be >= 1")

    def delay(self, poll_index: int) -> float:
        """Delay to sleep after the `poll_index`-th poll (1-based)."""
        return min(self.interval * (self.backoff ** max(poll_index - 1, 0)), self.max_interval)


@dataclass(slots=True)
class ClientConfig:
    # Operator (L2) endpoint
    rpc_url: str = field(default_factory=lambda: _DEFAULT_RPC)
    # Base chain (L1) endpoint and rollup contract, for priority operations
    l1_rpc_url: Optional[str] = None
    contract_address: Optional[str] = None
    chain_id: int = field(default_factory=lambda: _parse_chain_id(None))
    # HTTP behaviour
    request_timeout: float = 10.0
    max_retries: int = 3
    backoff_base: float = 0.25
    backoff_max: float = 5.0
    # Signing / fees / waits
    l1_auth_policy: L1AuthPolicy = L1AuthPolicy.UNREGISTERED_ACCOUNT
    fee_tolerance: float = 0.0
    poll: PollConfig = field(default_factory=PollConfig)
    # Headers / identity
    user_agent: str = field(default_factory=_default_user_agent)

    @classmethod
    def from_env(cls, prefix: str = "ZKROLLUP_") -> "ClientConfig":
        """
        Create config from environment variables:

        ZKROLLUP_RPC_URL            (http/https) operator endpoint
        ZKROLLUP_L1_RPC_URL         (http/https) base-chain endpoint, optional
        ZKROLLUP_CONTRACT           rollup contract address on L1, optional
        ZKROLLUP_CHAIN_ID           (int or 0x-hex)
        ZKROLLUP_TIMEOUT            (float seconds, HTTP)
        ZKROLLUP_MAX_RETRIES        (int)
        ZKROLLUP_BACKOFF            (float seconds, first retry delay cap)
        ZKROLLUP_BACKOFF_MAX        (float seconds)
        ZKROLLUP_L1_AUTH            (key_registration|unregistered_account|always)
        ZKROLLUP_FEE_TOLERANCE      (float, e.g. 0.05 for +5%)
        ZKROLLUP_POLL_INTERVAL      (float seconds)
        ZKROLLUP_POLL_MAX_WAIT      (float seconds)
        ZKROLLUP_USER_AGENT         (str)
        """
        rpc = _env(f"{prefix}RPC_URL", _DEFAULT_RPC)
        l1_rpc = _env(f"{prefix}L1_RPC_URL", None)
        _ensure_scheme(rpc, ("http", "https"))
        _ensure_scheme(l1_rpc, ("http", "https"))

        poll = PollConfig(
            interval=float(_env(f"{prefix}POLL_INTERVAL", "1.0")),
            max_wait=float(_env(f"{prefix}POLL_MAX_WAIT", "300.0")),
        )
        return cls(
            rpc_url=rpc or _DEFAULT_RPC,
            l1_rpc_url=l1_rpc,
            contract_address=_env(f"{prefix}CONTRACT", None),
            chain_id=_parse_chain_id(_env(f"{prefix}CHAIN_ID", None)),
            request_timeout=float(_env(f"{prefix}TIMEOUT", "10.0")),
            max_retries=int(_env(f"{prefix}MAX_RETRIES", "3")),
            backoff_base=float(_env(f"{prefix}BACKOFF", "0.25")),
            backoff_max=float(_env(f"{prefix}BACKOFF_MAX", "5.0")),
            l1_auth_policy=L1AuthPolicy(
                _env(f"{prefix}L1_AUTH", L1AuthPolicy.UNREGISTERED_ACCOUNT.value)
            ),
            fee_tolerance=float(_env(f"{prefix}FEE_TOLERANCE", "0.0")),
            poll=poll,
            user_agent=_env(f"{prefix}USER_AGENT", None) or _default_user_agent(),
        )

    def with_overrides(self, **overrides: Any) -> "ClientConfig":
        """
        Copy of this config with keyword overrides applied.
        Unknown keys are ignored.
        """
        known = {f.name for f in fields(self)}
        data = {k: v for k, v in overrides.items() if k in known}
        if "chain_id" in data:
            data["chain_id"] = _parse_chain_id(data["chain_id"], self.chain_id)
        if "rpc_url" in data:
            _ensure_scheme(data["rpc_url"], ("http", "https"))
        if "l1_rpc_url" in data:
            _ensure_scheme(data["l1_rpc_url"], ("http", "https"))
        if "l1_auth_policy" in data:
            data["l1_auth_policy"] = L1AuthPolicy(data["l1_auth_policy"])
        return replace(self, **data)

    def http_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rpc_url": self.rpc_url,
            "l1_rpc_url": self.l1_rpc_url,
            "contract_address": self.contract_address,
            "chain_id": int(self.chain_id),
            "request_timeout": float(self.request_timeout),
            "max_retries": int(self.max_retries),
            "backoff_base": float(self.backoff_base),
            "backoff_max": float(self.backoff_max),
            "l1_auth_policy": self.l1_auth_policy.value,
            "fee_tolerance": float(self.fee_tolerance),
            "poll": {
                "interval": self.poll.interval,
                "backoff": self.poll.backoff,
                "max_interval": self.poll.max_interval,
                "max_wait": self.poll.max_wait,
                "max_polls": self.poll.max_polls,
            },
            "user_agent": self.user_agent,
        }


__all__ = ["ClientConfig", "PollConfig"]
