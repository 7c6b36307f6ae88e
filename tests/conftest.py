import asyncio
import inspect
import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest
import respx

from zkrollup_sdk.tx.encode import tx_hash
from zkrollup_sdk.types.core import (AccountState, FeeEstimate,
                                     PriorityOpReceipt, Token, TxReceipt)
from zkrollup_sdk.utils.clock import VirtualClock
from zkrollup_sdk.wallet.eth import LocalL1Signer
from zkrollup_sdk.wallet.signer import create_signer_from_seed

RPC_URL = "http://operator.test/rpc"
ADDR_A = "0x" + "11" * 20
ADDR_B = "0x" + "22" * 20
L1_PRIVATE_KEY = "0x" + "42" * 32


def pytest_configure(config):
    # Register common markers used across the repo without requiring external plugins.
    config.addinivalue_line(
        "markers", "asyncio: mark test as requiring asyncio event loop"
    )


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):
    """
    Provide a minimal asyncio runner for tests marked with @pytest.mark.asyncio when
    pytest-asyncio isn't available in the environment.
    """
    if pyfuncitem.get_closest_marker("asyncio") is None:
        return None

    test_func = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_func):
        # Only pass fixtures that correspond to the function signature.
        argnames = getattr(pyfuncitem, "_fixtureinfo", None)
        wanted = set(getattr(argnames, "argnames", []) or [])
        kwargs = {k: v for k, v in pyfuncitem.funcargs.items() if k in wanted}
        asyncio.run(test_func(**kwargs))
        return True
    return None


# -----------------------------------------------------------------------------
# Fakes
# -----------------------------------------------------------------------------


def _next(script: List[Any]) -> Any:
    """Pop the next scripted value; the last one repeats. Exceptions are raised."""
    value = script.pop(0) if len(script) > 1 else script[0]
    if isinstance(value, BaseException):
        raise value
    return value


class FakeOperator:
    """
    In-memory stand-in for OperatorClient, scripted per method.
    Every call is recorded in `calls` as (method, args).
    """

    def __init__(self, clock: Optional[VirtualClock] = None) -> None:
        self.clock = clock or VirtualClock()
        self.calls: List[Tuple[str, Any]] = []
        self.accounts: Dict[str, List[Any]] = {}
        self.statuses: Dict[str, List[Any]] = {}
        self.fees: List[Any] = []
        self.priority: Dict[int, List[Any]] = {}
        self.submit_results: List[Any] = []
        self.submitted: List[Any] = []
        self.token_map: Dict[int, Token] = {0: Token(id=0, symbol="ETH", decimals=18)}

    def set_account(self, address: str, *states: Any) -> None:
        self.accounts[address.lower()] = list(states)

    async def get_account_state(self, address: str) -> AccountState:
        self.calls.append(("account_info", address))
        script = self.accounts.get(address.lower())
        if not script:
            return AccountState(address=address, account_id=None, nonce=0)
        return _next(script)

    async def submit(self, tx, bundle) -> str:
        self.calls.append(("tx_submit", tx.nonce))
        if self.submit_results:
            _next(self.submit_results)
        self.submitted.append((tx, bundle))
        return tx_hash(tx)

    async def get_status(self, tx_id: str) -> TxReceipt:
        self.calls.append(("tx_info", tx_id))
        value = _next(self.statuses[tx_id])
        if isinstance(value, TxReceipt):
            return value
        return TxReceipt.from_rpc_dict(tx_id, value)

    async def estimate_fee(self, t, address, token, *, fast: bool = False) -> FeeEstimate:
        self.calls.append(("get_tx_fee", (t, address, token, fast)))
        value = _next(self.fees)
        if isinstance(value, int):
            return FeeEstimate(
                fee_type=t.wire_name,
                token=str(token),
                gas_tx_amount=0,
                gas_price_wei=0,
                gas_fee=value,
                zkp_fee=0,
                total_fee=value,
            )
        return value

    async def get_priority_op_status(self, serial_id: int) -> PriorityOpReceipt:
        self.calls.append(("ethop_info", serial_id))
        return PriorityOpReceipt.from_rpc_dict(serial_id, _next(self.priority[serial_id]))

    async def tokens(self) -> Dict[int, Token]:
        self.calls.append(("tokens", None))
        return dict(self.token_map)

    def count(self, method: str) -> int:
        return sum(1 for m, _ in self.calls if m == method)


class RpcFault(Exception):
    """Raised by an RpcStub handler to answer with a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = int(code)
        self.message = message
        self.data = data


class RpcStub:
    """
    JSON-RPC 2.0 server behind respx. Handlers are registered per method and
    receive the request params; single and batch requests are both served.
    """

    def __init__(self) -> None:
        self.handlers: Dict[str, Callable[[Any], Any]] = {}
        self.calls: List[Tuple[str, Any]] = []

    def on(self, method: str, result: Any = None) -> None:
        self.handlers[method] = lambda params: result

    def on_seq(self, method: str, *results: Any) -> None:
        script = list(results)
        self.handlers[method] = lambda params: _next(script)

    def on_call(self, method: str, fn: Callable[[Any], Any]) -> None:
        self.handlers[method] = fn

    def params_of(self, method: str) -> List[Any]:
        return [p for m, p in self.calls if m == method]

    def _answer(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        method, rid = payload["method"], payload["id"]
        self.calls.append((method, payload.get("params")))
        handler = self.handlers.get(method)
        if handler is None:
            return {"jsonrpc": "2.0", "id": rid, "error": {"code": -32601, "message": f"method not found: {method}"}}
        try:
            result = handler(payload.get("params"))
        except RpcFault as f:
            err = {"code": f.code, "message": f.message}
            if f.data is not None:
                err["data"] = f.data
            return {"jsonrpc": "2.0", "id": rid, "error": err}
        return {"jsonrpc": "2.0", "id": rid, "result": result}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        if isinstance(payload, list):
            return httpx.Response(200, json=[self._answer(p) for p in payload])
        return httpx.Response(200, json=self._answer(payload))


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock()


@pytest.fixture
def operator(clock) -> FakeOperator:
    return FakeOperator(clock)


@pytest.fixture
def rpc_stub():
    stub = RpcStub()
    with respx.mock(assert_all_called=False) as router:
        router.post(RPC_URL).mock(side_effect=stub)
        yield stub


@pytest.fixture
def rollup_key():
    return create_signer_from_seed(b"zkrollup-sdk test seed")


@pytest.fixture
def l1_signer():
    return LocalL1Signer(L1_PRIVATE_KEY)
