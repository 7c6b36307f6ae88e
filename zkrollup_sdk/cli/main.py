"""
zkrollup_sdk.cli.main
=====================

`zkrollup`: a small command-line interface over the operator API, handy for
inspecting accounts, transactions, fees and priority operations.

Examples
--------
    $ zkrollup --rpc http://127.0.0.1:3030 version
    $ zkrollup account 0x1111...1111
    $ zkrollup status sync-tx:ab12... --wait --target executed
    $ zkrollup fee Transfer 0x1111...1111 0 --tolerance 0.05
    $ zkrollup priority-op 42 --wait
    $ zkrollup health

Configuration
-------------
- RPC URL      : `--rpc` or env `ZKROLLUP_RPC_URL` (default: http://127.0.0.1:3030)
- HTTP Timeout : `--timeout` or env `ZKROLLUP_TIMEOUT` seconds (default: 10.0)
- Everything else comes from `ClientConfig.from_env()`.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer

from ..config import ClientConfig, PollConfig
from ..errors import ZkRollupError
from ..l1.priority import PriorityOpTracker
from ..rpc.operator import OperatorClient
from ..tx.confirm import ConfirmationTracker
from ..tx.fees import FeeEstimator
from ..types.core import TxState, TxType
from ..version import __version__ as SDK_VERSION
from ..version import version_info

T = TypeVar("T")

app = typer.Typer(
    name="zkrollup",
    help="zk-rollup SDK CLI: inspect accounts, transactions, fees and priority operations.",
    no_args_is_help=True,
    add_completion=False,
)

__all__ = ["app", "main", "run"]


@dataclass
class Ctx:
    config: ClientConfig


def _print_json(obj: Any) -> None:
    typer.echo(json.dumps(obj, indent=2, ensure_ascii=False, default=str))


def _run(ctx: typer.Context, fn: Callable[[OperatorClient], Awaitable[T]]) -> T:
    """Run `fn` against a fresh operator client; SDK errors exit with code 1."""
    c: Ctx = ctx.obj

    async def go() -> T:
        async with OperatorClient.from_config(c.config) as op:
            return await fn(op)

    try:
        return asyncio.run(go())
    except ZkRollupError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1) from e


@app.callback()
def _root(
    ctx: typer.Context,
    rpc: Optional[str] = typer.Option(None, "--rpc", help="Operator HTTP JSON-RPC URL.", envvar="ZKROLLUP_RPC_URL"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="HTTP timeout in seconds.", envvar="ZKROLLUP_TIMEOUT"),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="-v for info, -vv for debug logging."),
) -> None:
    """
    Resolve the effective configuration for this CLI process.
    """
    level = logging.WARNING if verbose <= 0 else (logging.INFO if verbose == 1 else logging.DEBUG)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    overrides = {}
    if rpc:
        overrides["rpc_url"] = rpc
    if timeout is not None:
        overrides["request_timeout"] = float(timeout)
    try:
        cfg = ClientConfig.from_env().with_overrides(**overrides)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    ctx.obj = Ctx(config=cfg)


# --- Built-in commands ----------------------------------------------------------


@app.command("version")
def version() -> None:
    """Print the SDK CLI version."""
    typer.echo(f"zkrollup {SDK_VERSION}")


@app.command("env")
def env(ctx: typer.Context) -> None:
    """Show the effective configuration."""
    c: Ctx = ctx.obj
    out = c.config.to_dict()
    out["sdk"] = asdict(version_info())
    _print_json(out)


@app.command("account")
def account(ctx: typer.Context, address: str = typer.Argument(..., help="L1 address (0x...)")) -> None:
    """Show the operator's view of an account (id, nonce, key hash, balances)."""
    state = _run(ctx, lambda op: op.get_account_state(address))
    _print_json(asdict(state))


@app.command("tokens")
def tokens(ctx: typer.Context) -> None:
    """List tokens known to the operator."""
    result = _run(ctx, lambda op: op.tokens())
    _print_json([asdict(t) for t in sorted(result.values(), key=lambda t: t.id)])


@app.command("status")
def status(
    ctx: typer.Context,
    tx_id: str = typer.Argument(..., help="Transaction hash (sync-tx:...)"),
    wait: bool = typer.Option(False, "--wait", help="Poll until --target (or a terminal state)."),
    target: str = typer.Option("committed", "--target", help="State to wait for."),
    max_wait: float = typer.Option(300.0, "--max-wait", help="Waiting budget in seconds."),
) -> None:
    """Fetch (or wait for) the status of an L2 transaction."""
    try:
        wanted = TxState(target.lower())
    except ValueError as e:
        raise typer.BadParameter(f"unknown state {target!r}") from e

    async def go(op: OperatorClient):
        if not wait:
            return await op.get_status(tx_id)
        tracker = ConfirmationTracker(op, tx_id)
        return await tracker.wait_for(wanted, PollConfig(max_wait=max_wait))

    receipt = _run(ctx, go)
    _print_json(
        {
            "tx_id": receipt.tx_id,
            "state": receipt.state.value,
            "block_number": receipt.block_number,
            "fail_reason": receipt.fail_reason,
        }
    )


@app.command("fee")
def fee(
    ctx: typer.Context,
    tx_type: str = typer.Argument(..., help="Transaction type (Transfer, Withdraw, ChangePubKey, ...)"),
    address: str = typer.Argument(..., help="Sender L1 address (0x...)"),
    token: str = typer.Argument(..., help="Fee token id or symbol"),
    tolerance: Optional[float] = typer.Option(None, "--tolerance", help="Extra margin, e.g. 0.05 for +5%."),
    max_fee: Optional[int] = typer.Option(None, "--max-fee", help="Fail if the suggested fee exceeds this."),
) -> None:
    """Quote a fee and print the packable fee the SDK would use."""
    try:
        t = TxType.parse(tx_type)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    token_ref: Any = int(token) if token.isdigit() else token

    async def go(op: OperatorClient):
        c: Ctx = ctx.obj
        est = FeeEstimator(op, tolerance=c.config.fee_tolerance)
        quote = await est.estimate(t, token_ref, address)
        suggested = await est.suggest(t, token_ref, address, max_fee=max_fee, tolerance=tolerance)
        return quote, suggested

    quote, suggested = _run(ctx, go)
    out = asdict(quote)
    out["suggested_fee"] = suggested
    _print_json(out)


@app.command("priority-op")
def priority_op(
    ctx: typer.Context,
    serial_id: int = typer.Argument(..., help="Priority operation serial id"),
    wait: bool = typer.Option(False, "--wait", help="Poll until committed or failed."),
    verified: bool = typer.Option(False, "--verified", help="With --wait, wait for verification."),
    max_wait: float = typer.Option(300.0, "--max-wait", help="Waiting budget in seconds."),
) -> None:
    """Show (or wait for) the L2 status of a priority operation."""

    async def go(op: OperatorClient):
        if not wait:
            r = await op.get_priority_op_status(serial_id)
            return r, None
        tracker = PriorityOpTracker.resume(serial_id, op)
        r = await tracker.wait_l2(PollConfig(max_wait=max_wait), require_verified=verified)
        return r, tracker.state

    receipt, state = _run(ctx, go)
    out = asdict(receipt)
    if state is not None:
        out["state"] = state.value
    _print_json(out)


@app.command("health")
def health(ctx: typer.Context) -> None:
    """Check that the operator answers; exits 1 when it does not."""
    h = _run(ctx, lambda op: op.check_health())
    _print_json(asdict(h))
    if not h.healthy:
        raise typer.Exit(code=1)


# --- Entrypoints --------------------------------------------------------------


def main(argv: Optional[list[str]] = None) -> int:
    """
    Run the CLI. Returns an integer exit code.
    """
    try:
        rc = app(prog_name="zkrollup", standalone_mode=False, args=argv)
        return int(rc or 0)
    except typer.Exit as e:  # normal exit
        return int(e.exit_code)
    except Exception as e:
        typer.echo(f"error: {e}", err=True)
        return 1


def run(argv: Optional[list[str]] = None) -> int:
    """Alias for :func:`main`."""
    return main(argv)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
