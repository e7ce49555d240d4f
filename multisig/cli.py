from __future__ import annotations

import json
import sys
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, NoReturn, Optional

import typer

from . import logging as mlog
from .config import MultisigConfig, load_config
from .errors import MultisigError
from .governance import AddOwner, RemoveOwner, SetThreshold
from .store import WalletStore
from .types import hex_address, to_address
from .version import __version__
from .wallet import Wallet

DB_ENV = "MULTISIG_DB"

app = typer.Typer(
    help="Operate a persisted M-of-N multisig wallet. Caller identity is passed with --as."
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _state(ctx: typer.Context) -> Dict[str, Any]:
    return ctx.obj or {}


def _cfg(ctx: typer.Context) -> MultisigConfig:
    return _state(ctx)["config"]


def _fail(err: MultisigError) -> NoReturn:
    typer.echo(f"{err.code}: {err.message}", err=True)
    raise typer.Exit(code=1)


@contextmanager
def _wallet(ctx: typer.Context) -> Iterator[Wallet]:
    cfg = _cfg(ctx)
    try:
        store = WalletStore.open(cfg.db_uri, create=False)
    except MultisigError as e:
        _fail(e)
    try:
        wallet = Wallet.open(store, config=cfg)
    except MultisigError as e:
        store.close()
        _fail(e)
    try:
        yield wallet
    except MultisigError as e:
        _fail(e)
    finally:
        wallet.close()


def _emit(ctx: typer.Context, data: Any, text: str) -> None:
    if _state(ctx).get("json"):
        typer.echo(json.dumps(data, indent=2, sort_keys=True))
    else:
        typer.echo(text)


def _parse_payload(payload: str) -> bytes:
    s = payload.strip()
    if s.startswith(("0x", "0X")):
        s = s[2:]
    try:
        return bytes.fromhex(s)
    except ValueError as e:
        raise typer.BadParameter("payload must be hex") from e


def _status_dict(w: Wallet) -> Dict[str, Any]:
    return {
        "address": w.hex_address,
        "owners": [hex_address(o) for o in w.owners()],
        "threshold": w.threshold(),
        "balance": w.balance(),
        "count": w.count(),
        "pending": list(w.pending_indices()),
    }


# ---------------------------------------------------------------------------
# Typer wiring
# ---------------------------------------------------------------------------


@app.callback()
def _configure(
    ctx: typer.Context,
    db: Optional[str] = typer.Option(
        None,
        "--db",
        help="Wallet store URI (sqlite:///path.db or a bare path)",
        envvar=DB_ENV,
    ),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON instead of text"),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
) -> None:
    overrides: Dict[str, Any] = {"log_level": log_level}
    if db:
        overrides["db_uri"] = db
    try:
        cfg = load_config(overrides=overrides)
    except MultisigError as e:
        _fail(e)
    fmt = None if cfg.log_format == "auto" else cfg.log_format == "json"
    mlog.configure(json=fmt, level=cfg.log_level, stream=sys.stderr)
    ctx.obj = {"config": cfg, "json": as_json}


@app.command("version")
def version() -> None:
    """Print the package version."""
    typer.echo(__version__)


@app.command("init")
def init(
    ctx: typer.Context,
    owners: List[str] = typer.Option(..., "--owner", help="Owner address (repeat for each owner)"),
    threshold: int = typer.Option(..., "--threshold", help="Required confirmations"),
    address: Optional[str] = typer.Option(None, "--address", help="Wallet address (derived when omitted)"),
) -> None:
    """Create a wallet in the store."""
    cfg = _cfg(ctx)
    try:
        store = WalletStore.open(cfg.db_uri)
        try:
            w = Wallet.create(owners, threshold, address=address, store=store, config=cfg)
        except MultisigError:
            store.close()
            raise
    except MultisigError as e:
        _fail(e)
    try:
        _emit(ctx, _status_dict(w), f"Wallet created: {w.hex_address}")
    finally:
        w.close()


@app.command("status")
def status(ctx: typer.Context) -> None:
    """Show owners, threshold, balance and pending transactions."""
    with _wallet(ctx) as w:
        d = _status_dict(w)
        lines = [
            f"address:   {d['address']}",
            f"threshold: {d['threshold']} of {len(d['owners'])}",
            f"balance:   {d['balance']}",
            f"txs:       {d['count']} ({len(d['pending'])} pending)",
        ]
        lines.extend(f"owner:     {o}" for o in d["owners"])
        _emit(ctx, d, "\n".join(lines))


@app.command("show")
def show(ctx: typer.Context, index: int = typer.Argument(..., help="Transaction index")) -> None:
    """Show one transaction."""
    with _wallet(ctx) as w:
        view = w.get_transaction(index)
        d = view.to_dict()
        state = "executed" if view.executed else "pending"
        text = (
            f"tx {view.index} [{state}] to={d['target']} value={view.value} "
            f"confirmations={view.confirmations}/{w.threshold()}"
        )
        _emit(ctx, d, text)


@app.command("pending")
def pending(ctx: typer.Context) -> None:
    """List pending transaction indices."""
    with _wallet(ctx) as w:
        idx = list(w.pending_indices())
        _emit(ctx, idx, "\n".join(str(i) for i in idx) if idx else "no pending transactions")


@app.command("deposit")
def deposit(
    ctx: typer.Context,
    value: int = typer.Argument(..., help="Amount in base units"),
    sender: str = typer.Option(..., "--from", help="Depositing address"),
) -> None:
    """Deposit value into the wallet pool."""
    with _wallet(ctx) as w:
        balance = w.deposit(sender, value)
        _emit(ctx, {"balance": balance}, f"balance: {balance}")


@app.command("submit")
def submit(
    ctx: typer.Context,
    caller: str = typer.Option(..., "--as", help="Submitting owner"),
    to: str = typer.Option(..., "--to", help="Target address"),
    value: int = typer.Option(0, "--value", help="Amount in base units"),
    payload: str = typer.Option("", "--payload", help="Hex payload"),
) -> None:
    """Submit a transaction for confirmation."""
    data = _parse_payload(payload)
    with _wallet(ctx) as w:
        index = w.submit(caller, to, value, data)
        _emit(ctx, {"index": index}, f"submitted tx {index}")


@app.command("confirm")
def confirm(
    ctx: typer.Context,
    index: int = typer.Argument(..., help="Transaction index"),
    caller: str = typer.Option(..., "--as", help="Confirming owner"),
) -> None:
    """Confirm a pending transaction."""
    with _wallet(ctx) as w:
        count = w.confirm(caller, index)
        _emit(ctx, {"index": index, "confirmations": count}, f"tx {index}: {count} confirmation(s)")


@app.command("revoke")
def revoke(
    ctx: typer.Context,
    index: int = typer.Argument(..., help="Transaction index"),
    caller: str = typer.Option(..., "--as", help="Revoking owner"),
) -> None:
    """Withdraw a confirmation."""
    with _wallet(ctx) as w:
        count = w.revoke(caller, index)
        _emit(ctx, {"index": index, "confirmations": count}, f"tx {index}: {count} confirmation(s)")


@app.command("execute")
def execute(
    ctx: typer.Context,
    index: int = typer.Argument(..., help="Transaction index"),
    caller: str = typer.Option(..., "--as", help="Executing owner"),
) -> None:
    """Execute a transaction that has reached quorum."""
    with _wallet(ctx) as w:
        view = w.execute(caller, index)
        _emit(ctx, view.to_dict(), f"executed tx {index}")


@app.command("add-owner")
def add_owner(
    ctx: typer.Context,
    owner: str = typer.Argument(..., help="Address to admit"),
    caller: str = typer.Option(..., "--as", help="Submitting owner"),
) -> None:
    """Submit a governance transaction adding an owner."""
    with _wallet(ctx) as w:
        index = w.submit_governance(caller, AddOwner(to_address(owner)))
        _emit(ctx, {"index": index}, f"submitted governance tx {index}")


@app.command("remove-owner")
def remove_owner(
    ctx: typer.Context,
    owner: str = typer.Argument(..., help="Address to remove"),
    caller: str = typer.Option(..., "--as", help="Submitting owner"),
) -> None:
    """Submit a governance transaction removing an owner."""
    with _wallet(ctx) as w:
        index = w.submit_governance(caller, RemoveOwner(to_address(owner)))
        _emit(ctx, {"index": index}, f"submitted governance tx {index}")


@app.command("set-threshold")
def set_threshold(
    ctx: typer.Context,
    threshold: int = typer.Argument(..., help="New threshold"),
    caller: str = typer.Option(..., "--as", help="Submitting owner"),
) -> None:
    """Submit a governance transaction changing the threshold."""
    with _wallet(ctx) as w:
        index = w.submit_governance(caller, SetThreshold(threshold))
        _emit(ctx, {"index": index}, f"submitted governance tx {index}")


def main() -> None:  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
