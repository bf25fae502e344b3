"""Access ledger CLI commands."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from ..config import CONFIG_FILENAME, LedgerConfig, write_config
from ..core import AccessCore
from ..errors import LedgerError
from ..governance import Authority
from ..ledger.event_log import EventLog
from ..ledger.events import (
    ACCESS_CONSUMED,
    ACCESS_PURCHASED,
    ASSET_MINTED,
    ASSET_TRANSFERRED,
    MARKET_VALUE_UPDATED,
    PRICING_WEIGHTS_UPDATED,
    LedgerEvent,
)
from ..payments import JournalPaymentRail, format_payment_entry
from ..pricing import PricingWeights


def _core(data_dir: Path) -> AccessCore:
    return AccessCore.open(data_dir)


def _fail(e: Exception) -> int:
    Console(stderr=True).print(str(e), style="bold red")
    return 1


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, sort_keys=True))


def run_init(
    data_dir: Path,
    *,
    governor: str,
    oracle: str | None,
    minter: str | None,
    weights: PricingWeights,
    force: bool = False,
) -> int:
    err = Console(stderr=True)
    config_path = data_dir / CONFIG_FILENAME
    if config_path.exists() and not force:
        err.print(f"Already initialized: {config_path} (use --force to overwrite)", style="yellow")
        return 1

    try:
        config = LedgerConfig(
            authority=Authority(governor=governor, oracle=oracle or governor, minter=minter),
            weights=weights.validate(),
        )
    except LedgerError as e:
        return _fail(e)

    path = write_config(data_dir, config)
    err.print(f"initialized ledger: {path}", style="green")
    return 0


def run_mint(
    data_dir: Path,
    *,
    creator: str,
    cultural_value: int,
    uri: str,
    owner: str | None,
    output_json: bool = False,
) -> int:
    try:
        record = _core(data_dir).mint(creator, cultural_value, uri, owner=owner)
    except (LedgerError, ValueError) as e:
        return _fail(e)

    if output_json:
        _print_json(record.to_dict())
    else:
        Console().print(f"minted asset {record.asset_id} (cultural_value={record.cultural_value}, owner={record.owner})")
    return 0


def run_transfer_owner(data_dir: Path, *, caller: str, asset_id: int, new_owner: str) -> int:
    try:
        record = _core(data_dir).transfer_ownership(caller, asset_id, new_owner)
    except (LedgerError, ValueError) as e:
        return _fail(e)
    Console().print(f"asset {record.asset_id} now owned by {record.owner}")
    return 0


def run_price(data_dir: Path, asset_id: int, *, output_json: bool = False) -> int:
    try:
        quote = _core(data_dir).quote(asset_id)
    except (LedgerError, ValueError) as e:
        return _fail(e)

    if output_json:
        _print_json(quote.to_dict())
        return 0

    w = quote.weights
    table = Table(title=f"Price of asset {asset_id}")
    table.add_column("term")
    table.add_column("weight", justify="right")
    table.add_column("input", justify="right")
    table.add_column("value", justify="right", style="cyan")
    table.add_row("cultural (C)", str(w.alpha), str(quote.cultural_value), str(quote.cultural_term))
    table.add_row("usage (U)", str(w.beta), str(quote.access_count), str(quote.usage_term))
    table.add_row("market (M)", str(w.gamma), str(quote.market_value), str(quote.market_term))

    console = Console()
    console.print(table)
    console.print(f"unit price: {quote.unit_price}", style="bold")
    if quote.floor_applied:
        console.print("  computed price was 0; minimum unit price applied", style="dim")
    return 0


def run_buy(
    data_dir: Path,
    *,
    asset_id: int,
    buyer: str,
    amount: int,
    funds: int,
    output_json: bool = False,
) -> int:
    try:
        receipt = _core(data_dir).buy(asset_id, buyer, amount, funds)
    except (LedgerError, ValueError) as e:
        return _fail(e)

    if output_json:
        _print_json(receipt.to_dict())
        return 0

    console = Console()
    console.print(
        f"{buyer} bought {amount} access credit(s) on asset {asset_id} "
        f"at {receipt.unit_price_charged} (total {receipt.total_charged})",
        style="green",
    )
    console.print(f"  forwarded {receipt.funds_forwarded} to {receipt.owner}", style="dim")
    if receipt.funds_forwarded > receipt.total_charged:
        console.print(
            f"  overpayment of {receipt.funds_forwarded - receipt.total_charged} was not refunded",
            style="yellow",
        )
    return 0


def run_consume(
    data_dir: Path,
    *,
    asset_id: int,
    account: str,
    action_type: str,
    output_json: bool = False,
) -> int:
    try:
        receipt = _core(data_dir).consume(asset_id, account, action_type)
    except (LedgerError, ValueError) as e:
        return _fail(e)

    if output_json:
        _print_json(receipt.to_dict())
    else:
        Console().print(
            f"{account} used 1 credit on asset {asset_id} for {action_type} ({receipt.remaining} left)"
        )
    return 0


def run_balance(data_dir: Path, asset_id: int, account: str | None, *, output_json: bool = False) -> int:
    try:
        core = _core(data_dir)
        core.asset(asset_id)
    except (LedgerError, ValueError) as e:
        return _fail(e)

    if account is not None:
        balance = core.balance_of(asset_id, account)
        if output_json:
            _print_json({"asset_id": asset_id, "account": account, "balance": balance})
        else:
            Console().print(f"{account}: {balance}")
        return 0

    holders = core.balances.holders(asset_id)
    if output_json:
        _print_json({"asset_id": asset_id, "holders": holders})
        return 0

    table = Table(title=f"Access credits on asset {asset_id}")
    table.add_column("account", style="cyan")
    table.add_column("balance", justify="right")
    for acct, balance in sorted(holders.items()):
        table.add_row(acct, str(balance))
    Console().print(table)
    return 0


def run_stats(data_dir: Path, asset_id: int | None = None, *, output_json: bool = False) -> int:
    try:
        core = _core(data_dir)
        if asset_id is not None:
            assets = [core.asset(asset_id)]
        else:
            assets = list(core.registry.assets())
        rows = []
        for record in assets:
            stats = core.stats_of(record.asset_id)
            rows.append({
                **record.to_dict(),
                **stats.to_dict(),
                "price": core.price(record.asset_id),
            })
    except (LedgerError, ValueError) as e:
        return _fail(e)

    if output_json:
        _print_json(rows if asset_id is None else rows[0])
        return 0

    table = Table(title="Assets")
    table.add_column("asset", justify="right", style="cyan", no_wrap=True)
    table.add_column("owner", style="magenta")
    table.add_column("C", justify="right")
    table.add_column("U", justify="right")
    table.add_column("M", justify="right")
    table.add_column("price", justify="right", style="bold")
    table.add_column("uri", style="dim")
    for row in rows:
        table.add_row(
            str(row["asset_id"]),
            row["owner"],
            str(row["cultural_value"]),
            str(row["access_count"]),
            str(row["market_value"]),
            str(row["price"]),
            row["uri"],
        )
    Console().print(table)
    return 0


def run_set_market_value(data_dir: Path, *, caller: str, asset_id: int, value: int) -> int:
    try:
        event = _core(data_dir).set_market_value(caller, asset_id, value)
    except (LedgerError, ValueError) as e:
        return _fail(e)
    Console().print(
        f"market value of asset {asset_id}: {event.payload['previous_value']} -> {event.payload['value']}"
    )
    return 0


def run_set_weights(data_dir: Path, *, caller: str, alpha: int, beta: int, gamma: int) -> int:
    try:
        weights = _core(data_dir).set_weights(caller, alpha, beta, gamma)
    except (LedgerError, ValueError) as e:
        return _fail(e)
    Console().print(f"pricing weights: alpha={weights.alpha} beta={weights.beta} gamma={weights.gamma}")
    return 0


def _format_event_details(event: LedgerEvent) -> str:
    """Compact key=value rendering of the payload fields that matter per type."""
    p = event.payload
    if event.event_type == ASSET_MINTED:
        return f"owner={p.get('owner')}, C={p.get('cultural_value')}"
    if event.event_type == ASSET_TRANSFERRED:
        return f"{p.get('previous_owner')} -> {p.get('owner')}"
    if event.event_type == ACCESS_PURCHASED:
        return f"buyer={p.get('buyer')}, amount={p.get('amount')}, unit_price={p.get('unit_price')}"
    if event.event_type == ACCESS_CONSUMED:
        return f"action={p.get('action_type')}, remaining={p.get('remaining')}"
    if event.event_type == MARKET_VALUE_UPDATED:
        return f"{p.get('previous_value')} -> {p.get('value')}"
    if event.event_type == PRICING_WEIGHTS_UPDATED:
        return f"alpha={p.get('alpha')}, beta={p.get('beta')}, gamma={p.get('gamma')}"
    return ""


def run_events(
    data_dir: Path,
    *,
    asset_id: int | None = None,
    event_type: str | None = None,
    actor: str | None = None,
    limit: int = 20,
    output_json: bool = False,
) -> int:
    try:
        events = EventLog(data_dir).query(
            asset_id=asset_id,
            event_type=event_type,
            actor=actor,
            limit=limit,
            order="desc",
        )
    except LedgerError as e:
        return _fail(e)
    events.reverse()

    if output_json:
        _print_json([e.to_dict() for e in events])
        return 0

    table = Table(title="Ledger events")
    table.add_column("#", justify="right", style="dim")
    table.add_column("time")
    table.add_column("type", style="magenta")
    table.add_column("asset", justify="right", style="cyan")
    table.add_column("actor")
    table.add_column("details")
    for e in events:
        table.add_row(
            str(e.sequence),
            e.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            e.event_type,
            "" if e.asset_id is None else str(e.asset_id),
            e.actor,
            _format_event_details(e),
        )
    Console().print(table)
    return 0


def run_summary(data_dir: Path) -> int:
    try:
        print(EventLog(data_dir).format_summary())
    except LedgerError as e:
        return _fail(e)
    return 0


def run_payouts(data_dir: Path, *, last_n: int | None = None, output_json: bool = False) -> int:
    rail = JournalPaymentRail(data_dir)
    entries = rail.read_payments(last_n=last_n)

    if output_json:
        _print_json({
            "payments": [e.to_dict() for e in entries],
            "totals": rail.totals(),
        })
        return 0

    if not entries:
        print("No payouts recorded.")
        return 0
    for entry in entries:
        print(format_payment_entry(entry))
    return 0
