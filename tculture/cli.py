"""CLI entrypoint for tculture."""

import logging
import sys
from pathlib import Path

import click

from . import __version__
from .config import DATA_DIRNAME
from .metering import DEFAULT_ACTION_TYPE
from .pricing import DEFAULT_WEIGHTS, PricingWeights


def _auto_detect_data_dir(start: Path) -> Path | None:
    """Find a .tculture ledger folder by walking up from `start`."""
    cur = start.resolve()
    for p in (cur, *cur.parents):
        if p.is_dir() and p.name == DATA_DIRNAME:
            return p
        candidate = p / DATA_DIRNAME
        if candidate.is_dir():
            return candidate
    return None


@click.group()
@click.version_option(__version__, prog_name="tculture")
@click.option(
    "--data-dir",
    "-d",
    type=click.Path(exists=False, file_okay=False, dir_okay=True, path_type=Path),
    default=None,
    help=f"Ledger directory (defaults to the nearest {DATA_DIRNAME}, or ./{DATA_DIRNAME})",
)
@click.option("--verbose", is_flag=True, help="Log ledger activity to stderr")
@click.pass_context
def cli(ctx: click.Context, data_dir: Path | None, verbose: bool) -> None:
    """tculture - access credits with dynamic pricing over an asset registry.

    Prices follow  alpha*C + beta*U + gamma*M  where C is the asset's
    cultural value, U the units purchased so far and M the market value.
    """
    ctx.ensure_object(dict)
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    if data_dir is None:
        data_dir = _auto_detect_data_dir(Path.cwd()) or (Path.cwd() / DATA_DIRNAME)
    ctx.obj["data_dir"] = data_dir.resolve()


@cli.command()
@click.option("--governor", required=True, help="Identity allowed to change pricing weights")
@click.option("--oracle", default=None, help="Identity allowed to set market values (defaults to governor)")
@click.option("--minter", default=None, help="Only identity allowed to mint (default: anyone)")
@click.option("--alpha", type=click.IntRange(min=0), default=DEFAULT_WEIGHTS.alpha, show_default=True)
@click.option("--beta", type=click.IntRange(min=0), default=DEFAULT_WEIGHTS.beta, show_default=True)
@click.option("--gamma", type=click.IntRange(min=0), default=DEFAULT_WEIGHTS.gamma, show_default=True)
@click.option("--force", is_flag=True, help="Overwrite an existing config.toml")
@click.pass_context
def init(
    ctx: click.Context,
    governor: str,
    oracle: str | None,
    minter: str | None,
    alpha: int,
    beta: int,
    gamma: int,
    force: bool,
) -> None:
    """Create a ledger directory with its config.toml."""
    from .commands.ledger_cmd import run_init

    sys.exit(
        run_init(
            ctx.obj["data_dir"],
            governor=governor,
            oracle=oracle,
            minter=minter,
            weights=PricingWeights(alpha=alpha, beta=beta, gamma=gamma),
            force=force,
        )
    )


@cli.command()
@click.argument("creator")
@click.argument("cultural_value", type=click.IntRange(min=0))
@click.option("--uri", default="", help="Token URI for the asset's metadata")
@click.option("--owner", default=None, help="Initial owner (defaults to creator)")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def mint(
    ctx: click.Context,
    creator: str,
    cultural_value: int,
    uri: str,
    owner: str | None,
    output_json: bool,
) -> None:
    """Register a new asset with a fixed CULTURAL_VALUE."""
    from .commands.ledger_cmd import run_mint

    sys.exit(
        run_mint(
            ctx.obj["data_dir"],
            creator=creator,
            cultural_value=cultural_value,
            uri=uri,
            owner=owner,
            output_json=output_json,
        )
    )


@cli.command("transfer-owner")
@click.argument("asset_id", type=int)
@click.argument("new_owner")
@click.option("--as", "caller", required=True, help="Current owner identity")
@click.pass_context
def transfer_owner(ctx: click.Context, asset_id: int, new_owner: str, caller: str) -> None:
    """Hand ASSET_ID to NEW_OWNER. Later purchases pay the new owner."""
    from .commands.ledger_cmd import run_transfer_owner

    sys.exit(run_transfer_owner(ctx.obj["data_dir"], caller=caller, asset_id=asset_id, new_owner=new_owner))


@cli.command()
@click.argument("asset_id", type=int)
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def price(ctx: click.Context, asset_id: int, output_json: bool) -> None:
    """Show the current unit price of ASSET_ID and how it is composed."""
    from .commands.ledger_cmd import run_price

    sys.exit(run_price(ctx.obj["data_dir"], asset_id, output_json=output_json))


@cli.command()
@click.argument("asset_id", type=int)
@click.option("--buyer", required=True, help="Account receiving the credits")
@click.option("--amount", type=click.IntRange(min=1), default=1, show_default=True)
@click.option("--funds", type=click.IntRange(min=0), required=True, help="Funds supplied (all forwarded to the owner)")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def buy(
    ctx: click.Context,
    asset_id: int,
    buyer: str,
    amount: int,
    funds: int,
    output_json: bool,
) -> None:
    """Buy access credits for ASSET_ID at the current price.

    The whole of --funds goes to the asset owner; overpayment is not
    refunded.
    """
    from .commands.ledger_cmd import run_buy

    sys.exit(
        run_buy(
            ctx.obj["data_dir"],
            asset_id=asset_id,
            buyer=buyer,
            amount=amount,
            funds=funds,
            output_json=output_json,
        )
    )


@cli.command()
@click.argument("asset_id", type=int)
@click.option("--account", required=True, help="Account spending the credit")
@click.option("--action", "action_type", default=DEFAULT_ACTION_TYPE, show_default=True)
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def consume(ctx: click.Context, asset_id: int, account: str, action_type: str, output_json: bool) -> None:
    """Spend one access credit on ASSET_ID."""
    from .commands.ledger_cmd import run_consume

    sys.exit(
        run_consume(
            ctx.obj["data_dir"],
            asset_id=asset_id,
            account=account,
            action_type=action_type,
            output_json=output_json,
        )
    )


@cli.command()
@click.argument("asset_id", type=int)
@click.option("--account", default=None, help="Show one account (default: all holders)")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def balance(ctx: click.Context, asset_id: int, account: str | None, output_json: bool) -> None:
    """Show access credit balances on ASSET_ID."""
    from .commands.ledger_cmd import run_balance

    sys.exit(run_balance(ctx.obj["data_dir"], asset_id, account, output_json=output_json))


@cli.command()
@click.argument("asset_id", type=int, required=False)
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def stats(ctx: click.Context, asset_id: int | None, output_json: bool) -> None:
    """Show usage, market value and price for one asset or all of them."""
    from .commands.ledger_cmd import run_stats

    sys.exit(run_stats(ctx.obj["data_dir"], asset_id, output_json=output_json))


@cli.command("set-market-value")
@click.argument("asset_id", type=int)
@click.argument("value", type=click.IntRange(min=0))
@click.option("--as", "caller", required=True, help="Oracle identity")
@click.pass_context
def set_market_value(ctx: click.Context, asset_id: int, value: int, caller: str) -> None:
    """Overwrite the market value of ASSET_ID (oracle only)."""
    from .commands.ledger_cmd import run_set_market_value

    sys.exit(run_set_market_value(ctx.obj["data_dir"], caller=caller, asset_id=asset_id, value=value))


@cli.command("set-weights")
@click.argument("alpha", type=click.IntRange(min=0))
@click.argument("beta", type=click.IntRange(min=0))
@click.argument("gamma", type=click.IntRange(min=0))
@click.option("--as", "caller", required=True, help="Governor identity")
@click.pass_context
def set_weights(ctx: click.Context, alpha: int, beta: int, gamma: int, caller: str) -> None:
    """Replace the pricing weights (governor only)."""
    from .commands.ledger_cmd import run_set_weights

    sys.exit(run_set_weights(ctx.obj["data_dir"], caller=caller, alpha=alpha, beta=beta, gamma=gamma))


@cli.command()
@click.option("--asset", "asset_id", type=int, default=None, help="Filter by asset id")
@click.option("--type", "event_type", type=str, default=None, help="Filter by event type")
@click.option("--actor", type=str, default=None, help="Filter by actor")
@click.option("--limit", type=int, default=20, show_default=True, help="Max events to show")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def events(
    ctx: click.Context,
    asset_id: int | None,
    event_type: str | None,
    actor: str | None,
    limit: int,
    output_json: bool,
) -> None:
    """Show the most recent ledger events."""
    from .commands.ledger_cmd import run_events

    sys.exit(
        run_events(
            ctx.obj["data_dir"],
            asset_id=asset_id,
            event_type=event_type,
            actor=actor,
            limit=limit,
            output_json=output_json,
        )
    )


@cli.command()
@click.pass_context
def summary(ctx: click.Context) -> None:
    """Per-asset purchase, consumption and revenue totals."""
    from .commands.ledger_cmd import run_summary

    sys.exit(run_summary(ctx.obj["data_dir"]))


@cli.command()
@click.option("--last", "last_n", type=int, default=None, help="Only the last N payouts")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def payouts(ctx: click.Context, last_n: int | None, output_json: bool) -> None:
    """Show funds forwarded to asset owners."""
    from .commands.ledger_cmd import run_payouts

    sys.exit(run_payouts(ctx.obj["data_dir"], last_n=last_n, output_json=output_json))


def main() -> None:
    """Main entrypoint."""
    cli()


if __name__ == "__main__":
    main()
