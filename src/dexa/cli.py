"""Command-line client for the analytics daemon.

Talks to the daemon's JSON API and prints responses as indented JSON.
The daemon address is kept in a small JSON state file under the data
directory (``~/.dexa`` unless DEXA_DATA_DIR or --data-dir says otherwise).

Usage:
    dexa config --server http://localhost:9000
    dexa config set server http://analytics.example:9000
    dexa config print
    dexa markets --filter "https://provider.example,<base_asset>,<quote_asset>"
    dexa balances --period last_day --market-id 1 --time-frame hour
    dexa prices --from-time 2024-03-01T00:00:00Z --reference-currency EUR
    dexa health
"""

import argparse
import asyncio
import json
import os
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from dexa.exceptions import AnalyticsError, ApiClientError
from dexa.http import JsonHttpClient
from dexa.logging import setup_logging
from dexa.models import PredefinedPeriod, TimeFrame

DEFAULT_SERVER = "http://localhost:9000"
STATE_FILE = "state.json"


def default_data_dir() -> Path:
    return Path(os.environ.get("DEXA_DATA_DIR") or Path.home() / ".dexa")


class CliState:
    """Flat string key/value settings persisted as JSON."""

    def __init__(self, data_dir: Path) -> None:
        self.path = data_dir / STATE_FILE

    def load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ApiClientError(f"cannot read state file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise ApiClientError(f"state file {self.path} is not a JSON object")
        return {str(key): str(value) for key, value in data.items()}

    def update(self, values: dict[str, str]) -> dict[str, str]:
        """Merge ``values`` into the stored state and write it back."""
        state = self.load()
        state.update(values)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(state, indent=2, sort_keys=True), encoding="utf-8")
        except OSError as e:
            raise ApiClientError(f"cannot write state file {self.path}: {e}") from e
        return state

    def server(self) -> str:
        server = self.load().get("server") or DEFAULT_SERVER
        if not server.startswith(("http://", "https://")):
            server = f"http://{server}"
        return server


class AnalyticsApiClient(JsonHttpClient):
    """JSON API of a running daemon.

    Usage:
        async with AnalyticsApiClient("http://localhost:9000") as client:
            markets = await client.markets({"market_filters": []})
    """

    error_cls = ApiClientError

    async def health(self) -> Any:
        return await self._request("GET", "/health")

    async def balances(self, body: dict[str, Any]) -> Any:
        return await self._request("POST", "/v1/balances", payload=body)

    async def prices(self, body: dict[str, Any]) -> Any:
        return await self._request("POST", "/v1/prices", payload=body)

    async def markets(self, body: dict[str, Any]) -> Any:
        return await self._request("POST", "/v1/markets", payload=body)


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


def parse_filter(raw: str) -> dict[str, str]:
    """Split "url,base_asset,quote_asset" into a market filter."""
    parts = [part.strip() for part in raw.strip().split(",")]
    if len(parts) != 3:
        raise ApiClientError("provide url, base_asset, quote_asset")
    url, base_asset, quote_asset = parts
    return {"url": url, "base_asset": base_asset, "quote_asset": quote_asset}


def _time_range(args: argparse.Namespace) -> dict[str, Any]:
    if args.period:
        return {"predefined_period": PredefinedPeriod[args.period.upper()].value}
    return {"custom_period": {"start_date": args.start_date, "end_date": args.end_date or ""}}


def _page(args: argparse.Namespace) -> dict[str, int] | None:
    if args.page_size is None:
        return None
    return {"number": args.page_number, "size": args.page_size}


def series_body(args: argparse.Namespace) -> dict[str, Any]:
    """Request body shared by the balances and prices commands."""
    body: dict[str, Any] = {
        "time_range": _time_range(args),
        "market_ids": args.market_ids,
    }
    page = _page(args)
    if page is not None:
        body["page"] = page
    if args.time_frame:
        body["time_frame"] = args.time_frame
    if getattr(args, "reference_currency", None):
        body["reference_currency"] = args.reference_currency
    return body


def markets_body(args: argparse.Namespace) -> dict[str, Any]:
    body: dict[str, Any] = {"market_filters": [parse_filter(raw) for raw in args.filters]}
    page = _page(args)
    if page is not None:
        body["page"] = page
    return body


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _add_page_options(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("Pagination")
    group.add_argument("--page-number", type=int, default=1, help="1-based page (default: 1)")
    group.add_argument("--page-size", type=int, default=None, help="Page size (default: no paging)")


def _add_series_options(parser: argparse.ArgumentParser) -> None:
    window = parser.add_argument_group("Time range")
    exclusive = window.add_mutually_exclusive_group(required=True)
    exclusive.add_argument(
        "--period",
        choices=[p.name.lower() for p in PredefinedPeriod],
        help="Predefined look-back window",
    )
    exclusive.add_argument(
        "--start-date",
        "--from-time",
        dest="start_date",
        help="RFC3339 start of a custom window",
    )
    window.add_argument("--end-date", default="", help="RFC3339 end of a custom window (default: now)")

    parser.add_argument(
        "--market-id",
        dest="market_ids",
        action="append",
        default=[],
        help="Restrict to a market id (repeatable)",
    )
    parser.add_argument(
        "--time-frame",
        choices=[tf.value for tf in TimeFrame],
        default=None,
        help="Bucket width (default: chosen from the window)",
    )
    _add_page_options(parser)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="dexa",
        description="Command line interface for the DEX analytics daemon",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory holding the CLI state file (default: $DEXA_DATA_DIR or ~/.dexa)",
    )
    parser.add_argument("--timeout", type=float, default=30.0, help="HTTP timeout in seconds")
    parser.add_argument("--log-level", default="WARNING", help="Log level (default: WARNING)")

    commands = parser.add_subparsers(dest="command", required=True)

    # --------------------------------------------------------
    # config
    # --------------------------------------------------------
    config = commands.add_parser("config", help="Configure the CLI")
    config.add_argument("--server", default=None, help=f"Daemon address (default: {DEFAULT_SERVER})")
    config_commands = config.add_subparsers(dest="config_command")
    config_set = config_commands.add_parser("set", help="Set an individual key in the local state")
    config_set.add_argument("key")
    config_set.add_argument("value")
    config_commands.add_parser("print", help="Print the local state")

    # --------------------------------------------------------
    # queries
    # --------------------------------------------------------
    balances = commands.add_parser("balances", help="List market balances")
    _add_series_options(balances)

    prices = commands.add_parser("prices", help="List market prices")
    _add_series_options(prices)
    prices.add_argument(
        "--reference-currency",
        default="",
        help="Fiat currency for reference prices, e.g. EUR",
    )

    markets = commands.add_parser("markets", help="List market ids for the prices/balances commands")
    markets.add_argument(
        "--filter",
        dest="filters",
        action="append",
        default=[],
        help='Market filter "url,base_asset,quote_asset" (repeatable)',
    )
    _add_page_options(markets)

    commands.add_parser("health", help="Check the daemon is serving")

    return parser


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def configure(args: argparse.Namespace, state: CliState) -> None:
    if args.config_command == "set":
        state.update({args.key: args.value})
        print(f"{args.key} {args.value} has been set")
    elif args.config_command == "print":
        for key, value in state.load().items():
            print(f"{key}: {value}")
    else:
        state.update({"server": args.server or DEFAULT_SERVER})


async def query(args: argparse.Namespace, state: CliState) -> Any:
    """Run one API command against the configured daemon."""
    # Bodies are built first so usage errors never open a connection
    if args.command in ("balances", "prices"):
        body = series_body(args)
    elif args.command == "markets":
        body = markets_body(args)
    else:
        body = None

    async with AnalyticsApiClient(state.server(), args.timeout) as client:
        if args.command == "balances":
            return await client.balances(body)
        if args.command == "prices":
            return await client.prices(body)
        if args.command == "markets":
            return await client.markets(body)
        return await client.health()


def main(argv: Sequence[str] | None = None) -> int:
    args = create_parser().parse_args(argv)
    setup_logging(args.log_level, service="dexa-cli")
    state = CliState(args.data_dir or default_data_dir())

    try:
        if args.command == "config":
            configure(args, state)
        else:
            _print_json(asyncio.run(query(args, state)))
    except AnalyticsError as e:
        print(f"[dexa] {e}", file=sys.stderr)
        return 1
    return 0


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
