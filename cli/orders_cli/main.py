"""Main entry point for the Live Orders CLI."""
from __future__ import annotations

import asyncio
import logging
import sys
from datetime import date

from orders_cli import __version__
from orders_cli.client import OrdersApiClient, SessionRejected, StreamFailed
from orders_cli.config import resolve_api_url
from orders_cli.models import Order, OrderFilter, OrderStatus
from orders_cli.repository import OrdersSyncRepository

DEFAULT_SIZE = 10


def print_help():
    """Print help message."""
    print(f"""
Live Orders CLI v{__version__}

Usage:
  orders [options] <command>

Commands:
  watch             Follow the live count and a window of matching orders
  add-random        Insert one random order

Filter options (watch):
  --status S        Status equals S (e.g. PAID)
  --customer TEXT   Customer contains TEXT
  --address TEXT    Delivery address contains TEXT
  --date YYYY-MM-DD Order date equals
  --amount X        Amount equals X

Window options (watch):
  --position N      First position to show (default: 0)
  --size N          Number of orders to show (default: {DEFAULT_SIZE})

Options:
  --api-url URL     Override API endpoint (default: http://localhost:8000)
  -h, --help        Show this help
  -v, --version     Show version

Environment:
  ORDERS_API_URL    Override API endpoint (same as --api-url)
""")


_VALUE_OPTIONS = {
    "--api-url": "api_url",
    "--status": "status",
    "--customer": "customer",
    "--address": "delivery_address",
    "--date": "order_date",
    "--amount": "amount",
    "--position": "position",
    "--size": "size",
}


def parse_args(args: list[str]) -> dict:
    """
    Parse command line arguments.

    Returns dict with:
        command: str | None (watch, add-random)
        api_url, status, customer, delivery_address, order_date, amount: str | None
        position, size: str | None
        show_help: bool
        show_version: bool
    """
    result: dict = {name: None for name in _VALUE_OPTIONS.values()}
    result.update({"command": None, "show_help": False, "show_version": False})

    i = 0
    while i < len(args):
        arg = args[i]

        if arg in ("watch", "add-random"):
            result["command"] = arg
        elif arg in _VALUE_OPTIONS:
            if i + 1 < len(args):
                result[_VALUE_OPTIONS[arg]] = args[i + 1]
                i += 1
            else:
                print(f"Error: {arg} requires a value")
                sys.exit(1)
        elif arg in ("--help", "-h"):
            result["show_help"] = True
        elif arg in ("--version", "-v"):
            result["show_version"] = True
        elif arg.startswith("-"):
            print(f"Unknown option: {arg}")
            print("Run 'orders --help' for usage.")
            sys.exit(1)
        else:
            print(f"Unknown command: {arg}")
            print("Run 'orders --help' for usage.")
            sys.exit(1)

        i += 1

    return result


def build_filter(args: dict) -> OrderFilter:
    """Build an OrderFilter from parsed options. Raises ValueError on bad values."""
    status = args.get("status")
    order_date = args.get("order_date")
    amount = args.get("amount")
    return OrderFilter(
        status=OrderStatus(status.upper()) if status else None,
        customer=args.get("customer") or None,
        delivery_address=args.get("delivery_address") or None,
        order_date=date.fromisoformat(order_date) if order_date else None,
        amount=float(amount) if amount else None,
    )


def format_order(position: int, order: Order) -> str:
    return (
        f"  {position:>5}  #{order.id:<6} {order.order_date.isoformat()}  {order.status.value:<10} "
        f"{order.amount:>9.2f}  {order.customer}, {order.delivery_address}"
    )


async def watch(repo: OrdersSyncRepository, position: int, size: int) -> None:
    """Print every count and window update until interrupted."""

    async def follow_count():
        async for total in repo.count_updates():
            print(f"[count] {total} matching orders")

    async def follow_window():
        async for window in repo.window_updates(position, size):
            print(f"[window] positions {position}..{position + size - 1} ({len(window)} orders)")
            for pos in sorted(window):
                print(format_order(pos, window[pos]))

    tasks = [asyncio.create_task(follow_count()), asyncio.create_task(follow_window())]
    try:
        await asyncio.gather(*tasks)
    finally:
        # the first failure ends the watch; the other flow must not outlive it
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


async def _run(args: dict) -> int:
    client = OrdersApiClient(resolve_api_url(args["api_url"]))
    try:
        if args["command"] == "add-random":
            order = await client.insert_random_order()
            print(f"Inserted order #{order.id} ({order.status.value}, {order.amount:.2f})")
            return 0

        try:
            order_filter = build_filter(args)
            position = int(args["position"] or 0)
            size = int(args["size"] or DEFAULT_SIZE)
        except ValueError as e:
            print(f"Error: {e}")
            return 1

        repo = OrdersSyncRepository(client, order_filter)
        await watch(repo, max(position, 0), max(size, 1))
        return 0
    except SessionRejected as e:
        print(f"Error: server rejected the stream session twice ({e})")
        return 1
    except StreamFailed as e:
        print(f"Error: server closed the stream ({e})")
        return 1
    finally:
        await client.aclose()


def main():
    """Main entry point."""
    args = parse_args(sys.argv[1:])

    if args["show_version"]:
        print(f"orders-cli {__version__}")
        return

    if args["show_help"] or args["command"] is None:
        print_help()
        return

    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    try:
        sys.exit(asyncio.run(_run(args)))
    except KeyboardInterrupt:
        print("\nStopped.")


if __name__ == "__main__":
    main()
