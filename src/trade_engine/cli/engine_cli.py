"""CLI to drive the trade_engine API by hand.

Usage:
  poetry run engine-cli health
  poetry run engine-cli trades open u1 BTC buy 2 100 --fees 5
  poetry run engine-cli trades close <trade-id> --price 150
  poetry run engine-cli summary get u1
  poetry run engine-cli alerts create u1 BTC below 50000
  poetry run engine-cli ticks send BTC 50000
  poetry run engine-cli ticks replay ticks.jsonl
"""
import argparse
import asyncio
import json
import sys
from pathlib import Path

import httpx
import websockets


def print_json(data: object) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_health(client: httpx.Client, _: argparse.Namespace) -> int:
    r = client.get("/")
    r.raise_for_status()
    print_json(r.json())
    return 0


def cmd_trades_open(client: httpx.Client, args: argparse.Namespace) -> int:
    body = {
        "user_id": args.user_id,
        "symbol": args.symbol,
        "type": args.side,
        "amount": args.amount,
        "price": args.price,
    }
    if args.fees is not None:
        body["fees"] = args.fees
    r = client.post("/trades", json=body)
    r.raise_for_status()
    print_json(r.json())
    return 0


def cmd_trades_close(client: httpx.Client, args: argparse.Namespace) -> int:
    body = {"close_price": args.price, "settled_profit": args.profit}
    if args.close_time:
        body["close_time"] = args.close_time
    r = client.post(f"/trades/{args.trade_id}/close", json=body)
    r.raise_for_status()
    print_json(r.json())
    return 0


def cmd_trades_list(client: httpx.Client, args: argparse.Namespace) -> int:
    params = {"user_id": args.user_id}
    if args.status:
        params["status"] = args.status
    r = client.get("/trades", params=params)
    r.raise_for_status()
    data = r.json()
    print(f"Found {len(data)} trades for {args.user_id}")
    print_json(data[: args.head] if args.head else data)
    return 0


def cmd_summary_get(client: httpx.Client, args: argparse.Namespace) -> int:
    r = client.get(f"/summaries/{args.user_id}")
    r.raise_for_status()
    print_json(r.json())
    return 0


def cmd_summary_reconcile(client: httpx.Client, args: argparse.Namespace) -> int:
    r = client.post(f"/summaries/{args.user_id}/reconcile")
    r.raise_for_status()
    print_json(r.json())
    return 0


def cmd_alerts_create(client: httpx.Client, args: argparse.Namespace) -> int:
    body = {
        "user_id": args.user_id,
        "symbol": args.symbol,
        "condition": args.condition,
        "price": args.price,
    }
    r = client.post("/alerts", json=body)
    r.raise_for_status()
    print_json(r.json())
    return 0


def cmd_alerts_list(client: httpx.Client, args: argparse.Namespace) -> int:
    r = client.get("/alerts", params={"user_id": args.user_id})
    r.raise_for_status()
    data = r.json()
    print(f"{len(data)} active alerts for {args.user_id}")
    print_json(data)
    return 0


def cmd_alerts_delete(client: httpx.Client, args: argparse.Namespace) -> int:
    r = client.delete(f"/alerts/{args.alert_id}")
    r.raise_for_status()
    print(f"Deleted alert {args.alert_id}")
    return 0


def cmd_ticks_send(client: httpx.Client, args: argparse.Namespace) -> int:
    r = client.post("/ticks", json={"symbol": args.symbol, "price": args.price})
    r.raise_for_status()
    print_json(r.json())
    return 0


def cmd_ticks_replay(_client: httpx.Client | None, args: argparse.Namespace) -> int:
    """Send JSON-lines ticks over /ticks/stream and print each evaluation result."""
    lines = [line for line in Path(args.file).read_text().splitlines() if line.strip()]
    ws_url = args.base_url.rstrip("/").replace("http", "ws", 1) + "/ticks/stream"

    async def run() -> None:
        async with websockets.connect(ws_url) as ws:
            for line in lines:
                await ws.send(line)
                print_json(json.loads(await ws.recv()))

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        print("\nStopped by user", file=sys.stderr)
        return 130
    except (OSError, websockets.WebSocketException) as e:
        print(f"Stream error: {e}", file=sys.stderr)
        return 1
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Drive the trade_engine API: trades, summaries, alerts and ticks.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--base-url",
        default="http://localhost:8000",
        help="API base URL (default: http://localhost:8000)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Request timeout in seconds (default: 30)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True, help="Command")

    subparsers.add_parser("health", help="GET / health check")

    trades = subparsers.add_parser("trades", help="Trade routes (/trades)")
    trades_sub = trades.add_subparsers(dest="trades_cmd", required=True)
    p = trades_sub.add_parser("open", help="POST /trades")
    p.add_argument("user_id")
    p.add_argument("symbol")
    p.add_argument("side", choices=["buy", "sell", "call", "put", "long", "short"])
    p.add_argument("amount")
    p.add_argument("price")
    p.add_argument("--fees", default=None)
    p = trades_sub.add_parser("close", help="POST /trades/{id}/close")
    p.add_argument("trade_id")
    p.add_argument("--price", default=None, help="Close price")
    p.add_argument("--profit", default=None, help="Broker-settled profit instead of a price")
    p.add_argument("--close-time", default=None, help="ISO-8601 close time (default: now)")
    p = trades_sub.add_parser("list", help="GET /trades")
    p.add_argument("user_id")
    p.add_argument("--status", choices=["open", "closed"], default=None)
    p.add_argument("--head", type=int, default=0, help="Show only first N (0 = all)")

    summary = subparsers.add_parser("summary", help="Profit summaries (/summaries)")
    summary_sub = summary.add_subparsers(dest="summary_cmd", required=True)
    p = summary_sub.add_parser("get", help="GET /summaries/{user_id}")
    p.add_argument("user_id")
    p = summary_sub.add_parser("reconcile", help="POST /summaries/{user_id}/reconcile")
    p.add_argument("user_id")

    alerts = subparsers.add_parser("alerts", help="Price alerts (/alerts)")
    alerts_sub = alerts.add_subparsers(dest="alerts_cmd", required=True)
    p = alerts_sub.add_parser("create", help="POST /alerts")
    p.add_argument("user_id")
    p.add_argument("symbol")
    p.add_argument("condition", choices=["above", "below"])
    p.add_argument("price")
    p = alerts_sub.add_parser("list", help="GET /alerts")
    p.add_argument("user_id")
    p = alerts_sub.add_parser("delete", help="DELETE /alerts/{id}")
    p.add_argument("alert_id")

    ticks = subparsers.add_parser("ticks", help="Tick ingestion (/ticks)")
    ticks_sub = ticks.add_subparsers(dest="ticks_cmd", required=True)
    p = ticks_sub.add_parser("send", help="POST /ticks")
    p.add_argument("symbol")
    p.add_argument("price")
    p = ticks_sub.add_parser("replay", help="Send a JSON-lines file over /ticks/stream")
    p.add_argument("file")

    args = parser.parse_args()
    base_url = args.base_url.rstrip("/")

    handlers = {
        "health": cmd_health,
        "trades": {
            "open": cmd_trades_open,
            "close": cmd_trades_close,
            "list": cmd_trades_list,
        },
        "summary": {
            "get": cmd_summary_get,
            "reconcile": cmd_summary_reconcile,
        },
        "alerts": {
            "create": cmd_alerts_create,
            "list": cmd_alerts_list,
            "delete": cmd_alerts_delete,
        },
        "ticks": {
            "send": cmd_ticks_send,
            "replay": cmd_ticks_replay,
        },
    }

    cmd = args.command
    if cmd == "health":
        handler = handlers["health"]
    elif cmd == "ticks" and args.ticks_cmd == "replay":
        return cmd_ticks_replay(None, args)
    else:
        handler = handlers[cmd][getattr(args, f"{cmd}_cmd")]

    try:
        with httpx.Client(base_url=base_url, timeout=args.timeout) as client:
            return handler(client, args)
    except httpx.HTTPStatusError as e:
        print(f"HTTP error: {e.response.status_code}", file=sys.stderr)
        if e.response.content:
            try:
                print(e.response.json(), file=sys.stderr)
            except ValueError:
                print(e.response.text, file=sys.stderr)
        return 1
    except httpx.RequestError as e:
        print(f"Request error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
