"""
Oversell Simulation Script

Fires a burst of concurrent orders at one TRACKED menu item whose stock is
smaller than the demand, then checks that exactly `stock` orders succeeded
and the item ended at zero.

Run from project root (API must be running):
    python scripts/simulate.py --item-id 1 --stock 10 --orders 50
"""

import argparse
import asyncio
import random
import sys
import time
from datetime import datetime
from typing import Any

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50
OPENING_STOCK = 10

WAITERS = [f"waiter-{n}" for n in range(1, 6)]
NOTES = [None, "no onions", "extra spicy", "well done", None]


def generate_order_payload(item_id: int) -> dict[str, Any]:
    """One single-unit order for the contested item."""
    return {
        "tableId": random.randint(1, 30),
        "type": "DINE_IN",
        "items": [
            {"menuItemId": item_id, "quantity": 1, "notes": random.choice(NOTES)},
        ],
    }


async def reset_stock(client: httpx.AsyncClient, item_id: int, stock: int) -> None:
    response = await client.post(
        f"{API_BASE_URL}/menu-items/stock/daily-reset",
        json={"items": [{"itemId": item_id, "quantity": stock}]},
        headers={"x-user-id": "simulation"},
    )
    response.raise_for_status()


async def current_stock(client: httpx.AsyncClient, item_id: int) -> int:
    """Latest new_stock recorded in the item's adjustment history."""
    response = await client.get(
        f"{API_BASE_URL}/menu-items/{item_id}/stock/history",
        params={"page": 1, "limit": 1},
    )
    response.raise_for_status()
    adjustments = response.json()["adjustments"]
    return adjustments[0]["new_stock"] if adjustments else 0


async def send_order(
    client: httpx.AsyncClient,
    item_id: int,
    order_num: int
) -> dict[str, Any]:
    payload = generate_order_payload(item_id)
    start_time = time.time()

    try:
        response = await client.post(
            f"{API_BASE_URL}/orders",
            json=payload,
            headers={"x-user-id": random.choice(WAITERS)},
            timeout=30.0
        )
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 201:
            data = response.json()
            return {
                "order_num": order_num,
                "success": True,
                "order_id": data.get("id"),
                "total": float(data.get("total_amount", 0)),
                "time": elapsed,
            }
        body = response.json() if response.headers.get("content-type", "").startswith("application/json") else {}
        return {
            "order_num": order_num,
            "success": False,
            "error_code": body.get("error_code", str(response.status_code)),
            "error": body.get("message", response.text[:100]),
            "time": elapsed,
        }
    except Exception as e:
        elapsed = round(time.time() - start_time, 3)
        return {
            "order_num": order_num,
            "success": False,
            "error_code": "CLIENT_ERROR",
            "error": str(e)[:100],
            "time": elapsed,
        }


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(
    item_id: int,
    stock: int = OPENING_STOCK,
    num_orders: int = TOTAL_ORDERS
) -> dict[str, Any]:
    print("=" * 70)
    print("OVERSELL SIMULATION - CONCURRENT ORDERS ON ONE ITEM")
    print("=" * 70)
    print(f"Target: {API_BASE_URL}")
    print(f"Item: #{item_id}")
    print(f"Opening stock: {stock}")
    print(f"Concurrent orders: {num_orders}")
    print(f"Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    async with httpx.AsyncClient() as client:
        await reset_stock(client, item_id, stock)

        start_time = time.time()
        tasks = [send_order(client, item_id, i + 1) for i in range(num_orders)]
        results = await asyncio.gather(*tasks)
        total_time = round(time.time() - start_time, 2)

        final_stock = await current_stock(client, item_id)

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]
    rejected = [r for r in failed if r["error_code"] == "INSUFFICIENT_STOCK"]
    unavailable = [r for r in failed if r["error_code"] == "ITEMS_NOT_AVAILABLE"]
    other = [r for r in failed if r not in rejected and r not in unavailable]

    expected_success = min(stock, num_orders)
    oversold = len(successful) > stock or final_stock < 0

    print("\n" + "=" * 70)
    print("SIMULATION RESULTS")
    print("=" * 70)
    print(f"\nAccepted orders: {len(successful)}/{num_orders} (expected {expected_success})")
    print(f"Rejected, insufficient stock: {len(rejected)}")
    print(f"Rejected, item unavailable: {len(unavailable)}")
    print(f"Other failures: {len(other)}")
    print(f"Final stock: {final_stock} (expected {stock - expected_success})")
    print(f"Total Time: {total_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        print(f"\nAverage accepted response: {avg_time}s")
        print(f"Slowest accepted response: {max(r['time'] for r in successful)}s")

    if other:
        print("\nUnexpected failures (showing first 5):")
        for f in other[:5]:
            print(f"   Order #{f['order_num']} [{f['error_code']}]: {f['error']}")

    print("\n" + "=" * 70)
    if oversold:
        print("OVERSELL DETECTED")
    elif len(successful) == expected_success and not other:
        print("NO OVERSELL - stock fully consumed, excess demand rejected")
    else:
        print("NO OVERSELL - but fewer orders were accepted than stock allowed")
    print("Next: python scripts/verify.py --item-id", item_id)
    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "final_stock": final_stock,
        "oversold": oversold,
        "total_time": total_time,
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Oversell Simulation Script")
    parser.add_argument("--item-id", type=int, required=True, help="TRACKED menu item to contest")
    parser.add_argument("--stock", type=int, default=OPENING_STOCK, help="Opening stock")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    args = parser.parse_args()

    summary = asyncio.run(run_simulation(args.item_id, args.stock, args.orders))
    sys.exit(1 if summary["oversold"] else 0)
