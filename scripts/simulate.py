"""
Chaos Simulation Script

Simulates a busy counter against a running development server: many
customers ordering at once, then several staff members racing to move the
same orders forward. Every order must get a distinct number and every race
must have exactly one winner.

Run from project root: python scripts/simulate.py
"""

import asyncio
import random
import time
import argparse
from collections import Counter
from datetime import datetime
from typing import Any

import httpx

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50
STAFF_PER_RACE = 4

# Sample data for random orders
FIRST_NAMES = ["John", "Jane", "Mike", "Sarah", "Tom", "Emma", "David", "Lisa", "Chris", "Amy"]
LAST_NAMES = ["Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller", "Davis", "Wilson", "Taylor"]
MENU_ITEMS = [
    "chicken_biryani",
    "veg_biryani",
    "hakka_noodles",
    "fried_rice",
    "veg_burger",
    "paneer_roll",
    "chicken_roll",
    "chocolate_cake",
]


def customer_headers(customer_id: str) -> dict[str, str]:
    return {"X-User-Id": customer_id, "X-User-Role": "customer"}


def staff_headers(staff_id: str) -> dict[str, str]:
    return {"X-User-Id": staff_id, "X-User-Role": "staff"}


def generate_order_payload() -> dict[str, Any]:
    """Generate payload for /api/orders endpoint."""
    items = [
        {"menu_item_ref": ref, "quantity": random.randint(1, 3)}
        for ref in random.sample(MENU_ITEMS, random.randint(1, 4))
    ]
    return {
        "customer_name": f"{random.choice(FIRST_NAMES)} {random.choice(LAST_NAMES)}",
        "items": items,
        "special_instructions": random.choice([None, "Extra napkins", "No onions", "Spicy"]),
        "payment_method": random.choice(["cash", "card", "upi"]),
    }


# =============================================================================
# ORDER PLACEMENT
# =============================================================================

async def send_order(client: httpx.AsyncClient, order_num: int) -> dict[str, Any]:
    """Place one order as a fresh customer."""
    start_time = time.time()

    try:
        response = await client.post(
            f"{API_BASE_URL}/api/orders",
            json=generate_order_payload(),
            headers=customer_headers(f"sim-customer-{order_num}"),
            timeout=30.0,
        )
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 201:
            data = response.json()
            return {
                "order_num": order_num,
                "success": True,
                "id": data["id"],
                "order_number": data["order_number"],
                "total": data["total"],
                "time": elapsed,
            }
        return {
            "order_num": order_num,
            "success": False,
            "error": response.text[:100],
            "time": elapsed,
        }
    except httpx.HTTPError as e:
        return {
            "order_num": order_num,
            "success": False,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
        }


# =============================================================================
# STATUS RACES
# =============================================================================

async def race_transition(client: httpx.AsyncClient, order_id: str, status: str) -> Counter:
    """Have several staff members request the same transition at once."""
    requests = [
        client.patch(
            f"{API_BASE_URL}/api/orders/{order_id}/status",
            json={"status": status},
            headers=staff_headers(f"sim-staff-{i}"),
            timeout=30.0,
        )
        for i in range(STAFF_PER_RACE)
    ]
    responses = await asyncio.gather(*requests, return_exceptions=True)
    return Counter(
        r.status_code if isinstance(r, httpx.Response) else "error"
        for r in responses
    )


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(num_orders: int = TOTAL_ORDERS, races: int = 10) -> dict[str, Any]:
    """
    Run the chaos simulation.

    Args:
        num_orders: Number of orders to place concurrently
        races: Number of placed orders to race staff updates on
    """
    print("=" * 70)
    print("🔥 CHAOS SIMULATION - HIGH CONCURRENCY TEST")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient() as client:
        print("\n🚀 Firing orders...\n")
        results = await asyncio.gather(*[send_order(client, i + 1) for i in range(num_orders)])

        successful = [r for r in results if r["success"]]
        print(f"\n🏁 Racing {STAFF_PER_RACE} staff members on {min(races, len(successful))} orders...\n")
        race_results = await asyncio.gather(*[
            race_transition(client, r["id"], "accepted") for r in successful[:races]
        ])

    total_time = round(time.time() - start_time, 2)
    failed = [r for r in results if not r["success"]]
    numbers = Counter(r["order_number"] for r in successful)
    duplicates = [n for n, count in numbers.items() if count > 1]
    bad_races = [c for c in race_results if c.get(200, 0) != 1]

    # Print results
    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)

    print(f"\n✅ Successful Orders: {len(successful)}/{num_orders}")
    print(f"❌ Failed Orders: {len(failed)}/{num_orders}")
    print(f"⏱️  Total Time: {total_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        print(f"\n📈 Performance Metrics:")
        print(f"   Average Response: {avg_time}s")
        print(f"   Fastest: {min(r['time'] for r in successful)}s")
        print(f"   Slowest: {max(r['time'] for r in successful)}s")
        print(f"   💰 Total Revenue: {sum(r['total'] for r in successful):.2f}")

    if duplicates:
        print(f"\n⚠️ Duplicate order numbers: {duplicates}")
    else:
        print(f"\n✅ All order numbers distinct")

    if bad_races:
        print(f"⚠️ {len(bad_races)} races without exactly one winner: {bad_races}")
    else:
        print(f"✅ Every status race had exactly one winner")

    if failed:
        print(f"\n⚠️  Failed Order Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")

    print("\n" + "=" * 70)
    print("🔍 Next: python scripts/verify.py")
    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "duplicates": duplicates,
        "bad_races": len(bad_races),
        "total_time": total_time,
    }


async def test_single_flows() -> bool:
    """Test individual flows before chaos simulation."""
    print("\n" + "=" * 70)
    print("🧪 TESTING INDIVIDUAL FLOWS")
    print("=" * 70)

    async with httpx.AsyncClient() as client:
        print("\n1️⃣ Health Check...")
        response = await client.get(f"{API_BASE_URL}/health")
        if response.status_code != 200:
            print(f"   ❌ Failed: {response.text}")
            return False
        data = response.json()
        print(f"   ✅ Status: {data.get('status')}")
        print(f"   Database: {data.get('database')}")
        print(f"   Realtime: {data.get('realtime')}")

        print("\n2️⃣ Single Order...")
        response = await client.post(
            f"{API_BASE_URL}/api/orders",
            json=generate_order_payload(),
            headers=customer_headers("sim-preflight"),
        )
        if response.status_code != 201:
            print(f"   ❌ Failed: {response.text[:100]}")
            return False
        order = response.json()
        print(f"   ✅ Order {order['order_number']} placed, total {order['total']}")

        print("\n3️⃣ Tracking...")
        response = await client.get(f"{API_BASE_URL}/api/orders/track/%23{order['order_number']}")
        if response.status_code == 200:
            print(f"   ✅ Tracked: {response.json()['status']}")
        else:
            print(f"   ❌ Failed: {response.text[:100]}")
            return False

    print("\n" + "=" * 70)
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Chaos Simulation Script")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--races", type=int, default=10, help="Number of status races")
    parser.add_argument("--skip-tests", action="store_true", help="Skip individual tests")
    args = parser.parse_args()

    if not args.skip_tests:
        if not asyncio.run(test_single_flows()):
            print("\n❌ Pre-flight tests failed. Fix issues before running simulation.")
            raise SystemExit(1)
        print("\n✅ Pre-flight tests passed!")

    asyncio.run(run_simulation(args.orders, args.races))
