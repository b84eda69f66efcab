#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Create the catalogue schema and fill it with sample data:
kitchenware products, a few Istanbul stores, and a random stock quantity
(0..19) for every (product, store) pair.

Env:
  DATABASE_URL   (required)

Usage:
  python scripts/seed.py                # wipe + seed
  python scripts/seed.py --no-clear     # append
  python scripts/seed.py --seed 42      # reproducible quantities
"""
import argparse
import os
import random
import sys
from typing import List, Optional

import psycopg2
import psycopg2.extras

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from services.catalog import SCHEMA_SQL  # noqa: E402

PRODUCTS = [
    {"name": "Çelik Tencere 24cm", "brand": "BİM", "category": "Mutfak"},
    {"name": "Döküm Tava 28cm", "brand": "BİM", "category": "Mutfak"},
    {"name": "Cam Saklama Kabı", "brand": "BİM", "category": "Mutfak"},
    {"name": "Tencere Seti 6 Parça", "brand": "BİM", "category": "Mutfak"},
]

STORES = [
    {"name": "BİM Beşiktaş", "latitude": 41.0430, "longitude": 29.0054, "address": "Beşiktaş, İstanbul"},
    {"name": "BİM Kadıköy", "latitude": 40.9917, "longitude": 29.0270, "address": "Kadıköy, İstanbul"},
    {"name": "BİM Şişli", "latitude": 41.0600, "longitude": 28.9872, "address": "Şişli, İstanbul"},
]

MAX_QTY = 20


def log(msg: str) -> None:
    print(f"[seed] {msg}", file=sys.stderr)


def seed(conn, clear: bool = True, rng: Optional[random.Random] = None) -> dict:
    rng = rng or random.Random()
    with conn:  # transaction
        with conn.cursor() as cur:
            cur.execute(SCHEMA_SQL)
            if clear:
                cur.execute("TRUNCATE stock, products, stores RESTART IDENTITY CASCADE")

            product_ids: List[int] = []
            for p in PRODUCTS:
                cur.execute(
                    "INSERT INTO products (name, brand, category) VALUES (%s, %s, %s) RETURNING id",
                    (p["name"], p["brand"], p["category"]),
                )
                product_ids.append(cur.fetchone()[0])

            store_ids: List[int] = []
            for s in STORES:
                cur.execute(
                    """
                    INSERT INTO stores (name, latitude, longitude, address)
                    VALUES (%s, %s, %s, %s) RETURNING id
                    """,
                    (s["name"], s["latitude"], s["longitude"], s["address"]),
                )
                store_ids.append(cur.fetchone()[0])

            stock = [
                (pid, sid, rng.randrange(MAX_QTY))
                for pid in product_ids
                for sid in store_ids
            ]
            psycopg2.extras.execute_values(
                cur,
                """
                INSERT INTO stock (product_id, store_id, quantity) VALUES %s
                ON CONFLICT (product_id, store_id) DO UPDATE SET quantity = EXCLUDED.quantity
                """,
                stock,
            )

    return {"products": len(product_ids), "stores": len(store_ids), "stock": len(stock)}


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Seed products, stores and stock")
    ap.add_argument("--no-clear", action="store_true", help="Keep existing rows")
    ap.add_argument("--seed", type=int, default=None, help="Random seed for stock quantities")
    args = ap.parse_args(argv)

    dsn = os.environ.get("DATABASE_URL")
    if not dsn:
        log("Set DATABASE_URL")
        return 1

    conn = psycopg2.connect(dsn)
    try:
        counts = seed(conn, clear=not args.no_clear, rng=random.Random(args.seed))
    finally:
        conn.close()
    log(f"Seed complete: {counts['products']} products, {counts['stores']} stores, {counts['stock']} stock rows")
    return 0


if __name__ == "__main__":
    sys.exit(main())
