#!/usr/bin/env python3
"""
Seed products and inventory lines from a JSON file.

Usage:
    python scripts/seed_catalog.py --file catalog.json

The file holds a list of products (or {"items": [...]}) shaped like:
    {"id": "hoodie-1", "name": "Oversized Hoodie", "price_cents": 1000,
     "variants": [{"size": "M", "color": "black", "quantity": 10}]}
Without --file a small demo catalog is written.
"""
import argparse
import json
import os
import sys

# allow running from backend/scripts
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from storefront.db import SessionLocal, init_db  # noqa: E402
from storefront.db.seed import seed_catalog  # noqa: E402

DEMO_CATALOG = [
    {
        "id": "hoodie-1",
        "name": "Oversized Hoodie",
        "price_cents": 1000,
        "variants": [
            {"size": "M", "color": "black", "quantity": 10},
            {"size": "L", "color": "black", "quantity": 5},
        ],
    },
    {
        "id": "set-1",
        "name": "Lounge Set",
        "price_cents": 250,
        "variants": [{"size": "S", "color": "grey", "quantity": 3}],
    },
]


def load_entries(path):
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        return data.get("items", [])
    return data


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--file", "-f", default=None, help="Path to catalog json")
    args = parser.parse_args()
    if args.file and not os.path.exists(args.file):
        print("File not found:", args.file)
        sys.exit(1)

    entries = load_entries(args.file) if args.file else DEMO_CATALOG
    init_db()
    db = SessionLocal()
    try:
        n = seed_catalog(db, entries)
        db.commit()
        print("Seeded products:", n)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
