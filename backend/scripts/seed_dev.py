"""Seed a development database and print a bearer token per role.

Usage:
    python scripts/seed_dev.py

Idempotent: existing users, products and materials (matched by username,
SKU and code) are left untouched.
"""

from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from garmentflow.core.state_machine import Role  # noqa: E402
from garmentflow.database import SessionLocal, create_tables, transaction  # noqa: E402
from garmentflow.models import Material, MaterialColorVariant, Product, User  # noqa: E402
from garmentflow.utils.security import create_access_token  # noqa: E402

USERS = [
    ("owner", "Owner", Role.OWNER),
    ("produksi", "Kepala Produksi", Role.KEPALA_PRODUKSI),
    ("gudang", "Kepala Gudang", Role.KEPALA_GUDANG),
    ("pemotong", "Pemotong", Role.PEMOTONG),
    ("penjahit", "Penjahit", Role.PENJAHIT),
    ("finishing", "Finishing", Role.FINISHING),
]
VARIANTS = [
    ("Hitam", "#000000", Decimal("150"), Decimal("20")),
    ("Putih", "#FFFFFF", Decimal("80"), Decimal("10")),
]


def seed() -> dict[str, User]:
    db = SessionLocal()
    try:
        with transaction(db):
            users = {}
            for username, name, role in USERS:
                user = db.query(User).filter(User.username == username).first()
                if user is None:
                    user = User(username=username, name=name, role=role.value)
                    db.add(user)
                users[username] = user

            if db.query(Product).filter(Product.sku == "KMJ-001").first() is None:
                db.add(Product(sku="KMJ-001", name="Kemeja Lengan Panjang"))

            material = db.query(Material).filter(Material.code == "CTN-30S").first()
            if material is None:
                material = Material(code="CTN-30S", name="Katun Combed 30s", unit="METER")
                db.add(material)
                db.flush()
                for color, code, stock, minimum in VARIANTS:
                    db.add(
                        MaterialColorVariant(
                            material_id=material.id,
                            color_name=color,
                            color_code=code,
                            stock=stock,
                            minimum_stock=minimum,
                            unit="METER",
                        )
                    )
        for user in users.values():
            db.refresh(user)
        return users
    finally:
        db.close()


def main() -> int:
    create_tables()
    users = seed()
    print("Seeded users and bearer tokens:")
    for username, user in users.items():
        print(f"- {username:<10} {user.role:<16} {create_access_token(user.id, role=user.role)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
