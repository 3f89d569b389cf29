"""Deployment preflight checks.

Usage:
    python scripts/db_preflight.py

Reads the same environment variables as garmentflow.config but does not
import it, so a misconfigured production environment is reported instead of
crashing on settings validation. Exits non-zero when any check fails.
"""

from __future__ import annotations

import os
import sys


DEFAULT_SECRET = "garmentflow-dev-secret-key-change-in-production"
MIN_SECRET_LENGTH = 32


def _bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _int_env(name: str, default: int) -> int | None:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return None


def run() -> int:
    environment = os.getenv("ENVIRONMENT", "development").strip().lower()
    database_url = os.getenv("DATABASE_URL", "sqlite:///./garmentflow.db")
    secret_key = os.getenv("SECRET_KEY", DEFAULT_SECRET)
    auto_create_tables = _bool_env("AUTO_CREATE_TABLES", True)
    cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]
    token_minutes = _int_env("ACCESS_TOKEN_EXPIRE_MINUTES", 60)
    sku_width = _int_env("SKU_SEQUENCE_WIDTH", 3)
    sku_prefix = os.getenv("BATCH_SKU_PREFIX", "PROD").strip()

    checks: list[tuple[str, bool, str]] = [
        ("BATCH_SKU_PREFIX is set", bool(sku_prefix), f"BATCH_SKU_PREFIX={sku_prefix or '<empty>'}"),
        (
            "SKU_SEQUENCE_WIDTH is a positive integer",
            sku_width is not None and sku_width >= 1,
            f"SKU_SEQUENCE_WIDTH={os.getenv('SKU_SEQUENCE_WIDTH', '3')}",
        ),
        (
            "ACCESS_TOKEN_EXPIRE_MINUTES is a positive integer",
            token_minutes is not None and token_minutes > 0,
            f"ACCESS_TOKEN_EXPIRE_MINUTES={os.getenv('ACCESS_TOKEN_EXPIRE_MINUTES', '60')}",
        ),
    ]

    if environment in {"production", "prod"}:
        checks.extend(
            [
                (
                    "DATABASE_URL is not SQLite",
                    "sqlite" not in database_url.lower(),
                    "stock decrements rely on row-level locking",
                ),
                (
                    "SECRET_KEY is not the default value",
                    secret_key != DEFAULT_SECRET,
                    "SECRET_KEY is custom" if secret_key != DEFAULT_SECRET else "SECRET_KEY is default",
                ),
                (
                    f"SECRET_KEY has at least {MIN_SECRET_LENGTH} characters",
                    len(secret_key) >= MIN_SECRET_LENGTH,
                    f"length={len(secret_key)}",
                ),
                (
                    "AUTO_CREATE_TABLES is disabled",
                    not auto_create_tables,
                    f"AUTO_CREATE_TABLES={auto_create_tables}",
                ),
                (
                    "CORS_ORIGINS does not allow every origin",
                    "*" not in cors_origins,
                    f"CORS_ORIGINS={','.join(cors_origins) or '<default>'}",
                ),
            ]
        )

    has_failures = False
    print("GarmentFlow Preflight")
    print(f"- environment: {environment}")
    for title, ok, detail in checks:
        marker = "PASS" if ok else "FAIL"
        print(f"[{marker}] {title} ({detail})")
        if not ok:
            has_failures = True

    if has_failures:
        print("\nPreflight failed. Resolve failed checks before deployment.")
        return 1

    print("\nPreflight passed.")
    return 0


if __name__ == "__main__":
    sys.exit(run())
