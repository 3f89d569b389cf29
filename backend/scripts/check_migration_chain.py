"""Static migration checks for Alembic revision files.

Usage:
    python scripts/check_migration_chain.py

Checks:
- every revision id is unique and matches its file name prefix
- every down_revision exists (except the root)
- there is exactly one head revision
- every table of the ORM metadata is created by some revision
"""

from __future__ import annotations

import re
import sys
from pathlib import Path


BACKEND_DIR = Path(__file__).resolve().parents[1]
REVISION_RE = re.compile(r'^revision\s*=\s*["\']([^"\']+)["\']', re.MULTILINE)
DOWN_RE = re.compile(r'^down_revision\s*=\s*(.+)$', re.MULTILINE)
CREATE_TABLE_RE = re.compile(r'op\.create_table\(\s*["\']([^"\']+)["\']')


def _extract_scalar(raw: str) -> str | None:
    raw = raw.strip()
    if raw in {"None", ""}:
        return None
    if raw.startswith(("'", '"')) and raw.endswith(("'", '"')):
        return raw[1:-1]
    return None


def _model_tables() -> set[str]:
    sys.path.insert(0, str(BACKEND_DIR))
    from garmentflow.database import Base
    import garmentflow.models  # noqa: F401

    return set(Base.metadata.tables)


def main() -> int:
    versions_dir = BACKEND_DIR / "alembic" / "versions"
    files = sorted(versions_dir.glob("*.py"))

    revisions: dict[str, Path] = {}
    down_map: dict[str, str | None] = {}
    created: set[str] = set()
    errors: list[str] = []

    for file in files:
        text = file.read_text(encoding="utf-8")
        rev_m = REVISION_RE.search(text)
        down_m = DOWN_RE.search(text)

        if not rev_m:
            errors.append(f"{file.name}: missing revision")
            continue

        rev = rev_m.group(1)
        if rev in revisions:
            errors.append(f"Duplicate revision id {rev} in {file.name} and {revisions[rev].name}")
        if not file.name.startswith(f"{rev}_"):
            errors.append(f"{file.name}: file name does not start with revision id {rev}")
        revisions[rev] = file

        down_map[rev] = _extract_scalar(down_m.group(1)) if down_m else None
        created.update(CREATE_TABLE_RE.findall(text))

    for rev, down in down_map.items():
        if down is not None and down not in revisions:
            errors.append(f"Revision {rev} references missing down_revision {down}")

    referenced = {d for d in down_map.values() if d is not None}
    heads = [r for r in revisions if r not in referenced]
    if len(heads) != 1:
        errors.append(f"Expected exactly one head revision, found {len(heads)} ({heads})")

    missing = sorted(_model_tables() - created)
    if missing:
        errors.append(f"Tables without a migration: {', '.join(missing)}")

    print("Migration chain check")
    print(f"- files: {len(files)}")
    print(f"- revisions: {len(revisions)}")
    print(f"- tables created: {len(created)}")

    if errors:
        for err in errors:
            print(f"[FAIL] {err}")
        return 1

    print(f"[PASS] single head: {heads[0]}")
    print("[PASS] revision/down_revision integrity checks")
    print("[PASS] every model table has a migration")
    return 0


if __name__ == "__main__":
    sys.exit(main())
