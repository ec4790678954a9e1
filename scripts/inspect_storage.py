#!/usr/bin/env python3
"""Inspect the durable records of a pydatalayer storage file.

Prints every record the data layer keeps (state tree, form entries,
cached rule set) with its age and whether it is stale under the
configured TTLs.

Usage
-----
::

    python scripts/inspect_storage.py ~/.cache/datalayer.json

Options::

    --prefix PREFIX      Storage key prefix (default: DATALAYER_STORAGE_PREFIX or "luma")
    --json               Output as machine-readable JSON
    --show-data          Include (redacted) snapshots in the output
    --refresh-rules      Fetch the rule set from DATALAYER_BASE_URL before reporting
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pydatalayer import DataLayerConfig, DataLayerRuntime, JsonFileStorage, PersistenceAdapter  # noqa: E402
from pydatalayer._constants import form_key, rules_key, state_key  # noqa: E402
from pydatalayer._redact import redact_for_log  # noqa: E402


def _section(title: str) -> str:
    line = "=" * 60
    return f"\n{line}\n  {title}\n{line}"


def _fmt_age(seconds: float | None) -> str:
    if seconds is None:
        return "-"
    if seconds < 120:
        return f"{seconds:.0f}s"
    if seconds < 7200:
        return f"{seconds / 60:.0f}m"
    if seconds < 172800:
        return f"{seconds / 3600:.1f}h"
    return f"{seconds / 86400:.1f}d"


def describe_records(
    persistence: PersistenceAdapter,
    config: DataLayerConfig,
    *,
    show_data: bool = False,
) -> list[dict[str, Any]]:
    """Summarize each known record under *config*'s storage prefix."""
    prefix = config.storage_prefix
    known = (
        ("state", state_key(prefix), config.state_ttl),
        ("forms", form_key(prefix), config.form_ttl),
        ("rules", rules_key(prefix), config.rules_ttl),
    )
    rows: list[dict[str, Any]] = []
    for label, key, ttl in known:
        record = persistence.load_record(key)
        age = persistence.age(key)
        row: dict[str, Any] = {
            "name": label,
            "key": key,
            "present": record is not None,
            "ttl_seconds": ttl,
            "age_seconds": age,
            "stale": age is not None and age > ttl,
        }
        if record is not None:
            row["written_at"] = datetime.fromtimestamp(record.written_at, UTC).isoformat()
            row["marker"] = record.marker
            if show_data:
                row["snapshot"] = redact_for_log(record.snapshot)
        rows.append(row)
    return rows


async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Show ages and staleness of pydatalayer durable records.",
    )
    parser.add_argument("path", help="JSON storage file (DATALAYER_STORAGE_PATH)")
    parser.add_argument("--prefix", help="Storage key prefix")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output machine-readable JSON")
    parser.add_argument("--show-data", action="store_true", help="Include redacted snapshots")
    parser.add_argument("--refresh-rules", action="store_true", help="Fetch the rule set before reporting")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    overrides: dict[str, Any] = {"storage_path": args.path}
    if args.prefix:
        overrides["storage_prefix"] = args.prefix
    config = DataLayerConfig.from_env(**overrides)
    storage = JsonFileStorage(args.path)

    if args.refresh_rules:
        async with DataLayerRuntime(config, storage=storage) as runtime:
            await runtime.refresh_rules()

    persistence = PersistenceAdapter(storage)
    rows = describe_records(persistence, config, show_data=args.show_data)
    other_keys = sorted(set(storage.keys()) - {row["key"] for row in rows})

    if args.json_mode:
        result = {
            "timestamp": datetime.now(UTC).isoformat(),
            "path": str(storage.path),
            "records": rows,
            "other_keys": other_keys,
        }
        print(json.dumps(result, indent=2, default=str, ensure_ascii=False))
        return

    out: list[str] = [_section(f"pydatalayer storage {storage.path}")]
    for row in rows:
        status = "missing"
        if row["present"]:
            status = "STALE" if row["stale"] else "fresh"
        out.append(
            f"  {row['name']:<6} {row['key']:<28} {status:<8} "
            f"age={_fmt_age(row['age_seconds']):<7} ttl={_fmt_age(row['ttl_seconds'])}"
        )
        if row.get("marker"):
            out.append(f"         last-modified: {row['marker']}")
        if "snapshot" in row:
            out.append(json.dumps(row["snapshot"], indent=2, default=str, ensure_ascii=False))
    if other_keys:
        out.append(_section("OTHER KEYS"))
        out.extend(f"  {key}" for key in other_keys)
    print("\n".join(out))


if __name__ == "__main__":
    asyncio.run(main())
