#!/usr/bin/env python3
"""Reconcile a JSON snapshot of routes, jobs, vehicles, trucks and drivers.

The snapshot is loaded into the in-memory stores and every entity is
recomputed from its relations. Each correction is printed; with
``--output`` the corrected snapshot is written back out.

Usage
-----
::

    python scripts/reconcile_snapshot.py snapshot.json
    python scripts/reconcile_snapshot.py snapshot.json --json
    python scripts/reconcile_snapshot.py snapshot.json --output fixed.json

The snapshot is an object with ``vehicles``, ``transportJobs``,
``routes``, ``trucks`` and ``drivers`` arrays (snake_case keys are
accepted too). Documents may use ``_id`` and camelCase field names.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from routesync import (  # noqa: E402
    Driver,
    EntityStores,
    Reconciler,
    Route,
    TransportJob,
    Truck,
    Vehicle,
)

_COLLECTIONS: dict[str, tuple[str, ...]] = {
    "vehicles": ("vehicles",),
    "transport_jobs": ("transportJobs", "transport_jobs"),
    "routes": ("routes",),
    "trucks": ("trucks",),
    "drivers": ("drivers", "users"),
}


def _documents(snapshot: dict[str, Any], name: str) -> list[dict[str, Any]]:
    for key in _COLLECTIONS[name]:
        if key in snapshot:
            return list(snapshot[key] or [])
    return []


def load_stores(snapshot: dict[str, Any]) -> EntityStores:
    return EntityStores.in_memory(
        vehicles=[Vehicle.model_validate(doc) for doc in _documents(snapshot, "vehicles")],
        transport_jobs=[TransportJob.model_validate(doc) for doc in _documents(snapshot, "transport_jobs")],
        routes=[Route.model_validate(doc) for doc in _documents(snapshot, "routes")],
        trucks=[Truck.model_validate(doc) for doc in _documents(snapshot, "trucks")],
        drivers=[Driver.model_validate(doc) for doc in _documents(snapshot, "drivers")],
    )


async def dump_stores(stores: EntityStores) -> dict[str, Any]:
    return {
        "vehicles": [v.model_dump(mode="json", by_alias=True) for v in await stores.vehicles.find({})],
        "transportJobs": [j.model_dump(mode="json", by_alias=True) for j in await stores.transport_jobs.find({})],
        "routes": [r.model_dump(mode="json", by_alias=True) for r in await stores.routes.find({})],
        "trucks": [t.model_dump(mode="json", by_alias=True) for t in await stores.trucks.find({})],
        "drivers": [d.model_dump(mode="json", by_alias=True) for d in await stores.drivers.find({})],
    }


async def run(args: argparse.Namespace) -> int:
    snapshot = json.loads(Path(args.snapshot).read_text(encoding="utf-8"))
    stores = load_stores(snapshot)
    results = await Reconciler(stores).recompute_all()

    if args.json:
        print(json.dumps([result.model_dump(mode="json") for result in results], indent=2))
    elif not results:
        print("Snapshot is consistent; nothing to correct.")
    else:
        for result in results:
            print(f"{result.entity_type:<14} {result.entity_id:<26} {result.before!s:>32} -> {result.after}")
        print(f"\n{len(results)} correction(s)")

    if args.output:
        Path(args.output).write_text(json.dumps(await dump_stores(stores), indent=2), encoding="utf-8")
        print(f"Corrected snapshot written to {args.output}", file=sys.stderr)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Reconcile derived statuses in a JSON snapshot")
    parser.add_argument("snapshot", help="Path to the snapshot JSON file")
    parser.add_argument("--json", action="store_true", help="Print corrections as JSON")
    parser.add_argument("--output", help="Write the corrected snapshot to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
