# scripts/smoke.py
"""
Smoke Test Script for the autosaver scheduler on a real event loop.

Simulates a short typing burst against a document and persists it to a JSON
file, so the timing can be watched in wall-clock time.

Usage
-----
1. Default burst, idle window from the environment:
    $ python scripts/smoke.py

2. Custom output file and idle window:
    $ python scripts/smoke.py --out /tmp/draft.json --idle-ms 500
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from autosaver import SchedulerConfig, asyncio_runtime, create

# --------------------------------------------------------------------------- #
# Environment Setup
# --------------------------------------------------------------------------- #
env_path = Path(".env")
if env_path.exists():
    load_dotenv(env_path)
    print("✅ Loaded .env file")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

# --------------------------------------------------------------------------- #
# Test Data
# --------------------------------------------------------------------------- #
KEYSTROKES = "Distributed confidence"


async def run(out: Path, idle_ms: int | None, latency_s: float) -> int:
    """Type a title one key at a time and return the number of writes."""
    writes = 0

    async def persist(doc: dict[str, str]) -> None:
        nonlocal writes
        await asyncio.sleep(latency_s)
        out.write_text(json.dumps(doc, ensure_ascii=False), encoding="utf-8")
        writes += 1
        print(f"  💾 wrote {doc['title']!r}")

    runtime = asyncio_runtime()
    base = SchedulerConfig.from_settings()
    config = base if idle_ms is None else base.model_copy(update={"idle_ms": idle_ms})
    scheduler = create({"title": ""}, persist, config, runtime=runtime)

    typed = ""
    for ch in KEYSTROKES:
        typed += ch
        scheduler.on_change({"title": typed})
        await asyncio.sleep(0.05)

    print(f"... waiting out the idle window ({config.idle_ms} ms) ...")
    await asyncio.sleep(config.idle_seconds + latency_s + 0.2)
    scheduler.teardown()
    await runtime.launcher.drain()  # type: ignore[attr-defined]
    print(f"📋 Status: {scheduler.status.describe()}")
    return writes


def main() -> None:
    """Execute the smoke test workflow."""
    parser = argparse.ArgumentParser(description="Run autosaver Smoke Test")
    parser.add_argument("--out", "-o", type=str, default="artifacts/smoke.json")
    parser.add_argument("--idle-ms", type=int, default=None)
    parser.add_argument("--latency", type=float, default=0.3, help="Persist latency in seconds")
    args = parser.parse_args()

    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)

    writes = asyncio.run(run(out, args.idle_ms, args.latency))

    print("\n" + "=" * 60)
    print(f"✅ {len(KEYSTROKES)} edits coalesced into {writes} writes")
    print("=" * 60)
    print(f"\n💾 Final document: {out.read_text(encoding='utf-8')}")


if __name__ == "__main__":
    main()
