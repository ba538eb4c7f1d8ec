"""Replay visual aids queued while the remote store was unreachable."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Ensure repo root is on sys.path so local imports resolve before site-packages.
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from visual_aids.config import get_settings
from visual_aids.core.logging import initialize_logging
from visual_aids.services.factory import build_visual_aid_service


async def _run(*, dry_run: bool) -> int:
  """Run one sweep and return the process exit code."""
  settings = get_settings()
  initialize_logging(settings)
  service = build_visual_aid_service(settings)
  try:
    pending = await service.pending_sync_count()
    print(f"Pending visual aids: {pending}")
    if dry_run or pending == 0:
      return 0
    report = await service.sync_offline_queue()
  finally:
    await service.close()

  print(f"Synced {report.synced}/{report.attempted} (failed={report.failed}, skipped={report.skipped})")
  for visual_aid_id in report.synced_ids:
    print(f" - {visual_aid_id}")
  return 1 if report.failed else 0


def main() -> None:
  """Parse arguments and run the sweep."""
  parser = argparse.ArgumentParser(description="Replay queued visual aid writes against Firestore.")
  parser.add_argument("--dry-run", action="store_true", help="Only report how many writes are queued.")
  args = parser.parse_args()
  raise SystemExit(asyncio.run(_run(dry_run=args.dry_run)))


if __name__ == "__main__":
  main()
