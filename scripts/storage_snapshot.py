"""Dump the marketplace store to a JSON snapshot, or load one back."""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from kasadya import create_app
from kasadya.extensions import db
from kasadya.storage import StorageError, export_snapshot, import_snapshot


def dump(path: Path) -> None:
    app = create_app()
    with app.app_context():
        snapshot = export_snapshot()
    path.write_text(json.dumps(snapshot, indent=2), encoding="utf-8")
    print(f"Wrote {len(snapshot['users'])} users and {len(snapshot['bookings'])} bookings to {path}")


def load(path: Path) -> int:
    try:
        snapshot = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        print(f"Error: could not read snapshot {path}: {exc}")
        return 1

    app = create_app()
    with app.app_context():
        db.create_all()
        try:
            counts = import_snapshot(snapshot)
        except StorageError as exc:
            print(f"Error: {exc}. The store was left unchanged.")
            return 1

    print("Imported " + ", ".join(f"{count} {key}" for key, count in counts.items()))
    return 0


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("action", choices=["dump", "load"])
    parser.add_argument("path", type=Path, help="Snapshot JSON file")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    if args.action == "dump":
        dump(args.path)
        return 0
    return load(args.path)


if __name__ == "__main__":
    sys.exit(main())
