#!/usr/bin/env python3
"""Create the marketplace tables, optionally dropping existing ones first."""
import argparse
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from kasadya import create_app
from kasadya.extensions import db


def init_database(reset: bool = False) -> None:
    app = create_app()
    with app.app_context():
        if reset:
            db.drop_all()
            print("Dropped existing tables")
        db.create_all()
        tables = ", ".join(sorted(db.metadata.tables))
        print(f"Database tables initialized at {app.config['SQLALCHEMY_DATABASE_URI']}: {tables}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--reset", action="store_true", help="Drop all tables before creating them")
    init_database(parser.parse_args().reset)
