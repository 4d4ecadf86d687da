"""Create an account or reset its password for local development.

This is also how admin accounts are provisioned, since public registration
only accepts customers and vendors.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure the project root is on sys.path so ``kasadya`` can be imported when the script is executed directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from kasadya import create_app
from kasadya.extensions import db
from kasadya.models import AuthAccount, User

ROLES = ["customer", "vendor", "admin"]

DEFAULT_NAMES = {
    "customer": "Customer User",
    "vendor": "Vendor User",
    "admin": "Admin User",
}


def set_password(email: str, password: str, role: str = "admin", name: str | None = None) -> None:
    app = create_app()
    email = email.strip().lower()

    with app.app_context():
        db.create_all()

        user = User.query.filter_by(email=email).first()
        if user is None:
            user = User(name=name or DEFAULT_NAMES[role], email=email, role=role)
            # Provisioned accounts skip the ID verification queue
            user.is_verified = True
            user.verification_status = "approved"
            db.session.add(user)
            db.session.flush()
            print(f"Created new {role} user: {email}")
        elif user.role != role:
            print(f"Updating user role from '{user.role}' to '{role}'")
            user.role = role

        account = db.session.get(AuthAccount, user.user_id)
        if account is None:
            account = AuthAccount(user_id=user.user_id, password_hash=generate_password_hash(password))
            db.session.add(account)
            print(f"Created auth account for user: {email}")
        else:
            account.password_hash = generate_password_hash(password)

        db.session.commit()

        print(f"Password for {role} user '{email}' has been set successfully.")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Set a user password for local testing.")
    parser.add_argument("email", help="User email address")
    parser.add_argument("password", help="Plain-text password to hash and store")
    parser.add_argument(
        "--role",
        choices=ROLES,
        default="admin",
        help="User role (default: admin)"
    )
    parser.add_argument("--name", help="Display name for a newly created user")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    set_password(args.email, args.password, args.role, args.name)


if __name__ == "__main__":
    main()
