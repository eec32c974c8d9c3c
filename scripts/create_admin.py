"""
Create a back-office admin user

Hashes the password with the same bcrypt context the login flow uses and
assigns one role from admin_roles (seeded by migrations/003_admin_tables.sql).

Usage:
    python3 scripts/create_admin.py <email> <password> [--role super_admin|manager]

Author: TM3
Date: 2025-10-17
"""
import os
import re
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app.core.admin_auth import hash_password
from app.repositories.admin_repository import AdminRepository

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
MIN_PASSWORD_LENGTH = 8
DEFAULT_ROLE = "super_admin"

admin_repository = AdminRepository()


def create_admin(email: str, password: str, role: str = DEFAULT_ROLE) -> str:
    """
    Create an active admin and return its id

    Raises:
        ValueError: bad email, short password, or the email is taken
        LookupError: unknown role
    """
    email = email.strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValueError("Invalid email format")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if admin_repository.get_by_email(email):
        raise ValueError(f"User with email {email} already exists")

    return admin_repository.create_user(email, hash_password(password), role)


def main(argv=None) -> int:
    import argparse

    parser = argparse.ArgumentParser(description='Create a back-office admin user')
    parser.add_argument('email', help='Admin email address')
    parser.add_argument('password', help=f'Password (min {MIN_PASSWORD_LENGTH} characters)')
    parser.add_argument('--role', default=DEFAULT_ROLE, help='Role name from admin_roles (default: super_admin)')
    args = parser.parse_args(argv)

    print(f"Creating admin user {args.email} with role {args.role}...")
    try:
        user_id = create_admin(args.email, args.password, args.role)
    except (ValueError, LookupError) as e:
        print(f"\n❌ ERROR: {e}")
        return 1

    print(f"\n✅ Admin user created (id {user_id})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
