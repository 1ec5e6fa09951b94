#!/usr/bin/env python3
"""
Generate access keys for clinic users and a JWT secret for the API server.
Prints ready-to-run SQL for the users table and a line for your .env file.

Usage: python -m scripts.generate_keys [role ...]
"""

import secrets
import string
import sys

from clinicore.permissions import Role, parse_role
from clinicore.rbac import display_role


def generate_api_key(prefix="cmh", length=32):
    """Generate a secure random access key."""
    chars = string.ascii_letters + string.digits
    random_part = "".join(secrets.choice(chars) for _ in range(length))
    return f"{prefix}_{random_part}"


def generate_secret_key():
    return secrets.token_hex(32)


def user_insert_sql(username, display_name, role, api_key):
    """INSERT statement for one active user; rejects roles the system does not know."""
    if parse_role(role) is None:
        raise ValueError(f"Unsupported role '{role}'.")
    name = display_name.replace("'", "''")
    return (
        "INSERT INTO users\n"
        "    (username, display_name, role, api_key, is_active, permissions_overridden)\n"
        "VALUES\n"
        f"    ('{username}', '{name}', '{role}', '{api_key}', TRUE, FALSE);"
    )


def main(argv=None):
    roles = (argv if argv is not None else sys.argv[1:]) or [Role.ADMIN.value]

    print("=" * 70)
    print("Clinic Core Key Generator")
    print("=" * 70)
    print()
    print("JWT secret (copy to .env):")
    print("-" * 70)
    print(f"JWT_SECRET_KEY={generate_secret_key()}")
    print()

    for role in roles:
        try:
            sql = user_insert_sql(f"{role}1", f"{display_role(role)} One", role, generate_api_key())
        except ValueError as e:
            print(f"[ERROR] {e}", file=sys.stderr)
            continue
        print(f"-- For a {display_role(role)}:")
        print(sql)
        print()

    print("=" * 70)
    print("Note: Run these SQL statements in your database to create users.")
    print("=" * 70)


if __name__ == "__main__":
    main()
