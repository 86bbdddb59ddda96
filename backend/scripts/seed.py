"""CLI script to prepare a fresh database: tables, roles and an optional admin.
Usage: python scripts/seed.py [--admin-email EMAIL --admin-password PASSWORD]
"""
import argparse
import logging
import pathlib
import sys

# Ensure `backend/` is on sys.path so `thesis_api` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from thesis_api.config import settings
from thesis_api.database import create_db_and_tables, engine
from thesis_api.seed import ensure_admin, seed_roles


def main(admin_email=None, admin_password=None):
    """Create tables, seed roles and permissions, then the admin if asked.

    Safe to run repeatedly; existing rows are left untouched.
    """
    create_db_and_tables()
    with Session(engine) as session:
        roles = seed_roles(session)
        print(f'Roles ready: {", ".join(sorted(roles))}')
        if admin_email:
            user = ensure_admin(session, admin_email, admin_password)
            print(f'Admin created: {user.email}' if user else f'Admin {admin_email} already exists')


if __name__ == '__main__':
    logging.basicConfig(level=settings.LOG_LEVEL)
    parser = argparse.ArgumentParser()
    parser.add_argument('--admin-email', help='Create an ADMIN account with this email')
    parser.add_argument('--admin-password', help='Initial password for the admin account')
    args = parser.parse_args()
    if args.admin_email and not args.admin_password:
        parser.error('--admin-password is required with --admin-email')
    main(admin_email=args.admin_email, admin_password=args.admin_password)
