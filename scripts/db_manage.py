#!/usr/bin/env python
"""
SiteTrack - Database Management CLI

Usage:
    python -m scripts.db_manage check        # Test database connection
    python -m scripts.db_manage migrate      # Run pending migrations
    python -m scripts.db_manage rollback     # Rollback last migration
    python -m scripts.db_manage current      # Show current migration version
    python -m scripts.db_manage history      # Show migration history
    python -m scripts.db_manage reset        # Drop all and recreate (dev only)
    python -m scripts.db_manage createadmin  # Create the first super admin
    python -m scripts.db_manage setpassword  # Set password for an admin or employee
"""

import sys
from getpass import getpass

from sitetrack.config import get_settings
from sitetrack.database import check_connection, get_db_context


settings = get_settings()


def _alembic_config():
    from alembic.config import Config
    return Config("alembic.ini")


def cmd_check():
    """Test database connection."""
    target = settings.db_url or f"{settings.db_server}/{settings.db_name}"
    print(f"Connecting to: {target.split('@')[-1]}")
    try:
        check_connection()
        print("Connection successful!")
        return True
    except Exception as e:
        print(f"Connection failed: {e}")
        return False


def cmd_migrate():
    """Run pending Alembic migrations."""
    from alembic import command

    print("Running migrations...")
    command.upgrade(_alembic_config(), "head")
    print("Migrations complete!")
    return True


def cmd_rollback():
    """Rollback the last migration."""
    if not settings.debug:
        print("ERROR: rollback is only available in debug mode")
        return False

    from alembic import command

    print("Rolling back last migration...")
    command.downgrade(_alembic_config(), "-1")
    print("Rollback complete!")
    return True


def cmd_current():
    """Show current migration version."""
    from alembic import command

    command.current(_alembic_config())
    return True


def cmd_history():
    """Show migration history."""
    from alembic import command

    command.history(_alembic_config())
    return True


def cmd_reset():
    """Drop all tables and recreate with migrations."""
    if not settings.debug:
        print("ERROR: reset is only available in debug mode")
        return False

    confirm = input("This will DELETE ALL DATA. Type 'yes' to confirm: ")
    if confirm.lower() != "yes":
        print("Aborted")
        return False

    from alembic import command

    alembic_cfg = _alembic_config()

    print("Rolling back all migrations...")
    try:
        command.downgrade(alembic_cfg, "base")
    except Exception as e:
        print(f"Rollback failed (maybe no tables exist): {e}")

    print("Running all migrations...")
    command.upgrade(alembic_cfg, "head")

    print("Reset complete!")
    return True


def _prompt_password():
    """Ask for a new password twice; returns None when it is unusable."""
    password = getpass("New password: ")
    confirm = getpass("Confirm password: ")

    if password != confirm:
        print("Passwords do not match")
        return None

    if len(password) < 8:
        print("Password must be at least 8 characters")
        return None

    # Check byte length for bcrypt (72 byte limit)
    password_bytes = password.encode("utf-8")
    if len(password_bytes) > 72:
        print(f"Password is too long ({len(password_bytes)} bytes).")
        print("Bcrypt has a 72-byte limit. Use ASCII characters and keep password under 72 bytes.")
        return None

    return password


def cmd_createadmin():
    """Create a verified, active super admin (bootstrap for activating signups)."""
    from sitetrack.services.auth import AuthService, AuthenticationError

    email = input("Email: ").strip()
    first_name = input("First name: ").strip()
    last_name = input("Last name: ").strip()
    if not (email and first_name and last_name):
        print("Email, first name and last name are required")
        return False

    password = _prompt_password()
    if password is None:
        return False

    with get_db_context() as db:
        try:
            admin = AuthService(db).create_super_admin(email, password, first_name, last_name)
        except AuthenticationError as e:
            print(e)
            return False

        print(f"Super admin created: {admin.full_name} <{admin.email}>")

    return True


def cmd_setpassword():
    """Set password for an admin or employee, looked up by email."""
    from sqlalchemy import select

    from sitetrack.models.admin import Admin
    from sitetrack.models.employee import Employee
    from sitetrack.services.auth import AuthService

    email = input("Email: ").strip().lower()
    if not email:
        print("Email required")
        return False

    with get_db_context() as db:
        user = db.execute(
            select(Admin).where(Admin.email == email)
        ).scalar_one_or_none()

        if user is None:
            user = db.execute(
                select(Employee).where(Employee.email == email)
            ).scalar_one_or_none()

        if user is None:
            print(f"No admin or employee with email '{email}'")
            return False

        password = _prompt_password()
        if password is None:
            return False

        AuthService(db).set_password(user, password)

        print(f"Password updated for {user.full_name}")

    return True


def cmd_help():
    """Show help."""
    print(__doc__)
    return True


COMMANDS = {
    "check": cmd_check,
    "migrate": cmd_migrate,
    "rollback": cmd_rollback,
    "current": cmd_current,
    "history": cmd_history,
    "reset": cmd_reset,
    "createadmin": cmd_createadmin,
    "setpassword": cmd_setpassword,
    "help": cmd_help,
}


def main():
    if len(sys.argv) < 2:
        cmd_help()
        sys.exit(1)

    command = sys.argv[1].lower()

    if command not in COMMANDS:
        print(f"Unknown command: {command}")
        cmd_help()
        sys.exit(1)

    success = COMMANDS[command]()
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
