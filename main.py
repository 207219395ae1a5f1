# main.py
import argparse
import getpass
import logging
import os
import sys
from pathlib import Path

from auth import AuthService
from config import load_config
from database import Database
from errors import CashierError
from logger import configure_logger

logger = logging.getLogger("cashier.main")


def setup_directories(config):
    """Create required directories if they don't exist."""
    dirs = [
        config.get('receipt', {}).get('receipt_dir', 'receipts'),
        config.get('export', {}).get('default_dir', 'exports'),
        os.path.dirname(config.get('logging', {}).get('file', 'logs/pos.log')),
    ]
    for dir_path in dirs:
        if not dir_path:
            continue
        path = Path(dir_path)
        if not path.exists():
            path.mkdir(parents=True, exist_ok=True)
            logger.info("Created directory: %s", path)


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(description="Python POS System")
    parser.add_argument("--config", help="Path to configuration file", default="config.json")
    parser.add_argument("--debug", help="Enable debug mode", action="store_true")
    parser.add_argument("--email", help="Cashier account to sign in with")
    parser.add_argument("--register", action="store_true",
                        help="Create the --email account before signing in")
    return parser.parse_args(argv)


def sign_in(auth: AuthService, email: str, register: bool = False):
    """Prompt for the password and open the cashier session."""
    password = getpass.getpass(f"Password for {email}: ")
    if register:
        confirm = getpass.getpass("Confirm password: ")
        if confirm != password:
            raise CashierError("Passwords do not match")
        auth.sign_up(email, password)
    return auth.sign_in(email, password)


def main(argv=None):
    args = parse_arguments(argv)
    config = load_config(args.config)
    if args.debug:
        config["logging"]["level"] = "DEBUG"
    setup_directories(config)
    configure_logger(config)
    if args.debug:
        logger.debug("Debug mode enabled")

    email = args.email or input("Email: ").strip()
    db = Database(config["database"].get("name", "pos.db"))
    logger.info("Database initialized: %s", db.db_name)
    try:
        auth = AuthService(db)
        try:
            sign_in(auth, email, register=args.register)
        except CashierError as e:
            logger.error("Sign-in failed: %s", e)
            return 1

        # Deferred so the CLI path does not need a display
        from ui import CashierUI

        app = CashierUI(db, auth, config)
        logger.info("Starting POS application")
        app.run()
    except Exception as e:
        logger.critical("Fatal error: %s", e, exc_info=True)
        return 1
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
