# auth.py
import logging
import sqlite3

from passlib.context import CryptContext

from errors import AuthError, NotSignedIn
from models import User

logger = logging.getLogger("cashier.auth")

# pbkdf2_sha256 hashes; bcrypt kept verifiable for imported accounts
pwd_ctx = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], default="pbkdf2_sha256", deprecated="auto")

MIN_PASSWORD_LENGTH = 6


class AuthService:
    """Session identity for the cashier, used to stamp created_by on sales."""

    def __init__(self, db):
        self.db = db
        self._user = None

    def sign_up(self, email: str, password: str) -> User:
        email = (email or "").strip().lower()
        if not email or "@" not in email:
            raise AuthError("A valid email is required")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise AuthError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        try:
            user = self.db.create_user(email, pwd_ctx.hash(password))
        except sqlite3.IntegrityError:
            raise AuthError(f"An account for {email} already exists") from None
        logger.info("Registered user %s", email)
        return user

    def sign_in(self, email: str, password: str) -> User:
        email = (email or "").strip().lower()
        row = self.db.get_user_by_email(email)
        if row is None or not pwd_ctx.verify(password or "", row["password_hash"]):
            logger.warning("Failed sign-in for %s", email)
            raise AuthError("Invalid email or password")
        self._user = User(id=row["id"], email=row["email"])
        logger.info("Signed in as %s", email)
        return self._user

    def get_current_user(self):
        return self._user

    def require_user(self) -> User:
        if self._user is None:
            raise NotSignedIn()
        return self._user

    def sign_out(self):
        if self._user is not None:
            logger.info("Signed out %s", self._user.email)
        self._user = None
