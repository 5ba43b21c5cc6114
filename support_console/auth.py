# support_console/auth.py
"""Staff sign-in, sessions and profiles.

Sessions are signed JWTs; the SHA256 of each issued token is stored so a
session can be ended before it expires.
"""

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import jwt

from support_console import config
from support_console.errors import AuthenticationError, BusinessRuleViolation, RecordNotFound
from support_console.schemas import ProfileUpdate
from support_console.store import Row, RowStore

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 200_000


def hash_password(password: str, salt: Optional[str] = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS)
    return f"pbkdf2_sha256${PBKDF2_ITERATIONS}${salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        _, iterations, salt, expected = stored.split("$")
    except ValueError:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), int(iterations))
    return hmac.compare_digest(digest.hex(), expected)


def hash_token(token: str) -> str:
    """Create SHA256 hash of a session token for storage and lookup."""
    return hashlib.sha256(token.encode()).hexdigest()


class AuthService:
    def __init__(
        self,
        store: RowStore,
        secret: str = config.SESSION_SECRET,
        ttl_hours: int = config.SESSION_TTL_HOURS,
    ):
        self.store = store
        self.secret = secret
        self.ttl_hours = ttl_hours

    def register(
        self, email: str, password: str, name: str, role: str = "agent", phone: Optional[str] = None
    ) -> Row:
        email = email.strip().lower()
        if self.store.select("auth_accounts", {"email": email}, limit=1):
            raise BusinessRuleViolation(f"An account already exists for {email}")

        account = self.store.insert("auth_accounts", {
            "email": email,
            "password_hash": hash_password(password),
        })
        profile = self.store.insert("users", {
            "id": account["id"],
            "name": name,
            "email": email,
            "role": role,
            "phone": phone,
        })
        logger.info(f"Created {role} account for {email}")
        return profile

    def create_agent(self, email: str, password: str, name: str, phone: Optional[str] = None) -> Row:
        return self.register(email, password, name, role="agent", phone=phone)

    def create_admin(self, email: str, password: str, name: str) -> Row:
        return self.register(email, password, name, role="admin")

    def ensure_admin(self, email: str, password: str, name: str = "Administrator") -> Optional[Row]:
        """Create the first administrator unless the account already exists"""
        if self.store.select("auth_accounts", {"email": email.strip().lower()}, limit=1):
            return None
        return self.create_admin(email, password, name)

    def sign_in(self, email: str, password: str) -> Tuple[str, Row]:
        accounts = self.store.select("auth_accounts", {"email": email.strip().lower()}, limit=1)
        if not accounts or not verify_password(password, accounts[0]["password_hash"]):
            logger.warning(f"Failed sign-in for {email}")
            raise AuthenticationError("Invalid email or password")
        account = accounts[0]

        try:
            profile = self.load_profile(account["id"])
        except RecordNotFound:
            logger.error(f"Account {account['id']} has no profile")
            raise AuthenticationError("User profile not found")

        now = datetime.now(timezone.utc)
        expires = now + timedelta(hours=self.ttl_hours)
        token = jwt.encode(
            {"sub": account["id"], "iat": now, "exp": expires, "jti": secrets.token_hex(8)},
            self.secret,
            algorithm="HS256",
        )
        self.store.insert("auth_sessions", {
            "token_hash": hash_token(token),
            "user_id": account["id"],
            "expires_at": expires.replace(tzinfo=None),
        })
        logger.info(f"User {account['id']} signed in")
        return token, profile

    def current_session(self, token: str) -> str:
        """Return the user id behind a live session token"""
        try:
            payload = jwt.decode(token, self.secret, algorithms=["HS256"])
        except jwt.InvalidTokenError as e:
            raise AuthenticationError("Session is invalid or expired") from e

        if not self.store.select("auth_sessions", {"token_hash": hash_token(token)}, limit=1):
            raise AuthenticationError("Session has ended")
        return payload["sub"]

    def sign_out(self, token: str):
        self.store.delete("auth_sessions", {"token_hash": hash_token(token)})
        logger.info("Session ended")

    def load_profile(self, user_id: str) -> Row:
        return self.store.select_one("users", {"id": user_id})

    def update_profile(self, user_id: str, changes: ProfileUpdate) -> Row:
        values = changes.model_dump(exclude_unset=True)
        values["updated_at"] = datetime.utcnow()
        updated = self.store.update("users", values, {"id": user_id})
        if not updated:
            raise RecordNotFound(f"User {user_id} not found")
        return updated[0]
