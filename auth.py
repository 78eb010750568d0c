from fastapi import Header
from passlib.hash import bcrypt
from dotenv import load_dotenv
import os

load_dotenv()

# Favorites are keyed by this id when the caller sends no X-User-Id header
DEFAULT_USER_ID = os.getenv("DEFAULT_USER_ID", "guest123")

def hash_password(password: str) -> str:
    """One-way hash a plain-text password."""
    return bcrypt.hash(password)

def verify_password(password: str, hashed: str) -> bool:
    """Compare a plain-text password against a stored hash."""
    try:
        return bcrypt.verify(password, hashed)
    except ValueError:
        return False

async def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Resolve the caller's user identifier from the X-User-Id header."""
    if x_user_id and x_user_id.strip():
        return x_user_id.strip()
    return DEFAULT_USER_ID
