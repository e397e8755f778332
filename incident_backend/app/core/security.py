"""
Password hashing.
"""

from passlib.hash import pbkdf2_sha256 as hasher


def get_password_hash(password: str) -> str:
    return hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return hasher.verify(password, password_hash)
    except ValueError:
        # Malformed stored hash
        return False
