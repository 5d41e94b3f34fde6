"""Password hashing helpers for the sign-in and sign-up flows."""

from passlib.context import CryptContext

# pbkdf2_sha256 is implemented on top of hashlib, so no native backend is needed.
_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    try:
        return _pwd_context.verify(password, hashed)
    except ValueError:
        return False


__all__ = ["hash_password", "verify_password"]
