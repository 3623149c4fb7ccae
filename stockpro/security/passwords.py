from pwdlib import PasswordHash


password_hash = PasswordHash.recommended()

MIN_PASSWORD_LENGTH = 8


def hash_password(raw_password: str) -> str:
    return password_hash.hash(raw_password)


def verify_password(raw_password: str, hashed_password: str) -> tuple[bool, str | None]:
    """Check a password and return a replacement hash when the stored one is outdated."""
    return password_hash.verify_and_update(raw_password, hashed_password)
