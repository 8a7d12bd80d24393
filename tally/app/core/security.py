import hashlib
import secrets


def hash_api_key(raw_key: str) -> str:
    """Hash an API key using SHA256.

    Args:
        raw_key: The raw API key to hash

    Returns:
        The SHA256 hex digest of the key
    """
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_api_key(nbytes: int = 32) -> str:
    """Generate a new random API key.

    Uses `secrets.token_urlsafe()` to generate a URL-safe token with
    cryptographically secure randomness.
    """
    return secrets.token_urlsafe(nbytes)
