import hashlib
import re

from tally.app.core.security import generate_api_key, hash_api_key


def test_generate_api_key_is_urlsafe() -> None:
    key1 = generate_api_key()
    key2 = generate_api_key()

    assert isinstance(key1, str)
    assert key1
    assert len(key1) <= 512
    assert re.fullmatch(r"[A-Za-z0-9_-]+", key1)

    # Should be unpredictable; collisions are astronomically unlikely.
    assert key1 != key2


def test_hash_api_key_is_sha256_hex() -> None:
    assert hash_api_key("secret") == hashlib.sha256(b"secret").hexdigest()
    assert len(hash_api_key("secret")) == 64
