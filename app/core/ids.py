import secrets
import string

from app.core.timeutils import utcnow

_ALPHABET = string.digits + string.ascii_lowercase


def prefixed_id(prefix: str) -> str:
    """`<prefix>_<epoch ms>_<9 base36 chars>`, e.g. `cap_1718000000000_k3j9x0a1b`."""
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(9))
    return f"{prefix}_{int(utcnow().timestamp() * 1000)}_{suffix}"
