"""Share identifier, passcode and subdomain helpers."""

import secrets
import string

SHARE_ID_PREFIX = "mcc"
SHARE_ID_RANDOM_LENGTH = 19
SHARE_ID_ALPHABET = string.ascii_lowercase + string.digits

PASSCODE_MIN = 100000
PASSCODE_MAX = 999999

# label.domain.tld
MIN_SUBDOMAIN_LABELS = 3


def generate_share_id() -> str:
    """Generate a DNS-label-safe share id such as ``mcc0k3...``."""
    suffix = "".join(
        secrets.choice(SHARE_ID_ALPHABET) for _ in range(SHARE_ID_RANDOM_LENGTH)
    )
    return f"{SHARE_ID_PREFIX}{suffix}"


def generate_passcode() -> str:
    """Generate a six-digit numeric passcode."""
    return str(PASSCODE_MIN + secrets.randbelow(PASSCODE_MAX - PASSCODE_MIN + 1))


def extract_subdomain(host: str | None) -> str | None:
    """Return the leftmost label of a Host header value.

    Only hosts with at least three dot-separated labels carry a subdomain,
    so ``abc123.example.com`` yields ``abc123`` while ``example.com`` and
    ``localhost`` yield None. The port is ignored and the label lower-cased.

    Args:
        host: Raw Host header value, possibly with a port

    Returns:
        Subdomain label or None
    """
    if not host:
        return None

    hostname = host.split(":")[0].strip().lower()
    parts = hostname.split(".")

    if len(parts) >= MIN_SUBDOMAIN_LABELS and parts[0]:
        return parts[0]

    return None
