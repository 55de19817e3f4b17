"""
Agent token generation and format checks.
"""

import re
import secrets

from ..models import TOKEN_PREFIX

_TOKEN_FORMAT = re.compile(rf"^{TOKEN_PREFIX}[0-9a-f]{{48}}$")


def generate_token() -> str:
    """Return a new agent token: the ``agt_`` prefix plus 24 random bytes as hex."""
    return TOKEN_PREFIX + secrets.token_hex(24)


def is_valid_token_format(token: str) -> bool:
    """Check whether a string looks like a generated agent token."""
    return isinstance(token, str) and bool(_TOKEN_FORMAT.match(token))
