"""
Bearer token check for the mcp-tools backend.

The backend accepts a fixed set of session tokens (AUTH_TOKENS). Tokens are
kept only as SHA256 hashes and compared in constant time. When no tokens are
configured, authentication is disabled.
"""

import hashlib
import logging
import secrets
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


class AuthManager:
    """Validates the bearer tokens accepted by the backend."""

    def __init__(self, tokens: Iterable[str] = ()):
        self.token_hashes: List[str] = [self._hash_token(token) for token in tokens if token]

    @property
    def enabled(self) -> bool:
        return bool(self.token_hashes)

    @staticmethod
    def _hash_token(token: str) -> str:
        """Hash token with SHA256."""
        return hashlib.sha256(token.encode('utf-8')).hexdigest()

    @staticmethod
    def _compare_constant_time(a: str, b: str) -> bool:
        """Constant-time string comparison to prevent timing attacks."""
        return secrets.compare_digest(a, b)

    def validate_token(self, token: str) -> bool:
        """Return True if token is one of the configured tokens."""
        if not token:
            return False

        token_hash = self._hash_token(token)
        valid = False
        # Check every hash so the comparison count does not depend on the match
        for known_hash in self.token_hashes:
            if self._compare_constant_time(token_hash, known_hash):
                valid = True

        if not valid:
            logger.debug("Token not found or invalid")
        return valid


def parse_bearer(header: Optional[str]) -> Optional[str]:
    """Extract the token from an 'Authorization: Bearer <token>' header value."""
    if not header or not header.startswith(BEARER_PREFIX):
        return None
    return header[len(BEARER_PREFIX):].strip() or None
