"""
Identity adapters.

The identity provider itself is external; these adapters only resolve an
already-issued bearer token to the opaque learner id it stands for.
"""

import hmac
import logging

from lingosrs.domain.errors import Unauthorized
from lingosrs.domain.ports import IdentityVerifier

logger = logging.getLogger(__name__)


class StaticTokenVerifier(IdentityVerifier):
    """Resolves tokens from a fixed token -> learner id table (from config)."""

    def __init__(self, tokens: dict[str, str]):
        self._tokens = dict(tokens)

    async def verify(self, token: str | None) -> str:
        if not token:
            raise Unauthorized("Missing bearer token")
        for known, learner_id in self._tokens.items():
            if hmac.compare_digest(known, token):
                return learner_id
        logger.warning("Rejected unknown bearer token")
        raise Unauthorized("Invalid bearer token")


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an `Authorization: Bearer <token>` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
