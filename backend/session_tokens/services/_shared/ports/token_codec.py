from __future__ import annotations

from typing import Protocol

from session_tokens.services.sessions.dto import AccessTokenClaims


class TokenCodec(Protocol):
    """
    Port for signing and verifying stateless access tokens.

    Implementations hold only the immutable secret and TTL, so a single
    instance may be shared across request threads.
    """

    def sign(self, user_id: int, email: str) -> str:
        """
        Build claims (subject = ``user_id``, issued-at = now) and sign them.

        Errors from the signing primitive propagate to the caller.
        """
        ...

    def verify(self, token: str) -> AccessTokenClaims:
        """
        Verify signature, algorithm and expiry.

        :raises ExpiredTokenError: Signature valid but ``exp`` elapsed.
        :raises InvalidTokenError: Any other failure.
        """
        ...
