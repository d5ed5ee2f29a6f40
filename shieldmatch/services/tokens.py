"""Signed, expiring tokens for contractor accept/decline links

A token is ``<payload>.<signature>`` where ``payload`` is the base64url
encoding of a compact, key-sorted JSON object and ``signature`` is the
base64url HMAC-SHA256 of those exact JSON bytes. Both segments are
unpadded so the token can be dropped into a URL path as-is.
"""

import base64
import binascii
import hashlib
import hmac
import json
import logging
import time
from collections.abc import Callable
from typing import Literal

from pydantic import SecretStr, ValidationError

from shieldmatch.config import Settings, mask_secret
from shieldmatch.exceptions import ConfigurationError
from shieldmatch.schemas.matching import AcceptTokenPayload

logger = logging.getLogger(__name__)

TokenAction = Literal["accept", "decline"]

TOKEN_SEPARATOR = "."
DEFAULT_TTL_SECONDS = 48 * 60 * 60


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64decode(segment: str) -> bytes:
    padding = "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(segment + padding)


class TokenService:
    """Issues and verifies accept/decline tokens.

    The service holds no mutable state, so a single instance can be shared
    across concurrent requests.
    """

    def __init__(
        self,
        secret: str | SecretStr | None,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        if isinstance(secret, SecretStr):
            secret = secret.get_secret_value()
        if not secret:
            raise ConfigurationError("accept_token_secret must be configured to issue job links")
        if ttl_seconds <= 0:
            raise ConfigurationError("token lifetime must be positive")

        self._key = secret.encode("utf-8")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        logger.debug(f"Token service ready (secret {mask_secret(secret)}, ttl {ttl_seconds}s)")

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], float] = time.time) -> "TokenService":
        return cls(
            settings.accept_token_secret,
            ttl_seconds=settings.accept_token_ttl_hours * 60 * 60,
            clock=clock,
        )

    def _sign(self, data: bytes) -> str:
        return _b64encode(hmac.new(self._key, data, hashlib.sha256).digest())

    def issue(self, project_id: str, contractor_id: str, action: TokenAction) -> str:
        """Create a token binding a project, contractor and action"""
        payload = AcceptTokenPayload(
            project_id=str(project_id),
            contractor_id=str(contractor_id),
            action=action,
            exp=int(self._clock()) + self.ttl_seconds,
        )
        data = json.dumps(
            payload.model_dump(by_alias=True),
            sort_keys=True,
            separators=(",", ":"),
        ).encode("utf-8")
        return f"{_b64encode(data)}{TOKEN_SEPARATOR}{self._sign(data)}"

    def verify(self, token: str, expected_action: TokenAction | None = None) -> AcceptTokenPayload | None:
        """Return the payload of a valid token, or None.

        Bad structure, bad signature, bad payload and expiry all produce
        None. When expected_action is given, a token minted for the other
        action is rejected as well.
        """
        if not isinstance(token, str) or token.count(TOKEN_SEPARATOR) != 1:
            return None

        payload_segment, signature = token.split(TOKEN_SEPARATOR)
        if not payload_segment or not signature:
            return None

        try:
            data = _b64decode(payload_segment)
        except (binascii.Error, ValueError):
            return None

        # Reject alternative encodings of the same bytes
        if _b64encode(data) != payload_segment:
            return None

        if not hmac.compare_digest(self._sign(data).encode("ascii"), signature.encode("utf-8")):
            logger.info("Rejected job link token with invalid signature")
            return None

        try:
            payload = AcceptTokenPayload.model_validate(json.loads(data))
        except (ValueError, ValidationError):
            return None

        if self._clock() > payload.exp:
            logger.info(f"Rejected expired job link token for project {payload.project_id}")
            return None

        if expected_action is not None and payload.action != expected_action:
            logger.info(
                f"Rejected {payload.action} token presented for {expected_action} "
                f"(project {payload.project_id})"
            )
            return None

        return payload
