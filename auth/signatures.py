"""
auth/signatures.py -- Timestamped HMAC signatures for service-to-service calls.

Wire form: "<unix-seconds>:<base64(HMAC-SHA256(secret, '<unix-seconds>:<context>'))>"

The serverless caller signs one value per outbound request and sends it in
the header named by SIGNATURE_HEADER; the backend recomputes the digest from
the presented timestamp and its own idea of the context.

Security design decisions:
  Replay window: binding the digest to a timestamp and rejecting anything
      outside SIGNATURE_MAX_SKEW_SECONDS makes a static shared secret
      replay-resistant without a nonce store. Both clocks must agree within
      the window.

  Context: by default the backend base URL (BACKEND_URL). With
      SIGNATURE_BIND_PATH=true the request path is appended, so a captured
      signature only works against the endpoint it was minted for.

  verify() never raises. Parse failures, skew violations and mismatches all
      return False; ServiceSigner.check() turns False into SignatureRejected.

  Secret source: ServiceSigner reads its key through a SecretProvider so a
      rotating or remote source can replace StaticSecretProvider without
      touching sign()/verify(). A signer that cannot obtain a secret refuses
      to construct -- it could never produce a valid signature.

Layer rule: no imports from api/, accounts/, or serverless/.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import time
from collections.abc import Callable
from functools import lru_cache
from typing import Protocol

from core.config import get_settings
from core.errors import ConfigurationError, SignatureRejected

logger = logging.getLogger("userportal.auth")

_SEPARATOR = ":"


def _digest(secret: str, timestamp: int, context: str) -> str:
    message = f"{timestamp}{_SEPARATOR}{context}".encode("utf-8")
    mac = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()
    return base64.b64encode(mac).decode("ascii")


def sign(secret: str, context: str, now: float | None = None) -> str:
    """Return a "<timestamp>:<digest>" signature for context at the current time."""
    timestamp = int(time.time() if now is None else now)
    return f"{timestamp}{_SEPARATOR}{_digest(secret, timestamp, context)}"


def verify(
    secret: str,
    context: str,
    presented: str,
    max_skew_seconds: int,
    now: float | None = None,
) -> bool:
    """Return True only if presented is a fresh, correct signature for context.

    The timestamp is everything before the first ":" (base64 never contains
    one) and must be written the way sign() writes it: plain ASCII digits,
    no sign, padding or leading zeros. The skew check runs before the HMAC
    so stale values are rejected without spending a digest on them.
    """
    if not presented or _SEPARATOR not in presented:
        return False
    raw_ts, presented_digest = presented.split(_SEPARATOR, 1)
    if not (raw_ts.isascii() and raw_ts.isdigit()):
        return False
    timestamp = int(raw_ts)
    if str(timestamp) != raw_ts:
        return False
    current = time.time() if now is None else now
    if abs(current - timestamp) > max_skew_seconds:
        return False
    expected = _digest(secret, timestamp, context)
    return hmac.compare_digest(expected.encode("ascii"), presented_digest.encode("utf-8"))


def signature_context(base_url: str, path: str = "", bind_path: bool = False) -> str:
    """Build the string both sides feed into the HMAC."""
    base = base_url.rstrip("/")
    if not bind_path:
        return base
    return f"{base}/{path.lstrip('/')}"


# ---------------------------------------------------------------------------
# Secret providers
# ---------------------------------------------------------------------------


class SecretProvider(Protocol):
    def current_secret(self) -> str: ...


class StaticSecretProvider:
    """The single pre-shared secret, resident in memory after startup."""

    def __init__(self, secret: str) -> None:
        self._secret = secret

    def current_secret(self) -> str:
        return self._secret


# ---------------------------------------------------------------------------
# Signer
# ---------------------------------------------------------------------------


class ServiceSigner:
    """sign()/verify() bound to a secret provider, skew window and clock."""

    def __init__(
        self,
        provider: SecretProvider,
        max_skew_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not provider.current_secret():
            raise ConfigurationError("Service signing secret is not configured.")
        if max_skew_seconds <= 0:
            raise ConfigurationError("Signature skew window must be positive.")
        self._provider = provider
        self.max_skew_seconds = max_skew_seconds
        self._clock = clock

    def sign(self, context: str) -> str:
        return sign(self._provider.current_secret(), context, now=self._clock())

    def verify(self, context: str, presented: str | None) -> bool:
        if not presented:
            return False
        return verify(
            self._provider.current_secret(),
            context,
            presented,
            self.max_skew_seconds,
            now=self._clock(),
        )

    def check(self, context: str, presented: str | None) -> None:
        """Raise SignatureRejected unless presented verifies for context."""
        if not self.verify(context, presented):
            logger.warning("Service signature rejected for context %s", context)
            raise SignatureRejected("Service signature is missing, stale, or invalid.")


@lru_cache
def get_service_signer() -> ServiceSigner:
    """Return the process-wide ServiceSigner built from Settings."""
    settings = get_settings()
    return ServiceSigner(
        StaticSecretProvider(settings.serverless_secret_key),
        settings.signature_max_skew_seconds,
    )
