"""
serverless/function.py -- Signed pull of the user list from the backend.

Each invocation:
  1. signs the configured context with the shared secret (fresh timestamp),
  2. GETs BACKEND_URL + USERS_PATH with the signature in SIGNATURE_HEADER,
  3. wraps the JSON list in a GraphQL-style {"data": {"users": [...]}} envelope.

Failure policy:
  Construction fails with ConfigurationError when the backend location or the
  shared secret is missing -- the function can never succeed without them.
  Transport errors, non-200 answers and unparseable bodies raise
  UpstreamUnavailableError. Nothing is retried; the scheduler that invoked the
  function owns retry policy.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, Optional

import requests

from auth.signatures import ServiceSigner, StaticSecretProvider, signature_context
from core.errors import ConfigurationError, UpstreamUnavailableError
from serverless.config import ServerlessSettings, get_serverless_settings

logger = logging.getLogger("userportal.serverless")


class UsersQueryFunction:
    """Fetch users from the backend, authenticating with a service signature.

    Usage:
        fn = UsersQueryFunction()
        envelope = fn.run()   # {"data": {"users": [...]}}
    """

    def __init__(
        self,
        settings: Optional[ServerlessSettings] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or get_serverless_settings()
        if not self.settings.backend_url.strip():
            raise ConfigurationError("BACKEND_URL is not configured.")
        if not self.settings.serverless_secret_key.strip():
            raise ConfigurationError("SERVERLESS_SECRET_KEY is not configured.")
        self._signer = ServiceSigner(
            StaticSecretProvider(self.settings.serverless_secret_key),
            self.settings.signature_max_skew_seconds,
            clock=clock,
        )
        self._base_url = self.settings.backend_url.rstrip("/")
        self._session = session or requests.Session()
        # Backend and caller are known to each other; no redirect chains.
        self._session.max_redirects = 3

    @property
    def users_url(self) -> str:
        return f"{self._base_url}/{self.settings.users_path.lstrip('/')}"

    def sign_request(self) -> str:
        """Return a fresh signature for the users endpoint."""
        context = signature_context(self._base_url, self.settings.users_path, self.settings.signature_bind_path)
        return self._signer.sign(context)

    def fetch_users(self) -> list[dict[str, Any]]:
        headers = {
            "Content-Type": "application/json",
            self.settings.signature_header: self.sign_request(),
        }
        try:
            resp = self._session.get(self.users_url, headers=headers, timeout=self.settings.request_timeout_seconds)
        except requests.RequestException as e:
            logger.warning("Backend request failed: %s", e)
            raise UpstreamUnavailableError("Backend is unreachable.", detail=str(e)) from e

        if resp.status_code != 200:
            logger.warning("Backend answered %d for %s", resp.status_code, self.users_url)
            raise UpstreamUnavailableError(
                f"Backend answered {resp.status_code}.",
                detail=resp.text[:500],
            )
        try:
            users = resp.json()
        except ValueError as e:
            raise UpstreamUnavailableError("Backend returned a body that is not JSON.") from e
        if not isinstance(users, list):
            raise UpstreamUnavailableError("Backend returned an unexpected payload shape.")
        return users

    def run(self) -> dict[str, Any]:
        """Fetch the users and return them in the GraphQL response shape."""
        users = self.fetch_users()
        logger.info("Fetched %d users from backend", len(users))
        return to_graphql_response(users)


def to_graphql_response(users: list[dict[str, Any]]) -> dict[str, Any]:
    return {"data": {"users": users}}
