"""Host authorization."""

import logging
from dataclasses import dataclass

from musical_wheelhouse.adapters.spotify_client import IdentityClient
from musical_wheelhouse.domain.errors import HostNotAuthorized, UpstreamUnavailable
from musical_wheelhouse.domain.models import HostIdentity

_logger = logging.getLogger(__name__)

_REJECTED_STATUS_CODES = {401, 403}


@dataclass
class HostService:
    """Decides whether a bearer credential may act as a room host."""

    identity_client: IdentityClient
    allowed_host_ids: set[str] | None = None

    async def authorize(self, access_token: str | None) -> HostIdentity:
        """Resolve a bearer token to a host identity or raise ``HostNotAuthorized``."""
        if not access_token:
            raise HostNotAuthorized("Log in with Spotify to host a room")
        try:
            profile = await self.identity_client.get_current_user(access_token)
        except Exception as exc:
            status_code = _status_code_from_exception(exc)
            if status_code in _REJECTED_STATUS_CODES:
                _logger.warning("Host token rejected (status=%s)", status_code)
                raise HostNotAuthorized("Invalid or expired Spotify session") from exc
            _logger.warning("Host lookup failed (status=%s): %s", status_code, exc)
            raise UpstreamUnavailable("Spotify account lookup failed") from exc

        identity = HostIdentity(
            user_id=str(profile["id"]),
            display_name=profile.get("display_name"),
        )
        allowed = self.allowed_host_ids
        if allowed is not None and identity.user_id not in allowed:
            raise HostNotAuthorized("This account is not allowed to host")
        return identity


def _status_code_from_exception(exc: Exception) -> int | None:
    response = getattr(exc, "response", None)
    return getattr(response, "status_code", None)
