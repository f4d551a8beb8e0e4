from typing import Optional

import requests

from dinamai.errors import AuthenticationFailed, UpstreamCallFailed
from dinamai.logger import get_logger

logger = get_logger("identity")


class SupabaseIdentityVerifier:
    """
    Resolves a Supabase session token to a user id through the GoTrue
    `/auth/v1/user` endpoint, authenticated with the service role key.
    """

    def __init__(
        self,
        base_url: str,
        service_role_key: str,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_role_key = service_role_key
        self.session = session or requests.Session()
        self.timeout = timeout

    def verify(self, token: str) -> str:
        if not token or not isinstance(token, str):
            raise AuthenticationFailed("Missing authentication token.")

        try:
            resp = self.session.get(
                f"{self.base_url}/auth/v1/user",
                headers={
                    "apikey": self.service_role_key,
                    "Authorization": f"Bearer {token}",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("identity.request_error", extra={"error": str(e)})
            raise UpstreamCallFailed("Could not reach the authentication service.", status_code=502) from e

        if resp.status_code in (400, 401, 403, 404):
            logger.warning("identity.rejected", extra={"status_code": resp.status_code})
            raise AuthenticationFailed("Invalid or expired session. Please log in again.")

        if not resp.ok:
            logger.error("identity.upstream_error", extra={"status_code": resp.status_code})
            raise UpstreamCallFailed("Authentication service error.", status_code=502)

        try:
            user = resp.json()
        except ValueError:
            user = None

        user_id = user.get("id") if isinstance(user, dict) else None
        if not user_id:
            logger.warning("identity.user_not_found")
            raise AuthenticationFailed("Invalid or expired session. Please log in again.")

        return user_id
