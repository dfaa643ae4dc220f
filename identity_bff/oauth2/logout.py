"""Logout challenge handling. Logout is accepted unconditionally."""
import logging
from typing import Optional

from identity_bff.metrics import oauth2_challenge_decisions_total
from identity_bff.models.challenges import LogoutRequestInfo, RedirectResponse
from identity_bff.oauth2.errors import ProviderError, missing_challenge
from identity_bff.oauth2.hydra import HydraAdminClient
from identity_bff.utils.result import Err, Result


logger = logging.getLogger(__name__)


class LogoutChallengeHandler:
    def __init__(self, hydra: HydraAdminClient, logged_out_url: str) -> None:
        self.hydra = hydra
        self.logged_out_url = logged_out_url

    async def fetch(self, challenge: Optional[str]) -> Result[LogoutRequestInfo, ProviderError]:
        if not challenge:
            return Err(missing_challenge("logout"))
        return await self.hydra.get_logout_request(challenge)

    async def handle(self, challenge: Optional[str]) -> RedirectResponse:
        """
        Fetch the logout request, then accept it.

        Without a challenge, or when the authorization server cannot find or
        refuses it, the browser is sent to the fixed logged-out page instead.
        """
        if not challenge:
            logger.warning("Logout without challenge, sending to logged-out page", extra={"log_type": "logout_fallback"})
            return RedirectResponse(redirect_to=self.logged_out_url)

        request = await self.fetch(challenge)
        if isinstance(request, Err):
            oauth2_challenge_decisions_total.labels(challenge="logout", decision="failed").inc()
            logger.warning(
                "Logout request lookup failed, sending to logged-out page",
                extra={"log_type": "logout_fallback", "error_code": request.error.code},
            )
            return RedirectResponse(redirect_to=self.logged_out_url)

        logger.info(
            "Accepting logout",
            extra={"log_type": "logout_accept", "subject": request.value.subject, "rp_initiated": request.value.rp_initiated},
        )
        accepted = await self.hydra.accept_logout_request(challenge)
        if isinstance(accepted, Err):
            oauth2_challenge_decisions_total.labels(challenge="logout", decision="failed").inc()
            logger.warning(
                "Logout accept failed, sending to logged-out page",
                extra={"log_type": "logout_fallback", "error_code": accepted.error.code},
            )
            return RedirectResponse(redirect_to=self.logged_out_url)

        oauth2_challenge_decisions_total.labels(challenge="logout", decision="accepted").inc()
        return accepted.value
