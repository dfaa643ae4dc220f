"""
Login challenge handling.

A login challenge moves FETCHED -> {SKIPPED | AWAITING_CREDENTIALS} ->
{ACCEPTED | REJECTED}. Every terminal transition yields the ``redirect_to``
the authorization server hands back; the web layer sends the browser there.
"""
import logging
from typing import Optional

from identity_bff.metrics import oauth2_challenge_decisions_total
from identity_bff.models.challenges import (
    AcceptLoginRequest,
    ChallengeOutcome,
    ChallengeState,
    LoginBody,
    LoginCredentials,
    LoginRequestInfo,
    SkipLogin,
)
from identity_bff.oauth2.errors import ProviderError, missing_challenge
from identity_bff.oauth2.hydra import HydraAdminClient
from identity_bff.oauth2.kratos import KratosClient
from identity_bff.utils.result import Err, Ok, Result


logger = logging.getLogger(__name__)


class LoginChallengeHandler:
    """Decides login challenges on behalf of the user."""

    def __init__(self, hydra: HydraAdminClient, kratos: KratosClient, *, remember_for: int = 3600) -> None:
        self.hydra = hydra
        self.kratos = kratos
        self.remember_for = remember_for

    async def fetch(self, challenge: Optional[str]) -> Result[LoginRequestInfo, ProviderError]:
        """Read the pending login request without deciding it."""
        if not challenge:
            return Err(missing_challenge("login"))
        return await self.hydra.get_login_request(challenge)

    async def resolve(self, challenge: Optional[str]) -> Result[ChallengeOutcome, ProviderError]:
        """
        Read the login request and auto-accept it when the authorization server allows skipping.

        Returns:
            SKIPPED with ``redirect_to`` when the subject is already
            authenticated, otherwise AWAITING_CREDENTIALS with the request.
        """
        fetched = await self.fetch(challenge)
        if isinstance(fetched, Err):
            return fetched

        request = fetched.value
        if not request.skip:
            return Ok(ChallengeOutcome(state=ChallengeState.AWAITING_CREDENTIALS, request=request))

        logger.info("Login challenge can be skipped, accepting", extra={"log_type": "login_skip"})
        accepted = await self._accept(challenge, AcceptLoginRequest(subject=request.subject, remember=False))
        if isinstance(accepted, Err):
            return accepted
        oauth2_challenge_decisions_total.labels(challenge="login", decision="skipped").inc()
        return Ok(ChallengeOutcome(state=ChallengeState.SKIPPED, redirect_to=accepted.value.redirect_to))

    async def handle(self, challenge: Optional[str], body: LoginBody) -> Result[ChallengeOutcome, ProviderError]:
        """
        Decide a login challenge from a skip directive or submitted credentials.

        Credentials the identity provider refuses reject the challenge with
        ``invalid_credentials``. An unreachable identity provider leaves the
        challenge open and returns the error so the user can retry.
        """
        if not challenge:
            return Err(missing_challenge("login"))

        if isinstance(body, SkipLogin):
            return await self._accept_outcome(challenge, AcceptLoginRequest(subject=body.subject, remember=False))

        credentials: LoginCredentials = body
        verified = await self.kratos.verify_credentials(credentials.email, credentials.password)
        if isinstance(verified, Err):
            if verified.error.code != "invalid_credentials":
                oauth2_challenge_decisions_total.labels(challenge="login", decision="failed").inc()
                return verified
            return await self._reject(challenge)

        identity = verified.value
        return await self._accept_outcome(
            challenge,
            AcceptLoginRequest(
                subject=identity.id,
                remember=credentials.remember,
                remember_for=self.remember_for if credentials.remember else None,
            ),
        )

    async def _accept(self, challenge: str, body: AcceptLoginRequest):
        result = await self.hydra.accept_login_request(challenge, body)
        if isinstance(result, Err):
            oauth2_challenge_decisions_total.labels(challenge="login", decision="failed").inc()
        return result

    async def _accept_outcome(self, challenge: str, body: AcceptLoginRequest) -> Result[ChallengeOutcome, ProviderError]:
        accepted = await self._accept(challenge, body)
        if isinstance(accepted, Err):
            return accepted
        oauth2_challenge_decisions_total.labels(challenge="login", decision="accepted").inc()
        logger.info("Login challenge accepted", extra={"log_type": "login_accept", "remember": body.remember})
        return Ok(ChallengeOutcome(state=ChallengeState.ACCEPTED, redirect_to=accepted.value.redirect_to))

    async def _reject(self, challenge: str) -> Result[ChallengeOutcome, ProviderError]:
        rejected = await self.hydra.reject_login_request(challenge, "invalid_credentials", "Invalid email or password")
        if isinstance(rejected, Err):
            oauth2_challenge_decisions_total.labels(challenge="login", decision="failed").inc()
            return rejected
        oauth2_challenge_decisions_total.labels(challenge="login", decision="rejected").inc()
        logger.info("Login challenge rejected", extra={"log_type": "login_reject"})
        return Ok(ChallengeOutcome(state=ChallengeState.REJECTED, redirect_to=rejected.value.redirect_to))
