"""
Consent challenge handling.

A consent challenge moves FETCHED -> {SKIPPED | AWAITING_DECISION} ->
{ACCEPTED | REJECTED}. Accepted consents carry identity claims into the
tokens the authorization server issues.
"""
import logging
from typing import Any, Dict, List, Optional

from identity_bff.metrics import consent_claims_degraded_total, oauth2_challenge_decisions_total
from identity_bff.models.challenges import (
    AcceptConsentRequest,
    ChallengeOutcome,
    ChallengeState,
    ConsentDecision,
    ConsentRequestInfo,
    ConsentSession,
    Identity,
)
from identity_bff.oauth2.errors import ProviderError, missing_challenge
from identity_bff.oauth2.hydra import HydraAdminClient
from identity_bff.oauth2.kratos import KratosClient
from identity_bff.utils.result import Err, Ok, Result


logger = logging.getLogger(__name__)


class ClaimsAccumulator:
    """Collects the ID token claims a set of granted scopes allows."""

    def __init__(self, granted_scope: List[str]) -> None:
        self.granted_scope = set(granted_scope)
        self.claims: Dict[str, Any] = {}

    def add_identity(self, identity: Identity) -> Dict[str, Any]:
        traits = identity.traits
        if "email" in self.granted_scope and traits.email:
            self.claims["email"] = traits.email
            self.claims["email_verified"] = True
        if "profile" in self.granted_scope and traits.name is not None:
            first, last = traits.name.first or "", traits.name.last or ""
            self.claims["name"] = f"{first} {last}".strip()
            self.claims["given_name"] = first
            self.claims["family_name"] = last
        return self.claims


def select_granted_scope(requested: List[str], granted: Optional[List[str]]) -> List[str]:
    """Scopes to grant: the user's selection limited to what was requested, in request order."""
    if granted is None:
        return list(requested)
    selected = set(granted)
    return [scope for scope in requested if scope in selected]


class ConsentChallengeHandler:
    """Decides consent challenges on behalf of the user."""

    def __init__(self, hydra: HydraAdminClient, kratos: KratosClient, *, remember_for: int = 3600) -> None:
        self.hydra = hydra
        self.kratos = kratos
        self.remember_for = remember_for

    async def fetch(self, challenge: Optional[str]) -> Result[ConsentRequestInfo, ProviderError]:
        if not challenge:
            return Err(missing_challenge("consent"))
        return await self.hydra.get_consent_request(challenge)

    async def resolve(self, challenge: Optional[str]) -> Result[ChallengeOutcome, ProviderError]:
        """
        Read the consent request and auto-accept it when the user already consented.

        Returns:
            SKIPPED with ``redirect_to``, or AWAITING_DECISION with the request
        """
        fetched = await self.fetch(challenge)
        if isinstance(fetched, Err):
            return fetched

        request = fetched.value
        if not request.skip:
            return Ok(ChallengeOutcome(state=ChallengeState.AWAITING_DECISION, request=request))

        logger.info("Consent challenge can be skipped, accepting", extra={"log_type": "consent_skip"})
        return await self._accept(challenge, request, list(request.requested_scope), False, ChallengeState.SKIPPED)

    async def handle(
        self, challenge: Optional[str], decision: ConsentDecision
    ) -> Result[ChallengeOutcome, ProviderError]:
        """
        Apply the user's consent decision.

        A denial rejects the challenge with ``access_denied`` without reading
        it first. A grant reads the request, narrows the scopes to those
        requested and accepts with the identity claims those scopes allow.
        """
        if not challenge:
            return Err(missing_challenge("consent"))

        if not decision.grant:
            rejected = await self.hydra.reject_consent_request(
                challenge, "access_denied", "The user denied the consent request"
            )
            if isinstance(rejected, Err):
                oauth2_challenge_decisions_total.labels(challenge="consent", decision="failed").inc()
                return rejected
            oauth2_challenge_decisions_total.labels(challenge="consent", decision="rejected").inc()
            logger.info("Consent denied by user", extra={"log_type": "consent_reject"})
            return Ok(ChallengeOutcome(state=ChallengeState.REJECTED, redirect_to=rejected.value.redirect_to))

        fetched = await self.hydra.get_consent_request(challenge)
        if isinstance(fetched, Err):
            return fetched

        request = fetched.value
        grant_scope = select_granted_scope(request.requested_scope, decision.grant_scope)
        return await self._accept(challenge, request, grant_scope, decision.remember, ChallengeState.ACCEPTED)

    async def collect_claims(self, subject: str, grant_scope: List[str]) -> Dict[str, Any]:
        """
        Build session claims for ``subject``.

        A failed identity lookup yields no claims; consent goes ahead without them.
        """
        accumulator = ClaimsAccumulator(grant_scope)
        if not subject:
            return accumulator.claims

        identity = await self.kratos.get_identity(subject)
        if isinstance(identity, Err):
            consent_claims_degraded_total.inc()
            logger.warning(
                "Identity lookup failed, accepting consent without identity claims",
                extra={"log_type": "consent_claims_degraded", "error_code": identity.error.code},
            )
            return accumulator.claims
        return accumulator.add_identity(identity.value)

    async def _accept(
        self,
        challenge: str,
        request: ConsentRequestInfo,
        grant_scope: List[str],
        remember: bool,
        state: ChallengeState,
    ) -> Result[ChallengeOutcome, ProviderError]:
        claims = await self.collect_claims(request.subject, grant_scope)
        body = AcceptConsentRequest(
            grant_scope=grant_scope,
            grant_access_token_audience=list(request.requested_access_token_audience),
            remember=remember,
            remember_for=self.remember_for if remember else None,
            session=ConsentSession(id_token=dict(claims), access_token=dict(claims)),
        )
        accepted = await self.hydra.accept_consent_request(challenge, body)
        if isinstance(accepted, Err):
            oauth2_challenge_decisions_total.labels(challenge="consent", decision="failed").inc()
            return accepted

        decision = "skipped" if state is ChallengeState.SKIPPED else "accepted"
        oauth2_challenge_decisions_total.labels(challenge="consent", decision=decision).inc()
        logger.info(
            "Consent challenge accepted",
            extra={"log_type": "consent_accept", "granted_scope": grant_scope, "remember": remember},
        )
        return Ok(ChallengeOutcome(state=state, redirect_to=accepted.value.redirect_to))
