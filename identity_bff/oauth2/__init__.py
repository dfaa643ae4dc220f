"""Login, consent and logout challenge handling against the identity provider and authorization server."""

from identity_bff.oauth2.consent import ConsentChallengeHandler
from identity_bff.oauth2.errors import Provider, ProviderError
from identity_bff.oauth2.hydra import HydraAdminClient
from identity_bff.oauth2.kratos import KratosClient
from identity_bff.oauth2.login import LoginChallengeHandler
from identity_bff.oauth2.logout import LogoutChallengeHandler

__all__ = [
    "ConsentChallengeHandler",
    "HydraAdminClient",
    "KratosClient",
    "LoginChallengeHandler",
    "LogoutChallengeHandler",
    "Provider",
    "ProviderError",
]
