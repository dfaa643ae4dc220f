"""
FastAPI dependencies for the provider clients and challenge handlers.

Provider clients are created on first use and shared for the life of the
process; ``close_clients`` releases them at shutdown. Tests replace any of
these through ``app.dependency_overrides``.
"""
from typing import Dict, Union

from fastapi import Depends

from identity_bff.auth.oauth import TokenClient
from identity_bff.oauth2.consent import ConsentChallengeHandler
from identity_bff.oauth2.hydra import HydraAdminClient
from identity_bff.oauth2.kratos import KratosClient
from identity_bff.oauth2.login import LoginChallengeHandler
from identity_bff.oauth2.logout import LogoutChallengeHandler
from identity_bff.utils.config import Settings, get_settings

_clients: Dict[str, Union[HydraAdminClient, KratosClient]] = {}


def get_hydra_client(settings: Settings = Depends(get_settings)) -> HydraAdminClient:
    if "hydra" not in _clients:
        _clients["hydra"] = HydraAdminClient(settings.hydra_admin_url, timeout=settings.request_timeout_seconds)
    return _clients["hydra"]


def get_kratos_client(settings: Settings = Depends(get_settings)) -> KratosClient:
    if "kratos" not in _clients:
        _clients["kratos"] = KratosClient(
            settings.kratos_public_url,
            settings.kratos_admin_url,
            timeout=settings.request_timeout_seconds,
        )
    return _clients["kratos"]


async def close_clients() -> None:
    """Close and forget the shared provider clients."""
    while _clients:
        _, client = _clients.popitem()
        await client.close()


def get_login_handler(
    hydra: HydraAdminClient = Depends(get_hydra_client),
    kratos: KratosClient = Depends(get_kratos_client),
    settings: Settings = Depends(get_settings),
) -> LoginChallengeHandler:
    return LoginChallengeHandler(hydra, kratos, remember_for=settings.remember_for_seconds)


def get_consent_handler(
    hydra: HydraAdminClient = Depends(get_hydra_client),
    kratos: KratosClient = Depends(get_kratos_client),
    settings: Settings = Depends(get_settings),
) -> ConsentChallengeHandler:
    return ConsentChallengeHandler(hydra, kratos, remember_for=settings.remember_for_seconds)


def get_logout_handler(
    hydra: HydraAdminClient = Depends(get_hydra_client),
    settings: Settings = Depends(get_settings),
) -> LogoutChallengeHandler:
    return LogoutChallengeHandler(hydra, settings.logged_out_url)


def get_token_client(settings: Settings = Depends(get_settings)) -> TokenClient:
    return TokenClient.from_settings(settings)
