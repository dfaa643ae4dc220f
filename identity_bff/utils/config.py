"""Configuration utilities for the Identity BFF."""

import json
import logging
import os
from functools import lru_cache
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import ClientError
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "openid email profile offline_access"


class ConfigurationError(Exception):
    """Raised when required configuration is missing."""


class AwsSecretsManager:
    """Utility class for retrieving secrets from AWS Secrets Manager."""

    def __init__(self, region_name: Optional[str] = None):
        """
        Initialize AWS Secrets Manager client.

        Args:
            region_name: AWS region name
        """
        self.region_name = region_name or os.environ.get("AWS_REGION", "us-east-1")
        self.client = boto3.client(
            service_name="secretsmanager",
            region_name=self.region_name,
            endpoint_url=os.environ.get("AWS_SECRETSMANAGER_ENDPOINT"),
        )

    def get_secret(self, secret_name: str) -> Dict[str, Any]:
        """
        Retrieve a secret from AWS Secrets Manager.

        Args:
            secret_name: Name or ARN of the secret

        Returns:
            Dict[str, Any]: Secret values as a dictionary

        Raises:
            ClientError: If the secret cannot be retrieved
        """
        try:
            response = self.client.get_secret_value(SecretId=secret_name)
            if "SecretString" in response:
                return json.loads(response["SecretString"])
            raise ValueError("Binary secrets are not supported")
        except ClientError as e:
            if os.environ.get("SERVICE_ENV", "development") == "development":
                logger.warning(f"Could not retrieve secret {secret_name}: {str(e)}")
                return {}
            raise


class Settings(BaseSettings):
    """Application settings loaded from environment variables and secrets."""

    # Service configuration
    service_env: str = Field("development", description="Service environment (development, staging, production)")
    log_level: str = Field("INFO", description="Logging level")
    log_output: str = Field("stdout", description="Log output: stdout or file")
    log_file_path: Optional[str] = Field(None, description="Log file path when log_output is 'file'")
    cors_origins: List[str] = Field(["*"], description="CORS allowed origins")
    secret_name: Optional[str] = Field(None, description="AWS Secrets Manager secret name")
    aws_region: str = Field("us-east-1", description="AWS region used for Secrets Manager")

    # Authorization server (Hydra)
    hydra_admin_url: str = Field("http://localhost:4445", description="Hydra admin API base URL")
    hydra_public_url: str = Field("http://localhost:4444", description="Hydra public base URL")
    oauth2_authorization_endpoint: Optional[str] = Field(
        "http://localhost:4444/oauth2/auth", description="OAuth2 authorization endpoint"
    )
    oauth2_token_endpoint: Optional[str] = Field(
        "http://localhost:4444/oauth2/token", description="OAuth2 token endpoint"
    )
    oauth2_userinfo_endpoint: Optional[str] = Field(
        "http://localhost:4444/userinfo", description="OIDC userinfo endpoint"
    )
    oauth2_client_id: Optional[str] = Field(None, description="OAuth2 client ID of the Relying Party")
    oauth2_client_secret: Optional[SecretStr] = Field(None, description="OAuth2 client secret (confidential clients)")
    oauth2_redirect_uri: Optional[str] = Field(None, description="OAuth2 redirect URI of the Relying Party")
    oauth2_scope: str = Field(DEFAULT_SCOPE, description="Default scope requested at authorization time")
    oauth2_post_logout_redirect_uri: Optional[str] = Field(None, description="Where to land after RP-initiated logout")

    # Identity provider (Kratos)
    kratos_public_url: str = Field("http://localhost:4433", description="Kratos public API base URL")
    kratos_admin_url: str = Field("http://localhost:4434", description="Kratos admin API base URL")

    # Flow configuration
    remember_for_seconds: int = Field(3600, description="Seconds a remembered login/consent stays valid")
    logged_out_url: str = Field("http://localhost:3000/oauth2/logged-out", description="Landing page after logout")
    request_timeout_seconds: int = Field(30, description="HTTP request timeout in seconds")

    # Metrics
    metrics_user: str = Field("metrics", description="Username for the metrics endpoint")
    metrics_pass: SecretStr = Field(SecretStr("metrics"), description="Password for the metrics endpoint")

    @field_validator("cors_origins")
    @classmethod
    def validate_cors_origins(cls, v: List[str]) -> List[str]:
        """
        Validate CORS origins.

        Args:
            v: List of CORS origins

        Returns:
            List[str]: Validated list of CORS origins
        """
        if len(v) == 1 and v[0] == "*":
            return v

        # A single comma-separated string is split
        if len(v) == 1 and "," in v[0]:
            v = v[0].split(",")

        validated = []
        for origin in v:
            origin = origin.strip()
            if not origin.startswith(("http://", "https://")):
                origin = f"https://{origin}"
            validated.append(origin)
        return validated

    @field_validator("hydra_admin_url", "hydra_public_url", "kratos_public_url", "kratos_admin_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URLs so paths can be appended."""
        return v.rstrip("/")

    def require_oauth2_client(self) -> None:
        """
        Check that the Relying Party configuration is complete.

        Raises:
            ConfigurationError: If the authorization endpoint, token endpoint,
                client ID or redirect URI is missing
        """
        missing = [
            name
            for name in (
                "oauth2_authorization_endpoint",
                "oauth2_token_endpoint",
                "oauth2_client_id",
                "oauth2_redirect_uri",
            )
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(f"Missing OAuth2 configuration: {', '.join(missing)}")

    def _load_secrets(self) -> None:
        """Load secrets from AWS Secrets Manager if configured."""
        if not self.secret_name or self.service_env == "development":
            return

        try:
            secrets_manager = AwsSecretsManager(self.aws_region)
            secrets = secrets_manager.get_secret(self.secret_name)

            for key, value in secrets.items():
                key_lower = key.lower()
                if hasattr(self, key_lower):
                    field_info = self.__class__.model_fields.get(key_lower)
                    if field_info and "SecretStr" in str(field_info.annotation) and isinstance(value, str):
                        value = SecretStr(value)
                    setattr(self, key_lower, value)
        except Exception as e:
            if self.service_env == "development":
                logger.warning(f"Failed to load secrets: {str(e)}")
            else:
                raise

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="",
        extra="ignore",
    )

    def __init__(self, *args, **kwargs):
        """Initialize settings with secrets."""
        super().__init__(*args, **kwargs)
        self._load_secrets()


@lru_cache()
def get_settings() -> Settings:
    """
    Create and cache settings instance.

    Returns:
        Settings: Application settings
    """
    return Settings()
