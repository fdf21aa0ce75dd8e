from __future__ import annotations

import logging
import os
from typing import Callable, Mapping, Optional

from google.api_core import exceptions as gcp_exceptions
from google.cloud import secretmanager
from pydantic import BaseModel, Field, ValidationError

from .errors import InvalidConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_AWS_REGION = "us-east-1"

SecretLoader = Callable[[str], Optional[str]]


class ElementalConductorConfig(BaseModel):
    host: str = ""
    user_login: str = ""
    api_key: str = ""
    auth_expires: int = Field(default=0, description="Validity window of signed requests, in minutes")
    access_key_id: str = ""
    secret_access_key: str = ""
    destination: str = ""


class MediaConvertConfig(BaseModel):
    access_key_id: str = ""
    secret_access_key: str = ""
    region: str = DEFAULT_AWS_REGION
    endpoint: str = ""
    queue: str = Field(default="", description="Queue ARN")
    role: str = Field(default="", description="IAM role ARN assumed by MediaConvert")
    destination: str = ""


class Config(BaseModel):
    elemental_conductor: ElementalConductorConfig = Field(default_factory=ElementalConductorConfig)
    media_convert: MediaConvertConfig = Field(default_factory=MediaConvertConfig)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        secret_loader: SecretLoader | None = None,
    ) -> "Config":
        """Build the configuration from environment variables.

        Args:
            environ: Mapping to read from (defaults to ``os.environ``)
            secret_loader: Optional callable used for credentials that are not
                set in the environment. It receives the secret id
                (e.g. ``"elementalconductor-api-key"``) and returns the value
                or ``None``.

        Returns:
            Config instance
        """
        env = os.environ if environ is None else environ

        def read(name: str, secret_id: str | None = None) -> str:
            value = env.get(name, "")
            if not value and secret_id and secret_loader is not None:
                value = secret_loader(secret_id) or ""
            return value

        try:
            return cls(
                elemental_conductor=ElementalConductorConfig(
                    host=read("ELEMENTALCONDUCTOR_HOST"),
                    user_login=read("ELEMENTALCONDUCTOR_USER_LOGIN"),
                    api_key=read("ELEMENTALCONDUCTOR_API_KEY", "elementalconductor-api-key"),
                    auth_expires=read("ELEMENTALCONDUCTOR_AUTH_EXPIRES") or 0,
                    access_key_id=read("ELEMENTALCONDUCTOR_AWS_ACCESS_KEY_ID"),
                    secret_access_key=read(
                        "ELEMENTALCONDUCTOR_AWS_SECRET_ACCESS_KEY",
                        "elementalconductor-aws-secret-access-key",
                    ),
                    destination=read("ELEMENTALCONDUCTOR_DESTINATION"),
                ),
                media_convert=MediaConvertConfig(
                    access_key_id=read("MEDIACONVERT_AWS_ACCESS_KEY_ID"),
                    secret_access_key=read(
                        "MEDIACONVERT_AWS_SECRET_ACCESS_KEY",
                        "mediaconvert-aws-secret-access-key",
                    ),
                    region=read("MEDIACONVERT_AWS_REGION") or DEFAULT_AWS_REGION,
                    endpoint=read("MEDIACONVERT_ENDPOINT"),
                    queue=read("MEDIACONVERT_QUEUE_ARN"),
                    role=read("MEDIACONVERT_ROLE_ARN"),
                    destination=read("MEDIACONVERT_DESTINATION"),
                ),
            )
        except ValidationError as exc:
            raise InvalidConfigurationError(f"invalid provider configuration: {exc}") from exc


class SecretManagerLoader:
    """Reads provider credentials from Google Secret Manager."""

    def __init__(self, project_id: str) -> None:
        self.project_id = project_id
        self._client = secretmanager.SecretManagerServiceClient()

    def __call__(self, secret_id: str) -> str | None:
        name = f"projects/{self.project_id}/secrets/{secret_id}/versions/latest"
        try:
            response = self._client.access_secret_version(name=name)
        except gcp_exceptions.NotFound:
            logger.debug("Secret not found", extra={"secret_id": secret_id})
            return None
        return response.payload.data.decode("UTF-8")


__all__ = [
    "Config",
    "DEFAULT_AWS_REGION",
    "ElementalConductorConfig",
    "MediaConvertConfig",
    "SecretManagerLoader",
]
