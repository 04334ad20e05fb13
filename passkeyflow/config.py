from __future__ import annotations

import os
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import BINDING_ENDPOINT, MAX_ASSERTION_TTL_SECONDS, PAR_RESOURCE_PATH

DEFAULT_ALLOWED_ORIGINS = [
    "https://sandbox.auth.visa.com",
    "https://sandbox.in.auth.visa.com",
    "https://auth.visa.com",
    "https://in.auth.visa.com",
]


class NetworkConfig(BaseModel):
    """Endpoints of the passkey authorization network."""

    environment: Literal["sandbox", "production"] = "sandbox"
    hub_base_url_sandbox: str = "https://sandbox.auth.visa.com"
    hub_base_url_production: str = "https://auth.visa.com"
    api_base_url_sandbox: str = "https://sandbox.api.visa.com"
    api_base_url_production: str = "https://api.visa.com"
    par_path: str = PAR_RESOURCE_PATH
    binding_endpoint: str = BINDING_ENDPOINT
    data_center_hint: Optional[str] = "US"
    allowed_origins: List[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS)
    )
    request_timeout: float = 30.0

    @property
    def hub_base_url(self) -> str:
        if self.environment == "production":
            return self.hub_base_url_production
        return self.hub_base_url_sandbox

    @property
    def api_base_url(self) -> str:
        if self.environment == "production":
            return self.api_base_url_production
        return self.api_base_url_sandbox


class MerchantConfig(BaseModel):
    """Merchant identity presented to the network."""

    origin: str = "http://localhost:3000"
    integrator_origin: str = "http://localhost:3000"
    name: str = "Demo Merchant"
    apn: str = "cardinal-web"
    product_code: str = "CRD"
    client_id: str = "s6BhdRkqt3"
    client_version: str = "1.0.0"


class CredentialsConfig(BaseModel):
    """Basic and HMAC transport credentials."""

    basic_auth_username: Optional[str] = None
    basic_auth_password: Optional[str] = None
    api_key: Optional[str] = None
    shared_secret: Optional[str] = None


class MutualTLSConfig(BaseModel):
    """Client certificate used for two-way TLS."""

    cert_path: Optional[str] = None
    key_path: Optional[str] = None
    verify: bool = True


class AssertionConfig(BaseModel):
    """Signing of client assertions and fallback request objects."""

    private_key_path: Optional[str] = None
    key_id: Optional[str] = None
    issuer: Optional[str] = None
    audience: List[str] = Field(default_factory=lambda: ["https://www.visa.com"])
    ttl_seconds: int = Field(default=MAX_ASSERTION_TTL_SECONDS, gt=0, le=MAX_ASSERTION_TTL_SECONDS)


class EncryptionConfig(BaseModel):
    """Message level encryption of the PAR body."""

    enabled: bool = False
    certificate_path: Optional[str] = None
    key_id: Optional[str] = None
    response_private_key_path: Optional[str] = None


class TimeoutConfig(BaseModel):
    """Seconds the orchestrator waits in a widget-driven state."""

    initializing: Optional[float] = 60.0
    device_profile: Optional[float] = 60.0
    authorization_handoff: Optional[float] = 360.0


class PasskeyFlowConfig(BaseModel):
    """Top-level configuration model."""

    network: NetworkConfig = NetworkConfig()
    merchant: MerchantConfig = MerchantConfig()
    credentials: CredentialsConfig = CredentialsConfig()
    mtls: MutualTLSConfig = MutualTLSConfig()
    assertion: AssertionConfig = AssertionConfig()
    encryption: EncryptionConfig = EncryptionConfig()
    timeouts: TimeoutConfig = TimeoutConfig()


_ENV_OVERRIDES = {
    "PASSKEYFLOW_API_KEY": ("credentials", "api_key"),
    "PASSKEYFLOW_SHARED_SECRET": ("credentials", "shared_secret"),
    "PASSKEYFLOW_BASIC_AUTH_USERNAME": ("credentials", "basic_auth_username"),
    "PASSKEYFLOW_BASIC_AUTH_PASSWORD": ("credentials", "basic_auth_password"),
}


def load_config(path: Optional[str] = None) -> PasskeyFlowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to PASSKEYFLOW_CONFIG env
            variable or 'passkeyflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("PASSKEYFLOW_CONFIG", "passkeyflow.yaml")
    data = {}
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

    # Overrides are merged before validation so they pass the same checks.
    env_environment = os.getenv("PASSKEYFLOW_ENVIRONMENT")
    if env_environment:
        data.setdefault("network", {})["environment"] = env_environment.lower()
    for env_name, (section, field) in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            data.setdefault(section, {})[field] = value
    return PasskeyFlowConfig(**data)
