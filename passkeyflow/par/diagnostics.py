"""Configuration checks for the PAR client and its key material."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field

from ..config import PasskeyFlowConfig
from ..errors import KeyMaterialError
from ..security.keys import load_private_key, load_public_key


class ConfigurationReport(BaseModel):
    environment: str
    api_base_url: str
    issues: List[str] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.issues


def validate_configuration(config: PasskeyFlowConfig) -> ConfigurationReport:
    """Collect every configuration problem instead of stopping at the first."""
    report = ConfigurationReport(
        environment=config.network.environment,
        api_base_url=config.network.api_base_url,
    )
    issues = report.issues

    if not config.network.api_base_url:
        issues.append("Network API base URL not configured")
    if not config.merchant.apn:
        issues.append("Merchant APN not configured")
    if not config.network.allowed_origins:
        issues.append("No allowed widget origins configured")

    if config.network.environment == "production":
        if not config.credentials.api_key:
            issues.append("API key not configured for production")
        if not config.credentials.shared_secret:
            issues.append("Shared secret not configured for production")
        if not (config.mtls.cert_path and config.mtls.key_path):
            issues.append("Mutual TLS client certificate not configured for production")

    if not config.assertion.private_key_path:
        issues.append("Assertion signing key not configured")
    else:
        try:
            load_private_key(config.assertion.private_key_path)
        except KeyMaterialError as e:
            issues.append(f"Assertion signing key unusable: {e}")

    if config.encryption.enabled:
        if not config.encryption.key_id:
            issues.append("Encryption key id not configured")
        if not config.encryption.certificate_path:
            issues.append("Encryption certificate not configured")
        else:
            try:
                load_public_key(config.encryption.certificate_path)
            except KeyMaterialError as e:
                issues.append(f"Encryption certificate unusable: {e}")

    return report
