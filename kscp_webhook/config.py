"""
Process-wide configuration for the secret injector webhook.

Everything here is read once from the environment at startup and treated as
read-only afterwards.

Environment:
- AWS_AGENT_IMAGE / GCP_AGENT_IMAGE / AZURE_AGENT_IMAGE: agent image per provider
- PORT (default: 8443)
- CERT_FILE (default: /tls/tls.crt)
- KEY_FILE (default: /tls/tls.key)
- LOG_LEVEL (default: INFO)
"""

import logging
import os
from enum import Enum
from typing import Mapping, Optional, Union

logger = logging.getLogger(__name__)

# Annotation keys, {NAME} is the secret name and {PROVIDER} the agent provider
INJECTION_SECRETS_ANNOTATION = "kscp.io/inject-{PROVIDER}"
INJECTION_TEMPLATE_ANNOTATION = "kscp.io/template-{NAME}"
INJECTION_TARGET_ANNOTATION = "kscp.io/target-{NAME}"

# `kscp.io/inject-custom` requests secrets from the agent image named here
CUSTOM_PROVIDER = "custom"
CUSTOM_AGENT_IMAGE_ANNOTATION = "kscp.io/custom-agent-image"

DEFAULT_TARGET_DIR = "/var/run/secrets/kscp.io"

PORT = int(os.environ.get("PORT", "8443"))
CERT_FILE = os.environ.get("CERT_FILE", "/tls/tls.crt")
KEY_FILE = os.environ.get("KEY_FILE", "/tls/tls.key")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()


class Provider(str, Enum):
    AWS = "aws"
    GCP = "gcp"
    AZURE = "azure"


PROVIDER_IMAGE_ENV = {
    Provider.AWS: "AWS_AGENT_IMAGE",
    Provider.GCP: "GCP_AGENT_IMAGE",
    Provider.AZURE: "AZURE_AGENT_IMAGE",
}


def parse_provider(value: str) -> Union[Provider, str]:
    """Return the known provider for `value`, or `value` itself as a custom image."""
    try:
        return Provider(value)
    except ValueError:
        return value


class AgentImages:
    """Agent image references keyed by known provider.

    Unknown providers are custom agents: the provider string is the image.
    """

    def __init__(self, images: Mapping[Provider, str]):
        self._images = {provider: images.get(provider, "") for provider in Provider}

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AgentImages":
        environ = os.environ if environ is None else environ
        images = {}
        for provider, env_name in PROVIDER_IMAGE_ENV.items():
            images[provider] = environ.get(env_name, "")
            if not images[provider]:
                logger.warning("%s is not set; %s agents will have no image", env_name, provider.value)
        return cls(images)

    def image_for(self, provider: Union[Provider, str]) -> str:
        parsed = parse_provider(provider) if not isinstance(provider, Provider) else provider
        if isinstance(parsed, Provider):
            return self._images[parsed]
        return parsed

    def __repr__(self) -> str:
        return "AgentImages(%s)" % ", ".join(f"{p.value}={img!r}" for p, img in self._images.items())
