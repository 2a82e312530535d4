"""Construction of the secret agent init container."""

import logging
import re
from typing import Any, Dict, Iterable, Tuple

from .config import AgentImages
from .mounts import mount_name, target_dirs
from .secrets import SecretConfig, encode_secrets, resolve_secrets

logger = logging.getLogger(__name__)

AGENT_COMMAND = "/agent"
CONTAINER_NAME_PREFIX = "secret-injector-"
_DNS_LABEL_MAX = 63


def container_name(provider: str) -> str:
    """`secret-injector-<provider>`, squashed into a valid DNS label for custom images."""
    suffix = re.sub(r"[^a-z0-9-]+", "-", provider.lower()).strip("-")
    return (CONTAINER_NAME_PREFIX + suffix)[:_DNS_LABEL_MAX].rstrip("-")


def build_agent_container(
    provider: str,
    pod: Dict[str, Any],
    secret_names: Iterable[str],
    images: AgentImages,
) -> Tuple[Dict[str, Any], Dict[str, SecretConfig]]:
    """Build the init container that fetches `secret_names` for `provider`.

    Returns the container and the resolved secret map. The container carries
    one volumeMount per distinct target directory, named kscp-<hash>-<index>.
    It is not added to the Pod.

    Raises SecretSerializationError if the secret map cannot be encoded.
    """
    annotations = (pod.get("metadata") or {}).get("annotations") or {}
    secrets = resolve_secrets(secret_names, annotations)
    cfg = encode_secrets(secrets)

    mounts = [
        {"name": mount_name(provider, index), "mountPath": directory}
        for index, directory in enumerate(target_dirs(secrets))
    ]

    container: Dict[str, Any] = {
        "name": container_name(provider),
        "image": images.image_for(provider),
        "imagePullPolicy": "IfNotPresent",
        "command": [AGENT_COMMAND],
        "args": ["--config", cfg],
        "volumeMounts": mounts,
    }
    logger.debug(
        "built agent %s image=%s secrets=%d mounts=%d",
        container["name"],
        container["image"],
        len(secrets),
        len(mounts),
    )
    return container, secrets
