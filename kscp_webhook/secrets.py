"""
Per-secret configuration resolved from Pod annotations.

For a secret named NAME:
- `kscp.io/template-NAME` selects a custom rendering template (optional).
- `kscp.io/target-NAME` selects the absolute file the agent writes to.
  Defaults to /var/run/secrets/kscp.io/NAME.

The resolved map is handed to the agent as base64(JSON) on its command line.
"""

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .config import (
    DEFAULT_TARGET_DIR,
    INJECTION_SECRETS_ANNOTATION,
    INJECTION_TARGET_ANNOTATION,
    INJECTION_TEMPLATE_ANNOTATION,
)


class SecretSerializationError(ValueError):
    """The secret map could not be turned into the agent's --config payload."""


@dataclass(frozen=True)
class SecretConfig:
    template: str = ""
    target: str = ""

    def to_dict(self) -> Dict[str, str]:
        data = {"target": self.target}
        if self.template:
            data["template"] = self.template
        return data


def resolve_secret_config(secret_name: str, annotations: Optional[Mapping[str, str]]) -> SecretConfig:
    """Resolve template and target for one secret from the Pod annotations."""
    annotations = annotations or {}
    template_key = INJECTION_TEMPLATE_ANNOTATION.replace("{NAME}", secret_name)
    target_key = INJECTION_TARGET_ANNOTATION.replace("{NAME}", secret_name)

    template = annotations.get(template_key, "")
    if target_key in annotations:
        target = annotations[target_key]
    else:
        target = f"{DEFAULT_TARGET_DIR}/{secret_name}"
    return SecretConfig(template=template, target=target)


def resolve_secrets(secret_names: Iterable[str], annotations: Optional[Mapping[str, str]]) -> Dict[str, SecretConfig]:
    """Return a new name -> SecretConfig mapping, in the order the names were given."""
    return {name: resolve_secret_config(name, annotations) for name in secret_names}


def encode_secrets(secrets: Mapping[str, SecretConfig]) -> str:
    """Serialize the secret map to compact JSON and base64-encode it."""
    try:
        payload: Dict[str, Any] = {name: cfg.to_dict() for name, cfg in secrets.items()}
        data = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError, AttributeError) as exc:
        raise SecretSerializationError(f"marshalling secrets: {exc}") from exc
    return base64.b64encode(data.encode("utf-8")).decode("utf-8")


def decode_secrets(payload: str) -> Dict[str, SecretConfig]:
    """Inverse of `encode_secrets`."""
    try:
        data = json.loads(base64.b64decode(payload, validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise SecretSerializationError(f"unmarshalling secrets: {exc}") from exc
    if not isinstance(data, dict) or not all(isinstance(cfg, dict) for cfg in data.values()):
        raise SecretSerializationError("unmarshalling secrets: expected a mapping of name to object")
    return {
        name: SecretConfig(template=cfg.get("template", ""), target=cfg.get("target", ""))
        for name, cfg in data.items()
    }


def discover_secrets(provider: str, annotations: Optional[Mapping[str, str]]) -> List[str]:
    """Secret names requested for `provider` via `kscp.io/inject-<provider>`.

    The annotation value is a comma separated list; blanks and repeats are dropped.
    """
    key = INJECTION_SECRETS_ANNOTATION.replace("{PROVIDER}", provider)
    raw = (annotations or {}).get(key) or ""
    names: List[str] = []
    for name in raw.split(","):
        name = name.strip()
        if name and name not in names:
            names.append(name)
    return names


def discover_providers(annotations: Optional[Mapping[str, str]]) -> List[str]:
    """Providers named by any `kscp.io/inject-<provider>` annotation, in annotation order."""
    prefix = INJECTION_SECRETS_ANNOTATION.split("{PROVIDER}")[0]
    return [key[len(prefix):] for key in (annotations or {}) if key.startswith(prefix) and len(key) > len(prefix)]
