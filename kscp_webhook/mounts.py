"""
Shared volume planning between the secret agent and the application containers.

The agent writes every secret into a directory. Each distinct directory gets
one emptyDir volume, mounted at the same path in the agent and in every
application container. Paths are deduplicated across everything already on
the Pod: the first mount registered for a path wins.
"""

import logging
import posixpath
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping

from .secrets import SecretConfig

logger = logging.getLogger(__name__)

FNV64_OFFSET_BASIS = 0xCBF29CE484222325
FNV64_PRIME = 0x100000001B3
_MASK64 = 0xFFFFFFFFFFFFFFFF


def fnv1a_64(text: str) -> int:
    """64-bit FNV-1a of the UTF-8 bytes of `text`. For naming only, not integrity."""
    value = FNV64_OFFSET_BASIS
    for byte in text.encode("utf-8"):
        value ^= byte
        value = (value * FNV64_PRIME) & _MASK64
    return value


def mount_name(provider: str, index: int) -> str:
    """Volume name for the `index`-th directory of `provider`: kscp-<hash>-<index>."""
    return f"kscp-{fnv1a_64(provider)}-{index}"


def target_dirs(secrets: Mapping[str, SecretConfig]) -> List[str]:
    """Distinct normalized parent directories of all secret targets, in order of first appearance."""
    dirs: List[str] = []
    for cfg in secrets.values():
        directory = posixpath.normpath(posixpath.dirname(cfg.target) or ".")
        if directory not in dirs:
            dirs.append(directory)
    return dirs


def existing_mount_paths(pod: Dict[str, Any]) -> List[str]:
    """Distinct mount paths already declared by the Pod's application containers."""
    paths: List[str] = []
    for container in (pod.get("spec") or {}).get("containers") or []:
        for mount in container.get("volumeMounts") or []:
            path = mount.get("mountPath")
            if path and path not in paths:
                paths.append(path)
    return paths


@dataclass
class MergeResult:
    paths: List[str]
    conflicts: List[Dict[str, Any]] = field(default_factory=list)


def merge_volume_mounts(
    existing_paths: Iterable[str],
    candidate_mounts: Iterable[Dict[str, Any]],
    pod: Dict[str, Any],
) -> MergeResult:
    """Fan new mounts out to every application container, backed by emptyDir volumes.

    Candidates whose mountPath is already in `existing_paths` (or was added
    earlier in this call) are skipped. A skipped candidate whose name differs
    from the mount registered at that path is returned in `conflicts`.

    Mutates pod.spec.containers[*].volumeMounts and pod.spec.volumes. Nothing
    is removed or reordered.
    """
    paths = list(existing_paths)
    spec = pod.setdefault("spec", {})
    containers = spec.setdefault("containers", [])
    volumes = spec.setdefault("volumes", [])
    registered = _mounts_by_path(containers)
    result = MergeResult(paths=paths)

    for mount in candidate_mounts:
        path = mount["mountPath"]
        if path in paths:
            owner = registered.get(path)
            if owner is not None and owner != mount["name"]:
                logger.warning(
                    "mount %s at %s skipped: path already mounted by volume %s", mount["name"], path, owner
                )
                result.conflicts.append(dict(mount))
            continue

        paths.append(path)
        registered[path] = mount["name"]
        for container in containers:
            container.setdefault("volumeMounts", []).append(dict(mount))
        volumes.append({"name": mount["name"], "emptyDir": {}})

    return result


def rebind_mounts(container: Dict[str, Any], pod: Dict[str, Any]) -> int:
    """Point the container's mounts at the volumes already shared at the same paths.

    Returns how many mounts were renamed.
    """
    registered = _mounts_by_path((pod.get("spec") or {}).get("containers") or [])
    rebound = 0
    for mount in container.get("volumeMounts") or []:
        owner = registered.get(mount["mountPath"])
        if owner is not None and owner != mount["name"]:
            logger.debug("rebinding %s at %s to volume %s", mount["name"], mount["mountPath"], owner)
            mount["name"] = owner
            rebound += 1
    return rebound


def _mounts_by_path(containers: List[Dict[str, Any]]) -> Dict[str, str]:
    owners: Dict[str, str] = {}
    for container in containers:
        for mount in container.get("volumeMounts") or []:
            owners.setdefault(mount.get("mountPath"), mount.get("name"))
    return owners
