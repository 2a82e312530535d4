"""
Mutating Admission Webhook: inject secret agent init containers into Pods.

Behavior:
- Target resources: Pod objects annotated with `kscp.io/inject-<provider>`.
  The annotation value is a comma separated list of secret names.
  Providers are `aws`, `gcp`, `azure`, or `custom` together with
  `kscp.io/custom-agent-image` naming the agent image.
- Mutation: per provider, an init container `secret-injector-<provider>`
  running `/agent --config <base64 json>` is appended to spec.initContainers.
  Every distinct directory the agent writes to becomes an emptyDir volume
  mounted in the agent and in every application container.
  Per secret NAME:
    kscp.io/template-NAME   custom rendering template
    kscp.io/target-NAME     target file (default /var/run/secrets/kscp.io/NAME)

Implementation details:
- Receives AdmissionReview (v1) requests at /mutate (HTTPS).
- Computes RFC 6902 JSON Patch operations and base64-encodes the patch in the
  AdmissionReview response. If no mutation is needed, returns Allowed=true with
  no patch.
- A secret map that cannot be serialized denies the request. Other errors
  fail-open; use the webhook failurePolicy to control cluster behavior.

Configuration (via env): see kscp_webhook.config.
"""

import base64
import copy
import json
import logging
from typing import Any, Dict, List, Tuple

from flask import Flask, jsonify, request

from . import config
from .agent import build_agent_container, container_name
from .mounts import existing_mount_paths, merge_volume_mounts, rebind_mounts
from .secrets import SecretSerializationError, discover_providers, discover_secrets

app = Flask(__name__)
logging.basicConfig(level=getattr(logging, config.LOG_LEVEL, logging.INFO))

# Static envelope fields needed in AdmissionReview responses
BLANK_ADMISSIONREVIEW = {"apiVersion": "admission.k8s.io/v1", "kind": "AdmissionReview"}

# Read once at startup, shared read-only by all requests
AGENT_IMAGES = config.AgentImages.from_env()

PATCHED_LISTS = ("containers", "volumes", "initContainers")


def inject(pod: Dict[str, Any], images: config.AgentImages) -> Tuple[Dict[str, Any], int]:
    """Return a mutated copy of `pod` with one agent per requested provider.

    The second element is the number of agents injected.
    """
    mutated = copy.deepcopy(pod)
    annotations = (mutated.get("metadata") or {}).get("annotations") or {}
    paths = existing_mount_paths(mutated)
    injected = 0

    for key in discover_providers(annotations):
        secret_names = discover_secrets(key, annotations)
        if not secret_names:
            continue

        provider = key
        if key == config.CUSTOM_PROVIDER:
            provider = annotations.get(config.CUSTOM_AGENT_IMAGE_ANNOTATION, "")
            if not provider:
                app.logger.warning(
                    "secrets %s requested from a custom agent but %s is not set",
                    ",".join(secret_names),
                    config.CUSTOM_AGENT_IMAGE_ANNOTATION,
                )
                continue

        name = container_name(provider)
        if any(c.get("name") == name for c in (mutated.get("spec") or {}).get("initContainers") or []):
            app.logger.info("init container %s already present, skipping", name)
            continue

        agent, secrets = build_agent_container(provider, mutated, secret_names, images)
        result = merge_volume_mounts(paths, agent["volumeMounts"], mutated)
        paths = result.paths
        if result.conflicts:
            rebind_mounts(agent, mutated)
        mutated.setdefault("spec", {}).setdefault("initContainers", []).append(agent)
        injected += 1
        app.logger.info("injected %s for secrets=%s", agent["name"], ",".join(secrets))

    return mutated, injected


def build_patch(original: Dict[str, Any], mutated: Dict[str, Any]) -> List[Dict[str, Any]]:
    """JSON Patch ops replacing every spec list the mutation changed."""
    patches: List[Dict[str, Any]] = []
    before = original.get("spec") or {}
    after = mutated.get("spec") or {}

    for name in PATCHED_LISTS:
        if name not in after or after[name] == before.get(name):
            continue
        patches.append(
            {
                "op": "replace" if name in before else "add",
                "path": f"/spec/{name}",
                "value": after[name],
            }
        )
    return patches


@app.route("/mutate", methods=["POST"])
def mutate():
    """Admission endpoint that returns a JSON Patch injecting secret agents.

    Request: AdmissionReview v1 with `request.object` containing the Pod.
    Response: AdmissionReview v1 with `response.allowed` and optional
              base64-encoded `response.patch` (patchType=JSONPatch).
    """
    try:
        body = request.get_json(force=True, silent=False)
        if not isinstance(body, dict):
            raise ValueError("Invalid AdmissionReview payload")

        req = (body or {}).get("request") or {}
        uid = req.get("uid")
        kind = (req.get("kind") or {}).get("kind")
        obj = req.get("object") or {}

        response: Dict[str, Any] = {"uid": uid, "allowed": True}

        if kind == "Pod":
            try:
                mutated, injected = inject(obj, AGENT_IMAGES)
            except SecretSerializationError as exc:
                app.logger.error("mutation uid=%s denied: %s", uid, exc)
                response["allowed"] = False
                response["status"] = {"code": 400, "message": str(exc)}
                return jsonify({**BLANK_ADMISSIONREVIEW, "response": response})

            ops = build_patch(obj, mutated)
            if ops:
                patch_bytes = json.dumps(ops).encode("utf-8")
                response["patch"] = base64.b64encode(patch_bytes).decode("utf-8")
                response["patchType"] = "JSONPatch"
                obj_meta = obj.get("metadata") or {}
                app.logger.info(
                    "mutation uid=%s ns=%s name=%s agents=%d patches=%d",
                    uid,
                    obj_meta.get("namespace"),
                    obj_meta.get("name") or obj_meta.get("generateName"),
                    injected,
                    len(ops),
                )

        return jsonify({**BLANK_ADMISSIONREVIEW, "response": response})

    except Exception as exc:  # noqa: BLE001
        app.logger.exception("mutation failed: %s", exc)
        fail_body = request.get_json(silent=True)
        fail_uid = None
        if isinstance(fail_body, dict):
            fail_uid = (fail_body.get("request") or {}).get("uid")
        return jsonify({**BLANK_ADMISSIONREVIEW, "response": {"uid": fail_uid, "allowed": True}})


@app.route("/healthz", methods=["GET"])  # liveness/readiness
def healthz():
    """Simple liveness/readiness probe endpoint."""
    return "ok", 200


def main() -> None:
    """Run the Flask app with TLS using cert/key provided via env or defaults."""
    app.logger.info("Starting webhook on port %s (%r)", config.PORT, AGENT_IMAGES)
    app.run(host="0.0.0.0", port=config.PORT, ssl_context=(config.CERT_FILE, config.KEY_FILE))


if __name__ == "__main__":
    main()
