import pytest

from kscp_webhook.agent import build_agent_container, container_name
from kscp_webhook.mounts import merge_volume_mounts, mount_name
from kscp_webhook.secrets import SecretConfig, SecretSerializationError, decode_secrets


def test_known_provider_image(pod, images):
    container, _ = build_agent_container("aws", pod, ["a"], images)
    assert container["image"] == "aws-agent:1"
    assert container["name"] == "secret-injector-aws"
    assert container["command"] == ["/agent"]
    assert container["imagePullPolicy"] == "IfNotPresent"


def test_custom_provider_is_literal_image(pod, images):
    container, _ = build_agent_container("custom-registry/my-agent:v1", pod, ["a"], images)
    assert container["image"] == "custom-registry/my-agent:v1"
    assert container["name"] == "secret-injector-custom-registry-my-agent-v1"


def test_container_name_is_dns_label():
    name = container_name("Registry.example.com/" + "x" * 80 + ":latest")
    assert len(name) <= 63
    assert not name.endswith("-")


def test_config_argument_round_trips(pod, images):
    pod["metadata"]["annotations"] = {
        "kscp.io/template-b": "{{ .value }}",
        "kscp.io/target-b": "/etc/secrets/shared/b",
    }
    container, secrets = build_agent_container("gcp", pod, ["a", "b"], images)

    assert container["args"][0] == "--config"
    assert len(container["args"]) == 2
    assert decode_secrets(container["args"][1]) == secrets
    assert secrets == {
        "a": SecretConfig(target="/var/run/secrets/kscp.io/a"),
        "b": SecretConfig(template="{{ .value }}", target="/etc/secrets/shared/b"),
    }


def test_one_mount_per_directory(pod, images):
    pod["metadata"]["annotations"] = {"kscp.io/target-c": "/etc/other/c"}
    container, _ = build_agent_container("azure", pod, ["a", "b", "c"], images)

    assert container["volumeMounts"] == [
        {"name": mount_name("azure", 0), "mountPath": "/var/run/secrets/kscp.io"},
        {"name": mount_name("azure", 1), "mountPath": "/etc/other"},
    ]


def test_pod_not_modified(pod, images):
    before = repr(pod)
    build_agent_container("aws", pod, ["a"], images)
    assert repr(pod) == before


def test_serialization_error_propagates(pod, images, monkeypatch):
    def broken(secrets):
        raise SecretSerializationError("marshalling secrets: boom")

    monkeypatch.setattr("kscp_webhook.agent.encode_secrets", broken)
    with pytest.raises(SecretSerializationError):
        build_agent_container("aws", pod, ["a"], images)


def test_two_directories_shared_with_all_containers(pod, images):
    pod["metadata"]["annotations"] = {"kscp.io/target-b": "/etc/secrets/shared/b"}
    agent, _ = build_agent_container("aws", pod, ["a", "b"], images)

    result = merge_volume_mounts(["/data"], agent["volumeMounts"], pod)

    assert result.paths == ["/data", "/var/run/secrets/kscp.io", "/etc/secrets/shared"]
    assert len(pod["spec"]["volumes"]) == 3
    for container in pod["spec"]["containers"] + [agent]:
        paths = [m["mountPath"] for m in container["volumeMounts"]]
        assert "/var/run/secrets/kscp.io" in paths
        assert "/etc/secrets/shared" in paths


def test_non_canonical_targets_share_one_mount(pod, images):
    pod["metadata"]["annotations"] = {
        "kscp.io/target-a": "/etc/secrets/a",
        "kscp.io/target-b": "/etc/secrets/./b",
        "kscp.io/target-c": "/etc/x/../secrets/c",
    }
    container, _ = build_agent_container("aws", pod, ["a", "b", "c"], images)
    assert container["volumeMounts"] == [{"name": mount_name("aws", 0), "mountPath": "/etc/secrets"}]
