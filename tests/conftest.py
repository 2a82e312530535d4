import pytest

from kscp_webhook.config import AgentImages, Provider


@pytest.fixture
def images():
    return AgentImages({Provider.AWS: "aws-agent:1", Provider.GCP: "gcp-agent:1", Provider.AZURE: "azure-agent:1"})


@pytest.fixture
def pod():
    """Two application containers, one of them with an existing mount."""
    return {
        "metadata": {"name": "web", "namespace": "default", "annotations": {}},
        "spec": {
            "containers": [
                {
                    "name": "app",
                    "image": "nginx:latest",
                    "volumeMounts": [{"name": "data", "mountPath": "/data"}],
                },
                {"name": "sidecar", "image": "busybox:latest"},
            ],
            "volumes": [{"name": "data", "emptyDir": {}}],
        },
    }
