from importlib.metadata import version

import kscp_webhook


def test_version_from_metadata():
    assert kscp_webhook.__version__ == version("kscp-webhook")
