"""Admission webhook injecting secret agent init containers into Pods."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("kscp-webhook")
except PackageNotFoundError:
    __version__ = "0+unknown"
