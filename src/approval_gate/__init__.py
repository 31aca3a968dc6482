"""approval-gate: auto-approves pipeline stages whose IAM templates did not change."""

from importlib import metadata

try:
    __version__ = metadata.version("approval-gate")
except metadata.PackageNotFoundError:
    __version__ = "0.0.0-dev"
