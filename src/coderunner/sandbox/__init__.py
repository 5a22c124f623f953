"""Isolation backends — disposable sandbox contexts for submissions."""

from coderunner.sandbox.docker_provisioner import DockerProvisioner
from coderunner.sandbox.local_provisioner import LocalProvisioner
from coderunner.sandbox.models import SandboxContext
from coderunner.sandbox.provisioner import IsolationProvisioner, provisioned

__all__ = [
    "DockerProvisioner",
    "IsolationProvisioner",
    "LocalProvisioner",
    "SandboxContext",
    "provisioned",
]
