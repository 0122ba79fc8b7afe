from .artifact import ArtifactStep
from .bootstrap import BootstrapStep
from .credential import GithubCliStep, GitIdentityStep, GpgSigningStep, SshKeyStep
from .package import PackageStep

__all__ = [
    "ArtifactStep",
    "BootstrapStep",
    "GithubCliStep",
    "GitIdentityStep",
    "GpgSigningStep",
    "PackageStep",
    "SshKeyStep",
]
