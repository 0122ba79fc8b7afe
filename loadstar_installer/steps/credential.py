from __future__ import annotations

import logging
from typing import Optional, Sequence

from ..configgen import ConfigArtifact, WriteOutcome, tilde
from ..credentials import CredentialManager
from ..pipeline import StepContext

logger = logging.getLogger(__name__)


def _manager(ctx: StepContext) -> CredentialManager:
    return CredentialManager(ctx.runner, ctx.paths, ctx.platform, log=ctx.log)


class GitIdentityStep:
    step_id = "cred:git-identity"
    phase = "credentials"
    label = "Configure git identity"

    def __init__(self, artifacts: Sequence[ConfigArtifact]) -> None:
        self.artifacts = tuple(artifacts)
        self.detail = ", ".join(a.label for a in self.artifacts)

    def run(self, ctx: StepContext) -> Optional[str]:
        results = _manager(ctx).configure_git_identity(self.artifacts)
        if all(outcome is WriteOutcome.UNCHANGED for _, outcome in results):
            return "up to date"
        return None


class SshKeyStep:
    step_id = "cred:ssh-key"
    phase = "credentials"
    label = "Set up SSH key"

    def __init__(self, email: str, generate: bool) -> None:
        self.email = email
        self.generate = generate
        self.detail = f"ed25519 key for {email}" if generate else "look for an existing key"

    def run(self, ctx: StepContext) -> Optional[str]:
        mgr = _manager(ctx)
        existing = mgr.find_ssh_key()
        if existing is not None:
            return f"existing key {tilde(existing, ctx.paths.home)}"
        if not self.generate:
            return "no key found and generation not requested"

        key = mgr.generate_ssh_key(self.email)
        mgr.configure_ssh_host(key)
        if not ctx.dry_run:
            mgr.register_with_agent(key)
        return None


class GithubCliStep:
    step_id = "cred:github-cli"
    phase = "credentials"
    label = "Connect GitHub CLI"
    detail = "gh ssh-key add, gh auth setup-git"

    def run(self, ctx: StepContext) -> Optional[str]:
        mgr = _manager(ctx)
        return mgr.setup_github_cli(mgr.find_ssh_key())


class GpgSigningStep:
    step_id = "cred:gpg-signing"
    phase = "credentials"
    label = "Configure commit signing"

    def __init__(self, email: str) -> None:
        self.email = email
        self.detail = f"GPG key for {email}"

    def run(self, ctx: StepContext) -> Optional[str]:
        if _manager(ctx).configure_signing(self.email) is None:
            return "no GPG key"
        return None
