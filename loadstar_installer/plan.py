from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional, Set, Tuple

from .catalog import Catalog
from .configgen import GIT_ARTIFACTS, generate_artifacts
from .errors import UnsupportedPlatformError
from .lib.env import HostPaths
from .lib.system import Platform
from .pipeline import Step
from .session import SessionSnapshot
from .steps import (
    ArtifactStep,
    BootstrapStep,
    GithubCliStep,
    GitIdentityStep,
    GpgSigningStep,
    PackageStep,
    SshKeyStep,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstallPlan:
    """Ordered, frozen step sequence. Rerunning means building a new plan."""

    steps: Tuple[Step, ...]
    platform: Platform
    snapshot: Optional[SessionSnapshot] = None

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self) -> Iterator[Step]:
        return iter(self.steps)

    def step_ids(self) -> List[str]:
        return [s.step_id for s in self.steps]


def package_steps(entry_ids: List[str], catalog: Catalog, platform: Platform) -> List[Step]:
    """Package steps in the given order, each preceded where needed by a one-time bootstrap."""

    steps: List[Step] = []
    bootstrapped: Set[str] = set()
    for entry_id in entry_ids:
        entry = catalog.entry(entry_id)
        try:
            method = catalog.install_method(entry_id, platform)
        except UnsupportedPlatformError:
            logger.warning("No install method for %s on %s", entry_id, platform.os)
            method = None

        manager = method.requires if method is not None else None
        if manager and not platform.has_manager(manager) and manager not in bootstrapped:
            steps.append(BootstrapStep(manager))
            bootstrapped.add(manager)
        steps.append(PackageStep(entry, method))
    return steps


def build_plan(snapshot: SessionSnapshot, catalog: Catalog, paths: HostPaths) -> InstallPlan:
    """Freeze a snapshot into a plan.

    Order: packages (category, then catalog order, dependencies pulled in
    ahead of their dependents), config artifacts, credential actions.
    """

    platform = snapshot.platform
    selected = [i for i in snapshot.effective_selection if i in catalog]
    entry_ids = catalog.with_dependencies(selected)
    pulled_in = [i for i in entry_ids if i not in selected]
    if pulled_in:
        logger.info("Dependencies added to the plan: %s", ", ".join(pulled_in))
    steps = package_steps(entry_ids, catalog, platform)

    artifacts = generate_artifacts(snapshot, paths)
    steps += [ArtifactStep(a) for a in artifacts if a.name not in GIT_ARTIFACTS]

    email = snapshot.identity.email.strip()
    steps.append(GitIdentityStep([a for a in artifacts if a.name in GIT_ARTIFACTS]))
    steps.append(SshKeyStep(email, snapshot.generate_ssh_key))
    if "gh" in entry_ids:
        steps.append(GithubCliStep())
    if snapshot.setup_git_signing:
        steps.append(GpgSigningStep(email))

    plan = InstallPlan(steps=tuple(steps), platform=platform, snapshot=snapshot)
    logger.info("Plan frozen: %d steps (%d packages)", len(plan), len(entry_ids))
    return plan
