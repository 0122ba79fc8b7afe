from __future__ import annotations

import logging
from typing import Optional

from ..configgen import ConfigArtifact, WriteOutcome, write_artifact
from ..pipeline import StepContext

logger = logging.getLogger(__name__)

UP_TO_DATE = "up to date"


class ArtifactStep:
    phase = "configs"

    def __init__(self, artifact: ConfigArtifact) -> None:
        self.artifact = artifact
        self.step_id = f"config:{artifact.name}"
        self.label = f"Write {artifact.label or artifact.path}"
        self.detail = str(artifact.path)

    def run(self, ctx: StepContext) -> Optional[str]:
        outcome = write_artifact(self.artifact, dry_run=ctx.dry_run)
        if outcome is WriteOutcome.UNCHANGED:
            return UP_TO_DATE
        if outcome is WriteOutcome.UPDATED:
            ctx.info(f"Previous {self.artifact.label} saved as {self.artifact.path.name}{self.artifact.backup_suffix}")
        return None
