"""Git identity, SSH key and GPG signing setup.

Nothing here is destructive: an existing SSH key is never replaced, and a
missing GPG key only produces instructions.
"""

from __future__ import annotations

import logging
import re
import socket
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from .configgen import ConfigArtifact, WriteOutcome, tilde, write_artifact
from .errors import FilesystemError
from .events import Severity
from .lib.command import CommandRunner
from .lib.env import HostPaths
from .lib.files import read_text_or_none, set_mode
from .lib.system import Platform

logger = logging.getLogger(__name__)

# Looked up in this order.
SSH_KEY_NAMES = ("id_ed25519", "id_rsa")
SSH_HOST = "github.com"

BLOCK_BEGIN = f"# >>> loadstar {SSH_HOST} >>>"
BLOCK_END = f"# <<< loadstar {SSH_HOST} <<<"

_GPG_SEC_RE = re.compile(r"^sec\s+[^/\s]+/([0-9A-Fa-f]{8,40})\b", re.MULTILINE)


def parse_gpg_key_id(output: str) -> Optional[str]:
    """Key id from `gpg --list-secret-keys --keyid-format=long` output.

    sec   ed25519/ABCDEF1234567890 2024-01-01 [SC]  ->  ABCDEF1234567890
    """

    m = _GPG_SEC_RE.search(output)
    return m.group(1) if m else None


def render_ssh_host_block(identity_file: str, *, use_keychain: bool) -> str:
    lines = [
        BLOCK_BEGIN,
        f"Host {SSH_HOST}",
        f"  HostName {SSH_HOST}",
        "  User git",
        "  AddKeysToAgent yes",
    ]
    if use_keychain:
        lines.append("  UseKeychain yes")
    lines += [f"  IdentityFile {identity_file}", BLOCK_END]
    return "\n".join(lines) + "\n"


def merge_ssh_config(existing: Optional[str], block: str) -> str:
    """Replace the managed host block in an ssh config, or append it."""

    if not existing:
        return block
    start = existing.find(BLOCK_BEGIN)
    end = existing.find(BLOCK_END, start + 1) if start >= 0 else -1
    if start >= 0 and end >= 0:
        end += len(BLOCK_END)
        if existing[end:end + 1] == "\n":
            end += 1
        return existing[:start] + block + existing[end:]
    sep = "" if existing.endswith("\n") else "\n"
    return existing + sep + "\n" + block


class CredentialManager:
    def __init__(
        self,
        runner: CommandRunner,
        paths: HostPaths,
        platform: Platform,
        log: Optional[Callable[[str, Severity], None]] = None,
    ) -> None:
        self.runner = runner
        self.paths = paths
        self.platform = platform
        self._log = log

    def _emit(self, text: str, severity: Severity = Severity.INFO) -> None:
        logger.log(severity.level, "%s", text)
        if self._log is not None:
            self._log(text, severity)

    # -- git -----------------------------------------------------------------

    def configure_git_identity(self, artifacts: Sequence[ConfigArtifact]) -> List[Tuple[ConfigArtifact, WriteOutcome]]:
        results = []
        for artifact in artifacts:
            outcome = write_artifact(artifact, dry_run=self.runner.dry_run)
            self._emit(f"{artifact.label or artifact.path}: {outcome.value}")
            results.append((artifact, outcome))
        return results

    # -- ssh -----------------------------------------------------------------

    def find_ssh_key(self) -> Optional[Path]:
        for name in SSH_KEY_NAMES:
            key = self.paths.ssh_dir / name
            if key.exists():
                return key
        return None

    def generate_ssh_key(self, email: str) -> Path:
        ssh_dir = self.paths.ssh_dir
        key = ssh_dir / SSH_KEY_NAMES[0]
        if not self.runner.dry_run:
            try:
                ssh_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
            except OSError as e:
                raise FilesystemError(str(ssh_dir), f"cannot create: {e}") from e

        self.runner.run(["ssh-keygen", "-t", "ed25519", "-C", email, "-f", str(key), "-N", ""])
        if self.runner.dry_run:
            return key

        if not key.exists():
            raise FilesystemError(str(key), "ssh-keygen reported success but no key was written")
        set_mode(key, 0o600)
        set_mode(ssh_dir, 0o700)
        self._emit(f"Generated SSH key {tilde(key, self.paths.home)}")
        return key

    def configure_ssh_host(self, key: Path) -> WriteOutcome:
        config = self.paths.ssh_dir / "config"
        block = render_ssh_host_block(tilde(key, self.paths.home), use_keychain=self.platform.has_credential_store)
        merged = merge_ssh_config(read_text_or_none(config), block)
        artifact = ConfigArtifact(name="ssh-config", path=config, content=merged, label=tilde(config, self.paths.home), mode=0o600)
        outcome = write_artifact(artifact, dry_run=self.runner.dry_run)
        self._emit(f"{artifact.label}: {outcome.value}")
        return outcome

    def register_with_agent(self, key: Path) -> bool:
        """Add the key to the agent (macOS: also the Keychain). Failure is only a warning."""

        if self.platform.has_credential_store:
            argv = ["ssh-add", "--apple-use-keychain", str(key)]
        else:
            argv = ["ssh-add", str(key)]
        res = self.runner.run(argv, check=False)
        if res.returncode != 0:
            self._emit(
                f"ssh-add failed ({res.returncode}); start an agent with `eval \"$(ssh-agent -s)\"` and run `ssh-add {key}`",
                Severity.WARNING,
            )
            return False
        return True

    # -- github cli ------------------------------------------------------------

    def setup_github_cli(self, key: Optional[Path]) -> Optional[str]:
        """Register the public key with GitHub via gh. Returns a skip reason or None."""

        if not self.runner.probe(["gh", "auth", "status"]):
            self._emit("GitHub CLI is not authenticated; run `gh auth login`, then re-run loadstar", Severity.WARNING)
            return "gh not authenticated"

        if key is not None:
            pub = key.with_name(key.name + ".pub")
            material = (read_text_or_none(pub) or "").split()
            listed = self.runner.query(["gh", "ssh-key", "list"]).stdout
            if len(material) >= 2 and material[1] in listed:
                self._emit("SSH key already registered with GitHub")
            else:
                self.runner.run(["gh", "ssh-key", "add", str(pub), "--title", f"loadstar@{socket.gethostname()}"])
                self._emit("Uploaded SSH key to GitHub")
        self.runner.run(["gh", "auth", "setup-git"])
        return None

    # -- gpg -----------------------------------------------------------------

    def find_gpg_key(self, email: str) -> Optional[str]:
        res = self.runner.query(["gpg", "--list-secret-keys", "--keyid-format=long", email])
        if res.returncode != 0:
            return None
        return parse_gpg_key_id(res.stdout)

    def configure_signing(self, email: str) -> Optional[str]:
        key_id = self.find_gpg_key(email)
        if key_id is None:
            self._emit(
                f"No GPG secret key for {email}. Create one with `gpg --full-generate-key`, "
                "then re-run loadstar to enable commit signing."
            )
            return None

        local = str(self.paths.git_local_config)
        for key, value in (("user.signingkey", key_id), ("commit.gpgsign", "true"), ("tag.gpgsign", "true")):
            self.runner.run(["git", "config", "--file", local, key, value])
        self._emit(f"Commit signing enabled with GPG key {key_id}")
        return key_id
