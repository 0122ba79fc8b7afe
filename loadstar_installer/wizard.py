"""Wizard phase state machine.

Phases move forward through an explicit transition table; each forward
edge may carry a check that raises ValidationError. Setters are local to
the phase that owns the data. Leaving Review is the only transition with a
side effect: it freezes a plan and hands it to the executor.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Set, Tuple, Type

from .catalog import Catalog, CatalogEntry, Category
from .errors import CatalogError, TransitionError, ValidationError
from .executor import Executor, InstallRun
from .lib.env import HostPaths
from .lib.system import Platform
from .plan import InstallPlan, build_plan
from .session import Identity, Multiplexer, Prompt, SessionSnapshot, ShellChoices, ShellName, Terminal

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    BOOT = "boot"
    IDENTITY = "identity"
    SHELL = "shell"
    DEVTOOLS = "devtools"
    APPS = "apps"
    REVIEW = "review"
    INSTALL = "install"
    COMPLETE = "complete"


DEVTOOLS_CATEGORIES: Tuple[Category, ...] = (
    Category.LANGUAGE,
    Category.EDITOR,
    Category.GIT,
    Category.CONTAINER,
    Category.CLOUD,
)
APPS_CATEGORIES: Tuple[Category, ...] = tuple(c for c in Category if c not in DEVTOOLS_CATEGORIES)

BASE_MINUTES = 5

_TRUE_WORDS = frozenset({"true", "yes", "on", "1"})
_FALSE_WORDS = frozenset({"false", "no", "off", "0", ""})


def parse_bool(field_name: str, value: Any) -> bool:
    """Accept real booleans and the usual yes/no spellings from answers files."""

    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    raise ValidationError(field_name, f"expected true or false, got {value!r}")


def _identity_value(key: str, value: Any) -> Any:
    if key == "work":
        return False if value is None else parse_bool(key, value)
    return "" if value is None else str(value)


def _check_identity(w: "Wizard") -> None:
    w.identity.validate()


def _check_shell(w: "Wizard") -> None:
    w.shell.validate()


def _check_install_finished(w: "Wizard") -> None:
    if w.install_run is None or not w.install_run.finished:
        raise TransitionError("Installation is still running; cancel it or wait for it to finish")


@dataclass(frozen=True)
class Transition:
    next: Optional[Phase]
    prev: Optional[Phase]
    check: Optional[Callable[["Wizard"], None]] = None


TRANSITIONS: Dict[Phase, Transition] = {
    Phase.BOOT: Transition(next=Phase.IDENTITY, prev=None),
    Phase.IDENTITY: Transition(next=Phase.SHELL, prev=Phase.BOOT, check=_check_identity),
    Phase.SHELL: Transition(next=Phase.DEVTOOLS, prev=Phase.IDENTITY, check=_check_shell),
    Phase.DEVTOOLS: Transition(next=Phase.APPS, prev=Phase.SHELL),
    Phase.APPS: Transition(next=Phase.REVIEW, prev=Phase.DEVTOOLS),
    Phase.REVIEW: Transition(next=Phase.INSTALL, prev=Phase.APPS),
    # Once running the plan is frozen: no way back, only cancellation.
    Phase.INSTALL: Transition(next=Phase.COMPLETE, prev=None, check=_check_install_finished),
    Phase.COMPLETE: Transition(next=None, prev=Phase.REVIEW),
}

_SHELL_FIELDS: Dict[str, Type[Enum]] = {
    "shell": ShellName,
    "prompt": Prompt,
    "terminal": Terminal,
    "multiplexer": Multiplexer,
}


class Wizard:
    """The single, mutable operator session."""

    def __init__(
        self,
        catalog: Catalog,
        platform: Platform,
        paths: HostPaths,
        executor: Optional[Executor] = None,
    ) -> None:
        self.catalog = catalog
        self.platform = platform
        self.paths = paths
        self.executor = executor

        self.phase = Phase.BOOT
        self.identity = Identity()
        self.shell = ShellChoices()
        self.generate_ssh_key = True
        self.setup_git_signing = False
        self._selection: Set[str] = {e.id for e in catalog.essential()}

        self.plan: Optional[InstallPlan] = None
        self.install_run: Optional[InstallRun] = None

    # -- navigation ------------------------------------------------------------

    def advance(self) -> Phase:
        t = TRANSITIONS[self.phase]
        if t.next is None:
            raise TransitionError(f"No phase after {self.phase.value}")
        if t.check is not None:
            t.check(self)
        if t.next is Phase.INSTALL:
            self._begin_install()
        logger.info("Wizard %s -> %s", self.phase.value, t.next.value)
        self.phase = t.next
        return self.phase

    def back(self) -> Phase:
        t = TRANSITIONS[self.phase]
        if t.prev is None:
            raise TransitionError(f"Cannot go back from {self.phase.value}")
        logger.info("Wizard %s <- %s", t.prev.value, self.phase.value)
        self.phase = t.prev
        return self.phase

    def _begin_install(self) -> None:
        if self.executor is None:
            raise TransitionError("No executor attached; cannot start installation")
        plan = build_plan(self.snapshot(), self.catalog, self.paths)
        self.install_run = self.executor.start(plan)
        self.plan = plan

    def cancel_install(self, *, terminate: bool = False) -> None:
        if self.phase is not Phase.INSTALL or self.install_run is None:
            raise TransitionError("No installation is running")
        self.install_run.cancel(terminate=terminate)

    def _require_phase(self, *phases: Phase) -> None:
        if self.phase not in phases:
            allowed = ", ".join(p.value for p in phases)
            raise TransitionError(f"Not editable in phase {self.phase.value} (only in {allowed})")

    # -- identity --------------------------------------------------------------

    def update_identity(self, **changes: Any) -> Identity:
        self._require_phase(Phase.IDENTITY)
        unknown = set(changes) - {f.name for f in dataclasses.fields(Identity)}
        if unknown:
            raise ValidationError(sorted(unknown)[0], "unknown identity field")
        cleaned = {k: _identity_value(k, v) for k, v in changes.items()}
        self.identity = dataclasses.replace(self.identity, **cleaned)
        return self.identity

    def set_credentials(self, *, generate_ssh_key: Optional[bool] = None, setup_git_signing: Optional[bool] = None) -> None:
        self._require_phase(Phase.IDENTITY)
        if generate_ssh_key is not None:
            self.generate_ssh_key = parse_bool("generate_ssh_key", generate_ssh_key)
        if setup_git_signing is not None:
            self.setup_git_signing = parse_bool("setup_git_signing", setup_git_signing)

    # -- shell -----------------------------------------------------------------

    def update_shell(self, **changes: Any) -> ShellChoices:
        self._require_phase(Phase.SHELL)
        parsed = {}
        for key, value in changes.items():
            enum_cls = _SHELL_FIELDS.get(key)
            if enum_cls is None:
                raise ValidationError(key, "unknown shell option")
            try:
                parsed[key] = enum_cls(value)
            except ValueError:
                choices = ", ".join(m.value for m in enum_cls)
                raise ValidationError(key, f"{value!r} is not one of: {choices}") from None
        self.shell = dataclasses.replace(self.shell, **parsed)
        return self.shell

    # -- selection -------------------------------------------------------------

    @property
    def selection(self) -> FrozenSet[str]:
        return frozenset(self._selection)

    def phase_categories(self) -> Tuple[Category, ...]:
        if self.phase is Phase.DEVTOOLS:
            return DEVTOOLS_CATEGORIES
        if self.phase is Phase.APPS:
            return APPS_CATEGORIES
        return ()

    def is_selected(self, entry_id: str) -> bool:
        return entry_id in self._selection

    def select(self, entry_id: str) -> None:
        self._require_phase(Phase.DEVTOOLS, Phase.APPS)
        self._selection.add(self.catalog.entry(entry_id).id)

    def deselect(self, entry_id: str) -> None:
        self._require_phase(Phase.DEVTOOLS, Phase.APPS)
        self._selection.discard(self.catalog.entry(entry_id).id)

    def toggle(self, entry_id: str) -> bool:
        """Flip one entry; returns whether it is now selected."""

        if self.is_selected(entry_id):
            self.deselect(entry_id)
            return False
        self.select(entry_id)
        return True

    def _category_ids(self, category: Category) -> List[str]:
        self._require_phase(Phase.DEVTOOLS, Phase.APPS)
        if category not in self.phase_categories():
            raise ValidationError("category", f"{category.value} is not shown in phase {self.phase.value}")
        return [e.id for e in self.catalog.by_category(category)]

    def select_all(self, category: Category) -> None:
        self._selection.update(self._category_ids(Category(category)))

    def deselect_all(self, category: Category) -> None:
        self._selection.difference_update(self._category_ids(Category(category)))

    def apply_preset(self, name: str) -> None:
        """Replace the selection with a preset's ids."""

        self._require_phase(Phase.APPS)
        try:
            ids = self.catalog.preset(name)
        except CatalogError:
            choices = ", ".join(self.catalog.preset_names())
            raise ValidationError("preset", f"unknown preset {name!r} (choose from: {choices})") from None
        self._selection = set(ids)
        logger.info("Preset %s applied: %d entries", name, len(ids))

    def selected_by_category(self) -> Dict[Category, List[CatalogEntry]]:
        grouped: Dict[Category, List[CatalogEntry]] = {}
        for entry in self.catalog.entries():
            if entry.id in self._selection:
                grouped.setdefault(entry.category, []).append(entry)
        return grouped

    def estimated_minutes(self) -> int:
        return BASE_MINUTES + len(self._selection)

    # -- snapshot --------------------------------------------------------------

    def snapshot(self) -> SessionSnapshot:
        implied = frozenset(i for i in self.shell.implied_entries() if i in self.catalog)
        return SessionSnapshot(
            identity=self.identity,
            shell=self.shell,
            selection=frozenset(self._selection),
            platform=self.platform,
            generate_ssh_key=self.generate_ssh_key,
            setup_git_signing=self.setup_git_signing,
            implied=implied,
        )


def apply_answers(wizard: Wizard, answers: Mapping[str, Any]) -> Wizard:
    """Walk a fresh wizard from Boot to Review using an answers document.

    Raises ValidationError (or UnknownEntryError) on the first bad answer.
    """

    if wizard.phase is not Phase.BOOT:
        raise TransitionError("Answers can only be applied to a wizard in the boot phase")

    wizard.advance()
    identity = answers.get("identity") or {}
    if not isinstance(identity, Mapping):
        raise ValidationError("identity", "must be a mapping")
    wizard.update_identity(**dict(identity))
    wizard.set_credentials(
        generate_ssh_key=answers.get("generate_ssh_key"),
        setup_git_signing=answers.get("setup_git_signing"),
    )
    wizard.advance()

    shell = answers.get("shell") or {}
    if not isinstance(shell, Mapping):
        raise ValidationError("shell", "must be a mapping")
    wizard.update_shell(**dict(shell))
    wizard.advance()

    wizard.advance()  # DevTools -> Apps; selection edits happen in Apps
    if answers.get("preset"):
        wizard.apply_preset(str(answers["preset"]))
    for key, op in (("add", wizard.select), ("remove", wizard.deselect)):
        ids = answers.get(key) or []
        if not isinstance(ids, list):
            raise ValidationError(key, "must be a list of catalog ids")
        for entry_id in ids:
            op(str(entry_id))
    wizard.advance()
    return wizard


def answers_from_wizard(wizard: Wizard) -> Dict[str, Any]:
    """The answers document that reproduces the wizard's current session."""

    essentials = {e.id for e in wizard.catalog.essential()}
    selection = wizard.selection
    return {
        "identity": dataclasses.asdict(wizard.identity),
        "shell": {k: getattr(wizard.shell, k).value for k in _SHELL_FIELDS},
        "generate_ssh_key": wizard.generate_ssh_key,
        "setup_git_signing": wizard.setup_git_signing,
        "preset": None,
        "add": wizard.catalog.sort_ids(selection - essentials),
        "remove": wizard.catalog.sort_ids(essentials - selection),
    }
