from __future__ import annotations

import argparse
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import yaml

from .catalog import Catalog, default_catalog, load_catalog
from .errors import CatalogError, TransitionError, UnsupportedPlatformError, ValidationError
from .events import InstallEvent
from .executor import Executor
from .lib.command import CommandRunner
from .lib.env import HostPaths
from .lib.system import Platform, detect_platform
from .logging_utils import configure_logging
from .state_store import ensure_defaults, load_answers, load_state, record_run, save_state
from .wizard import Wizard, answers_from_wizard, apply_answers

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CANNOT_START = 2
EXIT_INVALID_ANSWERS = 3


def catalog_listing(catalog: Catalog, platform: Platform) -> List[str]:
    lines: List[str] = []
    for category in catalog.categories():
        lines.append(f"{category.display_name}:")
        for entry in catalog.by_category(category):
            try:
                how = catalog.install_method(entry.id, platform).describe()
            except UnsupportedPlatformError:
                how = f"unsupported on {platform.os}"
            mark = "*" if entry.essential else " "
            lines.append(f"  {mark} {entry.id:<16} {entry.description}  [{how}]")
    lines.append("")
    lines.append("presets: " + ", ".join(catalog.preset_names()) + "   (* = selected by default)")
    return lines


def read_state(state_path: str) -> Dict[str, Any]:
    """Installer state, or a fresh one when the file is unreadable or damaged."""

    try:
        state = load_state(state_path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.warning("Ignoring unreadable state file %s: %s", state_path, e)
        state = {}
    return ensure_defaults(state)


def run(
    *,
    answers_path: Optional[str] = None,
    state_path: Optional[str] = None,
    log_path: Optional[str] = None,
    dry_run: bool = False,
    verbose: bool = False,
    write_answers: Optional[str] = None,
    catalog_path: Optional[str] = None,
    on_event: Optional[Callable[[InstallEvent], None]] = None,
    paths: Optional[HostPaths] = None,
    platform: Optional[Platform] = None,
    catalog: Optional[Catalog] = None,
    runner: Optional[CommandRunner] = None,
    tick: float = 0.1,
) -> int:
    """Drive the wizard from an answers document and run the install.

    Returns the process exit code: 0 whenever the run reaches Complete, even
    with failed steps.
    """

    paths = paths or HostPaths.detect()
    state_path = state_path or str(paths.state_file)
    actual_log_path = configure_logging(
        log_path=log_path or str(paths.log_file),
        level=logging.DEBUG if verbose else logging.INFO,
        also_console=verbose,
    )

    try:
        platform = platform or detect_platform()
        if catalog is None:
            catalog = load_catalog(catalog_path) if catalog_path else default_catalog()
    except (UnsupportedPlatformError, CatalogError) as e:
        logger.error("Cannot start: %s", e)
        return EXIT_CANNOT_START

    state = read_state(state_path)
    runner = runner or CommandRunner(dry_run=dry_run, extra_path=paths.tool_bin_dirs(platform.brew_prefix))
    wizard = Wizard(catalog, platform, paths, Executor(runner, paths))

    try:
        answers: Dict[str, Any] = load_answers(answers_path) if answers_path else dict(state["last_answers"])
        apply_answers(wizard, answers)
    except (ValidationError, KeyError, TransitionError) as e:
        logger.error("Invalid answers: %s", e)
        return EXIT_INVALID_ANSWERS

    answers = answers_from_wizard(wizard)
    if write_answers:
        save_state(write_answers, answers)
        logger.info("Answers written to %s", write_answers)
        return EXIT_OK

    wizard.advance()  # Review -> Install: freezes the plan and starts the worker
    install_run = wizard.install_run
    assert install_run is not None

    def drain() -> None:
        for event in install_run.poll_events():
            if on_event is not None:
                on_event(event)

    try:
        while True:
            alive = install_run.is_alive()
            drain()
            if not alive:
                break
            time.sleep(tick)
    except KeyboardInterrupt:
        logger.warning("Interrupted; cancelling install")
        wizard.cancel_install(terminate=True)
        install_run.join()
        drain()

    wizard.advance()  # Install -> Complete
    assert install_run.summary is not None
    record_run(state, install_run.summary, answers=answers, dry_run=dry_run, log_path=actual_log_path)
    save_state(state_path, state)
    return EXIT_OK


def main(argv: Optional[list[str]] = None, on_event: Optional[Callable[[InstallEvent], None]] = None) -> int:
    p = argparse.ArgumentParser(prog="loadstar", description="Provision a development machine.")
    p.add_argument("--answers", default=None, help="Answers file (json|yaml); defaults to the last run's answers")
    p.add_argument("--state", default=None, help="Path to installer state (json|yaml)")
    p.add_argument("--log", default=None, help="Path to installer log")
    p.add_argument("--catalog", default=None, help="Alternative catalog manifest (yaml)")
    p.add_argument("--dry-run", action="store_true", help="Log commands and artifacts without changing anything")
    p.add_argument("--list", action="store_true", help="List the catalog for this platform and exit")
    p.add_argument("--write-answers", default=None, metavar="PATH", help="Write the resolved answers and exit")
    p.add_argument("--verbose", action="store_true", help="Debug logging, mirrored to the console")

    args = p.parse_args(argv)

    if args.list:
        try:
            platform = detect_platform()
            catalog = load_catalog(args.catalog) if args.catalog else default_catalog()
        except (UnsupportedPlatformError, CatalogError) as e:
            print(f"loadstar: {e}")
            return EXIT_CANNOT_START
        print("\n".join(catalog_listing(catalog, platform)))
        return EXIT_OK

    return run(
        answers_path=args.answers,
        state_path=args.state,
        log_path=args.log,
        dry_run=args.dry_run,
        verbose=args.verbose,
        write_answers=args.write_answers,
        catalog_path=args.catalog,
        on_event=on_event,
    )
