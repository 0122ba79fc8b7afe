"""
Tests for the wizard phase machine, phase-local setters and answers handling.
"""

import pytest

from conftest import entry, make_catalog
from loadstar_installer.catalog import Category
from loadstar_installer.errors import TransitionError, UnknownEntryError, ValidationError
from loadstar_installer.executor import Executor
from loadstar_installer.session import Prompt, ShellName
from loadstar_installer.wizard import Phase, Wizard, answers_from_wizard, apply_answers


@pytest.fixture
def catalog():
    return make_catalog(
        entry("zsh", "shell", macos=[{"brew": "zsh"}], tags=["essential"]),
        entry("fish", "shell", macos=[{"brew": "fish"}]),
        entry("starship", "shell", macos=[{"brew": "starship"}], tags=["essential"]),
        entry("tmux", "terminal", macos=[{"brew": "tmux"}]),
        entry("neovim", "editor", command="nvim", macos=[{"brew": "neovim"}]),
        entry("helix", "editor", command="hx", macos=[{"brew": "helix"}]),
        entry("git", "git", macos=[{"brew": "git"}], tags=["essential"]),
        entry("delta", "git", macos=[{"brew": "git-delta"}]),
        entry("fd", "search", macos=[{"brew": "fd"}]),
        entry("ripgrep", "search", command="rg", macos=[{"brew": "ripgrep"}]),
        presets={"minimal": ["git", "fd"], "full": "*"},
    )


@pytest.fixture
def wizard(catalog, macos, paths):
    return Wizard(catalog, macos, paths)


def walk_to(w, phase):
    while w.phase is not phase:
        if w.phase is Phase.IDENTITY:
            w.update_identity(name="Jane Doe", email="jane@x.com")
        w.advance()
    return w


class TestTransitions:
    def test_starts_at_boot_with_defaults(self, wizard):
        assert wizard.phase is Phase.BOOT
        assert wizard.selection == {"zsh", "starship", "git"}
        assert wizard.generate_ssh_key is True
        assert wizard.setup_git_signing is False
        assert wizard.shell.shell is ShellName.ZSH

    def test_identity_requires_name(self, wizard):
        walk_to(wizard, Phase.IDENTITY)
        wizard.update_identity(email="jane@x.com")
        with pytest.raises(ValidationError) as exc:
            wizard.advance()
        assert exc.value.field == "name"
        assert wizard.phase is Phase.IDENTITY

    @pytest.mark.parametrize("email", ["", "jane", "jane@", "jane@x", "ja ne@x.com"])
    def test_identity_validates_email(self, wizard, email):
        walk_to(wizard, Phase.IDENTITY)
        wizard.update_identity(name="Jane", email=email)
        with pytest.raises(ValidationError) as exc:
            wizard.advance()
        assert exc.value.field == "email"

    def test_work_setup_needs_work_email(self, wizard):
        walk_to(wizard, Phase.IDENTITY)
        wizard.update_identity(name="Jane", email="jane@x.com", work=True)
        with pytest.raises(ValidationError) as exc:
            wizard.advance()
        assert exc.value.field == "work_email"
        wizard.update_identity(work_email="jane@corp.com")
        assert wizard.advance() is Phase.SHELL

    def test_github_username_checked(self, wizard):
        walk_to(wizard, Phase.IDENTITY)
        wizard.update_identity(name="Jane", email="jane@x.com", github_username="not valid!")
        with pytest.raises(ValidationError):
            wizard.advance()

    @pytest.mark.parametrize(
        "field, value",
        [("name", "Jane\n[alias]\n\tx = !rm"), ("name", "Jane\tDoe"), ("email", "jane@x.com\x00"), ("work_dir", "~/work\n")],
    )
    def test_identity_rejects_control_characters(self, wizard, field, value):
        walk_to(wizard, Phase.IDENTITY)
        wizard.update_identity(**{"name": "Jane", "email": "jane@x.com", field: value})
        with pytest.raises(ValidationError) as exc:
            wizard.advance()
        assert exc.value.field == field

    def test_zsh_theme_needs_zsh(self, wizard):
        walk_to(wizard, Phase.SHELL)
        wizard.update_shell(shell="fish", prompt="powerlevel10k")
        with pytest.raises(ValidationError) as exc:
            wizard.advance()
        assert exc.value.field == "prompt"

    def test_back_navigation(self, wizard):
        walk_to(wizard, Phase.REVIEW)
        assert wizard.back() is Phase.APPS
        assert wizard.back() is Phase.DEVTOOLS
        assert wizard.back() is Phase.SHELL

    def test_no_back_from_boot(self, wizard):
        with pytest.raises(TransitionError):
            wizard.back()

    def test_install_needs_executor(self, wizard):
        walk_to(wizard, Phase.REVIEW)
        with pytest.raises(TransitionError):
            wizard.advance()
        assert wizard.phase is Phase.REVIEW


class TestSetters:
    def test_identity_only_in_identity_phase(self, wizard):
        with pytest.raises(TransitionError):
            wizard.update_identity(name="x")

    def test_unknown_identity_field(self, wizard):
        walk_to(wizard, Phase.IDENTITY)
        with pytest.raises(ValidationError):
            wizard.update_identity(nickname="jd")

    def test_update_shell_parses_values(self, wizard):
        walk_to(wizard, Phase.SHELL)
        choices = wizard.update_shell(shell="fish", prompt="minimal", multiplexer="none")
        assert choices.shell is ShellName.FISH
        assert choices.prompt is Prompt.MINIMAL

    def test_update_shell_rejects_bad_value(self, wizard):
        walk_to(wizard, Phase.SHELL)
        with pytest.raises(ValidationError) as exc:
            wizard.update_shell(shell="tcsh")
        assert exc.value.field == "shell"

    def test_toggle(self, wizard):
        walk_to(wizard, Phase.DEVTOOLS)
        assert wizard.toggle("neovim") is True
        assert wizard.toggle("neovim") is False
        assert not wizard.is_selected("neovim")

    def test_toggle_unknown(self, wizard):
        walk_to(wizard, Phase.DEVTOOLS)
        with pytest.raises(UnknownEntryError):
            wizard.toggle("emacs")

    def test_select_outside_selection_phases(self, wizard):
        walk_to(wizard, Phase.SHELL)
        with pytest.raises(TransitionError):
            wizard.select("fd")

    def test_select_all_category(self, wizard):
        walk_to(wizard, Phase.DEVTOOLS)
        wizard.select_all(Category.EDITOR)
        assert {"neovim", "helix"} <= wizard.selection
        wizard.deselect_all(Category.EDITOR)
        assert not {"neovim", "helix"} & wizard.selection

    def test_select_all_wrong_phase_category(self, wizard):
        walk_to(wizard, Phase.DEVTOOLS)
        with pytest.raises(ValidationError):
            wizard.select_all(Category.SEARCH)

    def test_preset_replaces_then_toggles_add(self, wizard):
        walk_to(wizard, Phase.APPS)
        wizard.apply_preset("minimal")
        assert wizard.selection == {"git", "fd"}
        wizard.toggle("ripgrep")
        assert wizard.selection == {"git", "fd", "ripgrep"}

    def test_preset_only_in_apps(self, wizard):
        walk_to(wizard, Phase.DEVTOOLS)
        with pytest.raises(TransitionError):
            wizard.apply_preset("minimal")

    def test_unknown_preset(self, wizard):
        walk_to(wizard, Phase.APPS)
        with pytest.raises(ValidationError) as exc:
            wizard.apply_preset("everything")
        assert exc.value.field == "preset"

    def test_selected_by_category(self, wizard):
        walk_to(wizard, Phase.APPS)
        wizard.apply_preset("minimal")
        grouped = wizard.selected_by_category()
        assert [e.id for e in grouped[Category.GIT]] == ["git"]
        assert [e.id for e in grouped[Category.SEARCH]] == ["fd"]
        assert Category.EDITOR not in grouped

    def test_estimated_minutes(self, wizard):
        assert wizard.estimated_minutes() == 5 + 3


class TestSnapshot:
    def test_implied_entries_from_shell(self, wizard):
        walk_to(wizard, Phase.SHELL)
        wizard.update_shell(shell="fish", prompt="starship", multiplexer="tmux", terminal="kitty")
        snap = wizard.snapshot()
        # kitty is not in this catalog, so it is not implied
        assert snap.implied == {"fish", "starship", "tmux"}
        assert "fish" not in snap.selection
        assert snap.has("fish")

    def test_snapshot_is_detached(self, wizard):
        walk_to(wizard, Phase.DEVTOOLS)
        snap = wizard.snapshot()
        wizard.select("helix")
        assert "helix" not in snap.selection


class TestInstallPhase:
    def test_review_freezes_plan_and_starts_worker(self, catalog, macos, paths, runner):
        runner.commands.update({"zsh", "starship", "git"})
        w = Wizard(catalog, macos, paths, Executor(runner, paths))
        walk_to(w, Phase.REVIEW)
        assert w.advance() is Phase.INSTALL
        assert w.plan is not None
        assert w.plan.step_ids()[:3] == ["pkg:zsh", "pkg:starship", "pkg:git"]

        with pytest.raises(TransitionError):
            w.back()

        w.install_run.join(5)
        assert w.advance() is Phase.COMPLETE
        assert w.back() is Phase.REVIEW

    def test_rerun_builds_new_plan(self, catalog, macos, paths, runner):
        w = Wizard(catalog, macos, paths, Executor(runner, paths))
        walk_to(w, Phase.REVIEW)
        w.advance()
        first = w.plan
        w.install_run.join(5)
        w.advance()
        w.back()
        w.back()  # Apps
        w.select("ripgrep")
        w.advance()
        w.advance()
        assert w.plan is not first
        assert "pkg:ripgrep" in w.plan.step_ids()
        assert "pkg:ripgrep" not in first.step_ids()
        w.install_run.join(5)

    def test_cancel_outside_install(self, wizard):
        with pytest.raises(TransitionError):
            wizard.cancel_install()


class TestAnswers:
    def test_apply_answers_reaches_review(self, wizard):
        apply_answers(
            wizard,
            {
                "identity": {"name": "Jane Doe", "email": "jane@x.com", "github_username": None},
                "shell": {"prompt": "pure"},
                "preset": "minimal",
                "add": ["delta"],
                "remove": ["fd"],
                "generate_ssh_key": False,
                "setup_git_signing": True,
            },
        )
        assert wizard.phase is Phase.REVIEW
        assert wizard.selection == {"git", "delta"}
        assert wizard.identity.github_username == ""
        assert wizard.shell.prompt is Prompt.PURE
        assert wizard.generate_ssh_key is False
        assert wizard.setup_git_signing is True

    @pytest.mark.parametrize("value, expected", [(False, False), ("false", False), ("no", False), ("True", True), ("yes", True)])
    def test_apply_answers_parses_booleans(self, wizard, value, expected):
        identity = {"name": "J", "email": "j@x.com", "work": value, "work_email": "j@corp.com"}
        apply_answers(wizard, {"identity": identity, "generate_ssh_key": value})
        assert wizard.identity.work is expected
        assert wizard.generate_ssh_key is expected

    @pytest.mark.parametrize("answers", [
        {"identity": {"name": "J", "email": "j@x.com", "work": "maybe"}},
        {"identity": {"name": "J", "email": "j@x.com"}, "setup_git_signing": 2},
    ])
    def test_apply_answers_rejects_non_booleans(self, wizard, answers):
        with pytest.raises(ValidationError):
            apply_answers(wizard, answers)

    def test_apply_answers_invalid_identity(self, wizard):
        with pytest.raises(ValidationError):
            apply_answers(wizard, {"identity": {"name": "Jane"}})

    def test_apply_answers_unknown_id(self, wizard):
        with pytest.raises(UnknownEntryError):
            apply_answers(wizard, {"identity": {"name": "J", "email": "j@x.com"}, "add": ["emacs"]})

    def test_answers_round_trip(self, catalog, macos, paths, wizard):
        apply_answers(wizard, {"identity": {"name": "J", "email": "j@x.com"}, "add": ["fd"], "remove": ["zsh"]})
        doc = answers_from_wizard(wizard)
        assert doc["add"] == ["fd"]
        assert doc["remove"] == ["zsh"]

        again = apply_answers(Wizard(catalog, macos, paths), doc)
        assert again.selection == wizard.selection
        assert again.identity == wizard.identity
