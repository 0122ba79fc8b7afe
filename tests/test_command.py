"""
Tests for the command runner host boundary.
"""

import os

import pytest

from loadstar_installer.errors import ExternalCommandError
from loadstar_installer.lib.command import CommandRunner, fmt_argv, run_cmd, stream_cmd


class TestRunCmd:
    def test_fmt_argv_quotes(self):
        assert fmt_argv(["git", "commit", "-m", "two words"]) == "git commit -m 'two words'"

    def test_dry_run_does_not_execute(self, tmp_path):
        marker = tmp_path / "ran"
        res = run_cmd(["touch", str(marker)], dry_run=True)
        assert res.returncode == 0
        assert not marker.exists()

    def test_missing_executable(self):
        res = run_cmd(["loadstar-definitely-missing"], check=False)
        assert res.returncode == 127
        with pytest.raises(ExternalCommandError) as exc:
            run_cmd(["loadstar-definitely-missing"])
        assert exc.value.returncode == 127

    def test_nonzero_exit_carries_stderr(self):
        with pytest.raises(ExternalCommandError) as exc:
            run_cmd(["sh", "-c", "echo nope >&2; exit 3"])
        assert exc.value.returncode == 3
        assert str(exc.value) == "exited with code 3: nope"


class TestStream:
    def test_merges_output_lines(self):
        lines = []
        rc = stream_cmd(["sh", "-c", "echo one; echo two >&2; echo; exit 4"], on_line=lines.append)
        assert rc == 4
        assert lines == ["one", "two"]

    def test_dry_run_streams_nothing(self):
        lines = []
        assert stream_cmd(["sh", "-c", "echo one"], on_line=lines.append, dry_run=True) == 0
        assert lines == []


class TestCommandRunner:
    def test_extra_path_first(self, tmp_path):
        runner = CommandRunner(extra_path=[str(tmp_path)])
        assert runner.env()["PATH"].split(os.pathsep)[0] == str(tmp_path)

    def test_which_sees_extra_path(self, tmp_path):
        tool = tmp_path / "loadstar-fake-tool"
        tool.write_text("#!/bin/sh\n")
        tool.chmod(0o755)
        assert CommandRunner(extra_path=[str(tmp_path)]).which("loadstar-fake-tool") == str(tool)

    def test_query_runs_in_dry_run(self):
        runner = CommandRunner(dry_run=True)
        assert runner.query(["sh", "-c", "echo hi"]).stdout == "hi\n"
        assert runner.run(["sh", "-c", "echo hi"]).stdout == ""

    def test_terminate_without_process(self):
        assert CommandRunner().terminate() is False
