"""Tests for argument parsing and command dispatch."""

from unittest.mock import patch

import pytest

from ralphctl import __version__
from ralphctl.agent import ClaudeRunner
from ralphctl.cli import main, parse_args, resolve_loop_config
from ralphctl.config import RalphConfig
from ralphctl.loop import LoopResult, Outcome
from ralphctl.signals import Protocol


def make_workspace(path, plan="- [x] one\n- [ ] two\n"):
    (path / "PROMPT.md").write_text("Do the next task.\n")
    (path / "SPEC.md").write_text("# Spec\n")
    (path / "IMPLEMENTATION_PLAN.md").write_text(plan)


def run_main(argv):
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestParseArgs:
    """Tests for parse_args."""

    def test_run_defaults(self):
        args = parse_args(["run"])
        assert args.command == "run"
        assert args.max_iterations is None
        assert args.pause is False
        assert args.model is None
        assert args.agent is None
        assert args.verbose == 0

    def test_reverse_with_options(self):
        args = parse_args(["-vv", "reverse", "Why?", "--max-iterations", "5", "--model", "opus"])
        assert args.question == "Why?"
        assert args.max_iterations == 5
        assert args.model == "opus"
        assert args.verbose == 2

    def test_reverse_question_optional(self):
        assert parse_args(["reverse"]).question is None

    def test_unknown_agent_rejected(self):
        with pytest.raises(SystemExit) as exc_info:
            parse_args(["run", "--agent", "gpt"])
        assert exc_info.value.code == 2

    def test_subcommand_required(self):
        with pytest.raises(SystemExit):
            parse_args([])

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            parse_args(["--version"])
        assert exc_info.value.code == 0
        assert capsys.readouterr().out.strip() == f"ralphctl {__version__}"


class TestResolveLoopConfig:
    """Tests for merging file settings with flags."""

    def test_reverse_defaults(self):
        args = parse_args(["reverse"])
        loop_config = resolve_loop_config(RalphConfig(), args, Protocol.INVESTIGATE)
        assert loop_config.protocol is Protocol.INVESTIGATE
        assert loop_config.max_iterations == 100

    def test_flags_override_file(self):
        config = RalphConfig.model_validate({"model": "sonnet", "run": {"max_iterations": 20}})
        args = parse_args(["run", "--max-iterations", "4", "--pause", "--model", "opus"])

        loop_config = resolve_loop_config(config, args, Protocol.BUILD)

        assert loop_config.max_iterations == 4
        assert loop_config.pause is True
        assert loop_config.model == "opus"

    def test_file_pause_kept_without_flag(self):
        config = RalphConfig.model_validate({"run": {"pause": True}})
        loop_config = resolve_loop_config(config, parse_args(["run"]), Protocol.BUILD)
        assert loop_config.pause is True


class TestStatus:
    """Tests for the status command."""

    def test_progress_bar(self, workspace, capsys):
        make_workspace(workspace)

        assert run_main(["status"]) == 0
        assert capsys.readouterr().out.strip() == "[██████░░░░░░] 50% (1/2 tasks)"

    def test_missing_plan(self, workspace, capsys):
        assert run_main(["status"]) == 1
        assert "error: IMPLEMENTATION_PLAN.md not found" in capsys.readouterr().err


class TestRun:
    """Tests for the run command."""

    def test_missing_files(self, workspace, capsys):
        assert run_main(["run"]) == 1
        assert "error: missing required files: PROMPT.md, SPEC.md, IMPLEMENTATION_PLAN.md" in (
            capsys.readouterr().err
        )

    def test_done(self, workspace, scripted, capsys):
        make_workspace(workspace)
        runner = scripted("[[RALPH:DONE]]\n")

        with patch("ralphctl.cli.get_agent", return_value=runner):
            assert run_main(["run"]) == 0

        captured = capsys.readouterr()
        assert "=== Iteration 1 starting ===" in captured.out
        assert "Outcome:     success" in captured.err
        assert (workspace / "ralph.log").exists()

    def test_blocked(self, workspace, scripted, capsys):
        make_workspace(workspace)
        runner = scripted("[[RALPH:BLOCKED:need a database]]\n")

        with patch("ralphctl.cli.get_agent", return_value=runner):
            assert run_main(["run"]) == 3

        assert "blocked: need a database" in capsys.readouterr().err

    def test_exhausted(self, workspace, scripted):
        make_workspace(workspace)
        runner = scripted("[[RALPH:CONTINUE]]\n")

        with patch("ralphctl.cli.get_agent", return_value=runner):
            assert run_main(["run", "--max-iterations", "2", "--model", "opus"]) == 2

        assert runner.models == ["opus", "opus"]

    def test_agent_not_installed(self, workspace, capsys):
        make_workspace(workspace)

        with patch("ralphctl.cli.get_agent", return_value=ClaudeRunner()), \
             patch("ralphctl.agent.shutil.which", return_value=None):
            assert run_main(["run"]) == 1

        assert "error: claude not found in PATH" in capsys.readouterr().err

    def test_agent_flag_selects_backend(self, workspace):
        make_workspace(workspace)

        with patch("ralphctl.cli.execute_loop", return_value=LoopResult(Outcome.SUCCESS, 1)) as mock_exec:
            assert run_main(["run", "--agent", "codex"]) == 0

        prompt, loop_config, agent, cwd = mock_exec.call_args.args
        assert prompt == "Do the next task.\n"
        assert loop_config.max_iterations == 50
        assert agent == "codex"
        assert cwd.resolve() == workspace.resolve()

    def test_invalid_config(self, workspace, capsys):
        make_workspace(workspace)
        (workspace / ".ralphctl.yaml").write_text("agent: [\n")

        assert run_main(["run"]) == 1
        assert "invalid YAML" in capsys.readouterr().err

    def test_config_file_option(self, workspace):
        make_workspace(workspace)
        (workspace / "alt.yaml").write_text("agent: codex\nrun:\n  max_iterations: 9\n")

        with patch("ralphctl.cli.execute_loop", return_value=LoopResult(Outcome.EXHAUSTED, 9)) as mock_exec:
            assert run_main(["--config", "alt.yaml", "run"]) == 2

        _, loop_config, agent, _ = mock_exec.call_args.args
        assert loop_config.max_iterations == 9
        assert agent == "codex"


class TestReverse:
    """Tests for the reverse command."""

    def test_creates_question_template(self, workspace, capsys):
        assert run_main(["reverse"]) == 1
        assert (workspace / "QUESTION.md").exists()
        assert "Created QUESTION.md" in capsys.readouterr().err

    def test_question_argument(self, workspace):
        with patch("ralphctl.cli.execute_loop", return_value=LoopResult(Outcome.INCONCLUSIVE, 3)) as mock_exec:
            assert run_main(["reverse", "Why does auth fail?"]) == 4

        assert (workspace / "QUESTION.md").read_text() == "# Question\n\nWhy does auth fail?\n"
        assert (workspace / "REVERSE_PROMPT.md").exists()
        _, loop_config, agent, _ = mock_exec.call_args.args
        assert loop_config.protocol is Protocol.INVESTIGATE
        assert loop_config.max_iterations == 100
        assert agent == "claude"

    def test_existing_question_file(self, workspace, scripted, capsys):
        (workspace / "QUESTION.md").write_text("# Question\n\nWhere is the cache?\n")
        runner = scripted("[[RALPH:FOUND:in redis]]\n")

        with patch("ralphctl.cli.get_agent", return_value=runner):
            assert run_main(["reverse"]) == 0

        assert "Found: in redis" in capsys.readouterr().out

    def test_reports_investigation_notes(self, workspace, capsys):
        (workspace / "FINDINGS.md").write_text("## Answer\n")

        with patch("ralphctl.cli.execute_loop", return_value=LoopResult(Outcome.SUCCESS, 2)):
            assert run_main(["reverse", "Where is the cache?"]) == 0

        assert "Investigation notes: FINDINGS.md" in capsys.readouterr().err
