"""Tests for workspace files and prompt loading."""

import pytest

from ralphctl.errors import WorkspaceError
from ralphctl.prompt import (
    QUESTION_TEMPLATE,
    create_question_template,
    investigation_notes,
    load_reverse_prompt,
    read_prompt,
    task_progress,
    validate_required_files,
    write_question,
    write_reverse_prompt,
)
from ralphctl.signals import NO_SIGNAL, Protocol, detect_signal


def make_workspace(path, prompt="Build the thing.\n"):
    (path / "PROMPT.md").write_text(prompt)
    (path / "SPEC.md").write_text("# Spec\n")
    (path / "IMPLEMENTATION_PLAN.md").write_text("- [ ] first task\n")


class TestRequiredFiles:
    """Tests for build workspace validation."""

    def test_all_present(self, tmp_path):
        make_workspace(tmp_path)
        validate_required_files(tmp_path)

    def test_lists_every_missing_file(self, tmp_path):
        (tmp_path / "SPEC.md").write_text("# Spec\n")

        with pytest.raises(WorkspaceError) as exc_info:
            validate_required_files(tmp_path)

        assert str(exc_info.value) == "missing required files: PROMPT.md, IMPLEMENTATION_PLAN.md"


class TestReadPrompt:
    """Tests for PROMPT.md loading."""

    def test_reads_verbatim(self, tmp_path):
        make_workspace(tmp_path, prompt="Line 1\nLine 2\n")
        assert read_prompt(tmp_path) == "Line 1\nLine 2\n"

    def test_blank_prompt_rejected(self, tmp_path):
        make_workspace(tmp_path, prompt="  \n\n")
        with pytest.raises(WorkspaceError, match="PROMPT.md is empty"):
            read_prompt(tmp_path)

    def test_missing_prompt(self, tmp_path):
        with pytest.raises(WorkspaceError, match="PROMPT.md not found"):
            read_prompt(tmp_path)


class TestQuestion:
    """Tests for QUESTION.md handling."""

    def test_write_question(self, tmp_path):
        path = write_question(tmp_path, "  Why does auth fail?  ")
        assert path.read_text() == "# Question\n\nWhy does auth fail?\n"

    def test_template(self, tmp_path):
        path = create_question_template(tmp_path)
        assert path.name == "QUESTION.md"
        assert path.read_text() == QUESTION_TEMPLATE


class TestReversePrompt:
    """Tests for the packaged investigate prompt."""

    def test_lists_every_marker(self):
        prompt = load_reverse_prompt()
        for marker in ("[[RALPH:CONTINUE]]", "[[RALPH:FOUND:", "[[RALPH:INCONCLUSIVE:", "[[RALPH:BLOCKED:"):
            assert marker in prompt

    def test_prompt_text_never_reads_as_a_signal(self):
        """Failure: quoted markers in the prompt itself must not match."""
        assert detect_signal(load_reverse_prompt(), Protocol.INVESTIGATE) == NO_SIGNAL

    def test_written_to_workspace(self, tmp_path):
        prompt = write_reverse_prompt(tmp_path)
        assert (tmp_path / "REVERSE_PROMPT.md").read_text() == prompt

    def test_no_investigation_notes_yet(self, tmp_path):
        assert investigation_notes(tmp_path) == []

    def test_investigation_notes_findings_first(self, tmp_path):
        (tmp_path / "INVESTIGATION.md").write_text("## Leads\n")
        (tmp_path / "FINDINGS.md").write_text("## Answer\n")

        assert investigation_notes(tmp_path) == ["FINDINGS.md", "INVESTIGATION.md"]


class TestTaskProgress:
    """Tests for the interrupt-summary task line."""

    def test_counts_plan(self, tmp_path):
        (tmp_path / "IMPLEMENTATION_PLAN.md").write_text("- [x] a\n- [x] b\n- [ ] c\n")
        assert task_progress(tmp_path) == "2/3 tasks complete"

    def test_missing_plan(self, tmp_path):
        assert task_progress(tmp_path) == "task status unknown"
