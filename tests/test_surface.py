"""Tests for infperl.surface.surface (ReplSurface, SurfacePolicy)."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable

import pytest
from rich.syntax import Syntax
from rich.text import Text

from infperl.config import HighlightRule
from infperl.surface.surface import PROMPT_STYLE, ReplSurface, SurfacePolicy


@pytest.fixture
def attached(make_process: Any) -> Callable[..., tuple[ReplSurface, Any]]:
    """Factory for a policy-configured surface bound to a running fake process."""

    def _attached(policy: SurfacePolicy | None = None) -> tuple[ReplSurface, Any]:
        surface = ReplSurface("reply")
        surface.apply_policy(policy or SurfacePolicy(prompt_pattern=r"^\d+> "))
        process = make_process(name="reply", command=["reply"])
        asyncio.run(process.start())
        surface.attach(process)
        return surface, process

    return _attached


# ---------------------------------------------------------------------------
# Identity and lifetime
# ---------------------------------------------------------------------------


class TestSurfaceIdentity:
    def test_id_is_starred_name(self) -> None:
        assert ReplSurface("reply").id == "*reply*"

    def test_destroy(self) -> None:
        surface = ReplSurface("reply")
        assert surface.alive
        surface.destroy()
        assert not surface.alive


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


class TestSurfacePolicy:
    def test_defaults(self) -> None:
        policy = SurfacePolicy(prompt_pattern=r"^\d+> ")
        assert policy.prompt_read_only is True
        assert policy.highlight_input is False
        assert policy.ignore_dups is True
        assert policy.companion_mode == "perl"
        assert policy.highlight_rules == []

    def test_applied_only_once(self) -> None:
        surface = ReplSurface("reply")
        first = SurfacePolicy(prompt_pattern=r"^\d+> ")
        second = SurfacePolicy(prompt_pattern=r"^perl> ", ignore_dups=False)
        assert surface.apply_policy(first) is True
        assert surface.apply_policy(second) is False
        assert surface.policy is first
        assert surface.history.ignore_dups is True

    def test_policy_enables_dup_suppression(self) -> None:
        surface = ReplSurface("reply")
        assert surface.history.ignore_dups is False
        surface.apply_policy(SurfacePolicy(prompt_pattern=r"^\d+> "))
        assert surface.history.ignore_dups is True


# ---------------------------------------------------------------------------
# Prompt recognition
# ---------------------------------------------------------------------------


class TestPromptRecognition:
    def test_prompt_in_open_line(self, attached: Any) -> None:
        surface, process = attached()
        process.emit("Welcome\n0> ")
        assert surface.at_prompt is True

    def test_output_without_prompt(self, attached: Any) -> None:
        surface, process = attached()
        process.emit("still computing...")
        assert surface.at_prompt is False

    def test_prompt_must_start_the_line(self, attached: Any) -> None:
        surface, process = attached()
        process.emit("value is 0> ")
        assert surface.at_prompt is False

    def test_submit_clears_prompt(self, attached: Any) -> None:
        surface, process = attached()
        process.emit("0> ")
        surface.submit("1+1")
        assert surface.at_prompt is False
        process.emit("1+1\n$res[0] = 2\n1> ")
        assert surface.at_prompt is True

    def test_prompt_is_read_only(self, attached: Any) -> None:
        surface, process = attached()
        process.emit("0> ")
        line_no = surface.buffer.total_lines
        assert surface.is_read_only(line_no, 0)
        assert surface.is_read_only(line_no, 2)
        assert not surface.is_read_only(line_no, 3)

    def test_prompt_span_survives_line_completion(self, attached: Any) -> None:
        surface, process = attached()
        process.emit("0> ")
        line_no = surface.buffer.total_lines
        process.emit("1+1\n")
        assert surface.buffer.read_tail(1) == ["0> 1+1"]
        assert surface.is_read_only(line_no, 1)

    def test_read_only_disabled(self, attached: Any) -> None:
        policy = SurfacePolicy(prompt_pattern=r"^\d+> ", prompt_read_only=False)
        surface, process = attached(policy)
        process.emit("0> ")
        assert not surface.is_read_only(surface.buffer.total_lines, 0)

    def test_prompt_length(self, attached: Any) -> None:
        surface, _ = attached()
        assert surface.prompt_length("12> say 1") == 4
        assert surface.prompt_length("no prompt") == 0

    def test_wait_for_prompt(self, attached: Any) -> None:
        surface, process = attached()

        async def _run() -> bool:
            surface.buffer.attach_loop()
            asyncio.get_running_loop().call_later(0.01, process.emit, "0> ")
            return await surface.wait_for_prompt(timeout=2.0)

        assert asyncio.run(_run()) is True

    def test_wait_for_prompt_stops_when_process_dies(self, attached: Any) -> None:
        surface, process = attached()
        asyncio.run(process.exit(0))
        assert asyncio.run(surface.wait_for_prompt(timeout=2.0)) is False


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------


class TestSubmit:
    def test_submit_writes_and_records(self, attached: Any) -> None:
        surface, process = attached()
        surface.submit("my $x = 42")
        assert process.written == ["my $x = 42\n"]
        assert surface.history.entries() == ["my $x = 42"]

    def test_submit_suppresses_duplicates(self, attached: Any) -> None:
        surface, process = attached()
        surface.submit("1+1")
        surface.submit("1+1")
        assert len(process.written) == 2
        assert surface.history.entries() == ["1+1"]

    def test_submit_after_exit_raises(self, attached: Any) -> None:
        surface, process = attached()
        asyncio.run(process.exit(0))
        with pytest.raises(RuntimeError):
            surface.submit("1")

    def test_submit_without_process_raises(self) -> None:
        with pytest.raises(RuntimeError):
            ReplSurface("reply").submit("1")


# ---------------------------------------------------------------------------
# History persistence
# ---------------------------------------------------------------------------


class TestSurfaceHistory:
    def test_load_then_save(self, tmp_path: Path, attached: Any) -> None:
        path = tmp_path / "reply_history"
        path.write_text("old\n")
        surface, _ = attached()
        assert asyncio.run(surface.load_history(path)) == 1
        surface.submit("new")
        assert asyncio.run(surface.save_history()) is True
        assert path.read_text() == "old\nnew\n"

    def test_save_without_file_is_noop(self, attached: Any) -> None:
        surface, _ = attached()
        surface.submit("1")
        assert asyncio.run(surface.save_history()) is False


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class TestRendering:
    def test_prompt_is_styled(self, attached: Any) -> None:
        surface, _ = attached()
        text = surface.render_line("0> 1+1")
        assert isinstance(text, Text)
        assert text.plain == "0> 1+1"
        assert any(s.style == PROMPT_STYLE and s.end == 3 for s in text.spans)

    def test_input_not_highlighted_by_default(self, attached: Any) -> None:
        surface, _ = attached()
        text = surface.render_line("0> 1+1")
        assert all(s.end <= 3 for s in text.spans)

    def test_no_highlight_rules_by_default(self, attached: Any) -> None:
        surface, _ = attached()
        assert surface.render_line("$res[0] = 2").spans == []

    def test_user_highlight_rules(self, attached: Any) -> None:
        policy = SurfacePolicy(
            prompt_pattern=r"^\d+> ",
            highlight_rules=[HighlightRule(pattern=r"\$res\[\d+\]", style="green")],
        )
        surface, _ = attached(policy)
        text = surface.render_line("$res[0] = 2")
        assert [(s.start, s.end, s.style) for s in text.spans] == [(0, 7, "green")]

    def test_multiline_input_uses_companion_mode(self, attached: Any) -> None:
        surface, _ = attached()
        rendered = surface.render_input("sub f {\n  1;\n}")
        assert isinstance(rendered, Syntax)

    def test_single_line_input_is_plain(self, attached: Any) -> None:
        surface, _ = attached()
        rendered = surface.render_input("1+1")
        assert isinstance(rendered, Text)
        assert rendered.spans == []
