from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from persona_gateway.prompts import templates  # noqa: E402


def test_default_texts_render_without_override_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROMPTS_DIR", str(tmp_path))

    banned = templates.rate_limit_banned_text("<@5>", 24)
    report = templates.rate_limit_report_text("Guild", 1, "user#0001", 5)

    assert banned.startswith("<@5>, you were calling the characters way too fast")
    assert "next 24 hours" in banned
    assert "**Guild** (1)" in report
    assert "**user#0001** (5)" in report


def test_override_file_replaces_known_keys_only(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROMPTS_DIR", str(tmp_path))
    (tmp_path / "gateway.json").write_text(
        json.dumps(
            {
                "rate_limit_warning_text": "Slow down!",
                "default_jailbreak_prompt": "   ",
                "unknown_key": "ignored",
            }
        ),
        encoding="utf-8",
    )

    assert templates.rate_limit_warning_text() == "Slow down!"
    assert "{{char}}" in templates.default_jailbreak_prompt()


def test_broken_override_file_falls_back_to_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROMPTS_DIR", str(tmp_path))
    (tmp_path / "gateway.json").write_text("{not json", encoding="utf-8")

    assert templates.rate_limit_warning_text().startswith("Warning!")


def test_chub_definition_layout_keeps_placeholders_literal() -> None:
    rendered = templates.render_chub_definition("kind", "forest", "{{user}}: hi")

    assert rendered.startswith("{{char}}'s personality: kind")
    assert "Example conversations between {{char}} and {{user}}: {{user}}: hi" in rendered
