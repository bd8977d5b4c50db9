"""Markdown and terminal rendering for notes under review."""

from __future__ import annotations

from typing import List, Optional

from .models import StructuredNote


def _yaml_quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f"\"{escaped}\""


def _clean_text(value: str) -> str:
    return " ".join(value.split())


def format_elapsed(seconds: float | int) -> str:
    total = max(0, int(seconds))
    mins, secs = divmod(total, 60)
    return f"{mins:02d}:{secs:02d}"


def render_level_meter(level: float, width: int = 30) -> str:
    level = min(max(level, 0.0), 1.0)
    filled = int(round(level * width))
    return "[" + "#" * filled + "-" * (width - filled) + "]"


def render_note(
    note: StructuredNote,
    visit_id: Optional[str] = None,
    additional_notes: Optional[str] = None,
    date: Optional[str] = None,
    generated: bool = True,
) -> str:
    lines: List[str] = []
    lines.append("---")
    lines.append(f"note_type: {note.note_type.value}")
    if visit_id:
        lines.append(f"visit_id: {_yaml_quote(visit_id)}")
    if date:
        lines.append(f"date: {_yaml_quote(date)}")
    lines.append(f"generated: {'true' if generated else 'false'}")
    lines.append("---")
    lines.append("")
    title = "Progress Note" if note.note_type.value == "Progress" else f"{note.note_type.value} Note"
    lines.append(f"# {title}")
    lines.append("")
    if generated:
        lines.append(
            "> AI-generated. Review and edit before saving. You are responsible for accuracy."
        )
        lines.append("")
    for name, label in note.labels().items():
        lines.append(f"## {label}")
        lines.append("")
        value = note.get(name).strip()
        lines.append(value if value else "_(empty)_")
        lines.append("")
    if additional_notes and additional_notes.strip():
        lines.append("## Additional Notes")
        lines.append("")
        lines.append(additional_notes.strip())
        lines.append("")
    return "\n".join(lines)


def render_field_summary(note: StructuredNote, width: int = 72) -> str:
    lines: List[str] = []
    for idx, (name, label) in enumerate(note.labels().items(), start=1):
        value = _clean_text(note.get(name))
        if len(value) > width:
            value = value[: width - 3] + "..."
        lines.append(f"{idx}. {label}: {value or '(empty)'}")
    return "\n".join(lines)
