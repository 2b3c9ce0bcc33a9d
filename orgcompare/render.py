"""Terminal rendering of organization trees and comparison results."""

from __future__ import annotations

import re
from collections.abc import Collection, Sequence
from pathlib import Path

from pygments import highlight
from pygments.formatters import TerminalFormatter
from pygments.lexer import Lexer
from pygments.lexers import TextLexer, get_lexer_by_name, get_lexer_for_filename
from pygments.util import ClassNotFound

from .compare import ComparisonResult, DiffClass, FileDiffResult, comparison_title
from .tree_model import TreeNode

_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")

DEFAULT_STYLE = "monokai"

# Apex sources have no lexer of their own; Java is the closest grammar.
SUFFIX_LEXERS = {
    ".cls": "java",
    ".trigger": "java",
    ".page": "html",
    ".component": "html",
}

MARKERS = {
    DiffClass.UNCHANGED: " ",
    DiffClass.ADDED: "+",
    DiffClass.REMOVED: "-",
    DiffClass.MODIFIED: "~",
}

MARKER_COLORS = {
    DiffClass.ADDED: "\033[32m",
    DiffClass.REMOVED: "\033[31m",
    DiffClass.MODIFIED: "\033[33m",
}
RESET = "\033[0m"


def sanitize_terminal_text(source: str) -> str:
    """Escape terminal control bytes, keeping newlines and tabs."""
    if _CONTROL_RE.search(source) is None:
        return source
    return _CONTROL_RE.sub(lambda match: f"\\x{ord(match.group()):02x}", source)


def lexer_for(name: str, source: str) -> Lexer:
    suffix = Path(name).suffix.lower()
    try:
        if suffix in SUFFIX_LEXERS:
            return get_lexer_by_name(SUFFIX_LEXERS[suffix], stripnl=False)
        return get_lexer_for_filename(name, source, stripnl=False)
    except ClassNotFound:
        return TextLexer(stripnl=False)


def highlight_lines(lines: Sequence[str], name: str, style: str = DEFAULT_STYLE) -> list[str]:
    """Highlight ``lines`` as one document and split back into the same number of lines."""
    source = "\n".join(sanitize_terminal_text(line) for line in lines)
    try:
        formatter = TerminalFormatter(style=style)
    except ClassNotFound:
        formatter = TerminalFormatter(style=DEFAULT_STYLE)
    rendered = highlight(source, lexer_for(name, source), formatter).split("\n")
    return [rendered[idx] if idx < len(rendered) else line for idx, line in enumerate(lines)]


def render_tree(
    nodes: Sequence[TreeNode],
    expanded_folders: Collection[str] | None = None,
    indent: str = "  ",
) -> str:
    """Outline of ``nodes``; ``expanded_folders=None`` expands everything."""
    out: list[str] = []

    def walk(level: Sequence[TreeNode], depth: int) -> None:
        for node in level:
            pad = indent * depth
            if node.placeholder:
                out.append(f"{pad}({node.label})")
            elif node.is_file:
                out.append(f"{pad}{node.label}")
            else:
                is_open = expanded_folders is None or node.id in expanded_folders
                out.append(f"{pad}{'▾' if is_open else '▸'} {node.label}/")
                if is_open:
                    walk(node.children, depth + 1)

    walk(nodes, 0)
    return "\n".join(out)


def _render_file(diff: FileDiffResult, no_color: bool, style: str) -> list[str]:
    header = f"== {diff.org_name}: {diff.file.full_name or diff.file.name} =="
    contents = [line.content for line in diff.lines]
    if no_color:
        shown = [sanitize_terminal_text(text) for text in contents]
    else:
        shown = highlight_lines(contents, diff.file.name, style)

    width = len(str(len(diff.lines))) if diff.lines else 1
    out = [header]
    for line, text in zip(diff.lines, shown):
        marker = MARKERS[line.classification]
        color = MARKER_COLORS.get(line.classification)
        if color and not no_color:
            marker = f"{color}{marker}{RESET}"
        out.append(f"{marker} {line.line_number:>{width}} | {text}")
    return out


def render_summary(result: ComparisonResult) -> str:
    return (
        f"{result.compare_type.value} ({len(result.files)} files, {result.layout.value}): "
        f"{result.total_lines} lines, +{result.added_lines} -{result.removed_lines} ~{result.modified_lines}"
    )


def render_comparison(result: ComparisonResult, style: str = DEFAULT_STYLE, no_color: bool = False) -> str:
    """One block per file with ``+ - ~`` markers, followed by a summary line."""
    out = [comparison_title([item.file for item in result.files]), ""]
    for diff in result.files:
        out.extend(_render_file(diff, no_color, style))
        out.append("")
    out.append(render_summary(result))
    return "\n".join(out)


__all__ = [
    "DEFAULT_STYLE",
    "MARKERS",
    "sanitize_terminal_text",
    "lexer_for",
    "highlight_lines",
    "render_tree",
    "render_summary",
    "render_comparison",
]
