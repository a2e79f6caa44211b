from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Literal

from app.agent.artifacts import DiagramKind, ValidationVerdict

START_MARKER = "@startuml"
END_MARKER = "@enduml"

QuoteMode = Literal["line", "document"]

_BRACKET_PAIRS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {close: open_ for open_, close in _BRACKET_PAIRS.items()}

_DECLARATION_RE = re.compile(
    r"^\s*(participant|actor|boundary|control|entity|database|collections|queue)\b",
    re.IGNORECASE,
)
_TRIPLE_DASH_RE = re.compile(r"(?<![<\-.=])---(?![\->|.])")
_BROKEN_ARROW_RE = re.compile(r"-{1,2}\s+>")
_TIGHT_ARROW_RE = re.compile(r"[A-Za-z0-9_](?:<-{1,2}|-{1,2}>|\.{1,2}>)[A-Za-z0-9_]")
_SEPARATOR_LINE_RE = re.compile(r"^\s*[-=.\s]+\s*$")
_CLASS_OPEN_RE = re.compile(r"^\s*(?:abstract\s+)?(?:abstract|class|interface|enum)\b[^\n]*\{")
# ER cardinality markers such as ||--o{ are not brackets.
_CROWS_FOOT_RE = re.compile(r"\}[|o](?=[-.])|(?<=[-.])[|o]\{")

_COMPONENT_RE = re.compile(r"\[(?!\*\])[^\]\n]+\]")
_CLASS_DECL_RE = re.compile(r"^\s*(?:abstract\s+)?(?:class|interface|enum)\s+\S", re.IGNORECASE | re.MULTILINE)
_CLASS_BLOCK_RE = re.compile(
    r"^\s*(?:abstract\s+)?(?:class|interface|enum)\s+[^\n{]*\{",
    re.IGNORECASE | re.MULTILINE,
)
_PARTICIPANT_RE = re.compile(r"^\s*(?:participant|actor|boundary|control|entity|database|collections|queue)\b", re.MULTILINE)
_STRICT_PARTICIPANT_RE = re.compile(r"^\s*(?:participant|boundary|control|entity|collections|queue)\b", re.MULTILINE)
_MESSAGE_ARROW_RE = re.compile(r"-{1,2}>{1,2}|<{1,2}-{1,2}")
_ACTOR_RE = re.compile(r"^\s*actor\b", re.MULTILINE)
_USECASE_RE = re.compile(r"\([^()\n]+\)|^\s*usecase\b", re.MULTILINE)
_ACTIVITY_STEP_RE = re.compile(r"^\s*:.+;\s*$", re.MULTILINE)
_ACTIVITY_START_RE = re.compile(r"^\s*start\s*$", re.MULTILINE)
_STATE_RE = re.compile(r"^\s*state\b", re.MULTILINE)
_NODE_RE = re.compile(r"^\s*node\b", re.MULTILINE)


@dataclass
class _Findings:
    errors: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    def add(self, error: str, *suggestions: str) -> None:
        self.errors.append(error)
        self.suggestions.extend(suggestions)

    def verdict(self) -> ValidationVerdict:
        return ValidationVerdict.from_findings(self.errors, self.suggestions)


@dataclass
class _Line:
    number: int
    text: str
    is_comment: bool


def _split_lines(text: str) -> list[_Line]:
    lines: list[_Line] = []
    in_block_comment = False
    for number, raw in enumerate(text.split("\n"), start=1):
        stripped = raw.strip()
        if in_block_comment:
            lines.append(_Line(number, raw, True))
            if stripped.endswith("'/"):
                in_block_comment = False
            continue
        if stripped.startswith("/'"):
            in_block_comment = not stripped.endswith("'/")
            lines.append(_Line(number, raw, True))
            continue
        lines.append(_Line(number, raw, stripped.startswith("'")))
    return lines


def _coerce_kind(kind: DiagramKind | str | None) -> DiagramKind | None:
    if kind is None or isinstance(kind, DiagramKind):
        return kind
    try:
        return DiagramKind(str(kind).strip().lower())
    except ValueError:
        return None


def _check_markers(text: str, findings: _Findings) -> None:
    has_start = START_MARKER in text
    has_end = END_MARKER in text
    if not has_start:
        findings.add(
            f"Missing {START_MARKER} marker",
            f"Add {START_MARKER} as the very first line of the diagram",
        )
    if not has_end:
        findings.add(
            f"Missing {END_MARKER} marker",
            f"Add {END_MARKER} as the very last line of the diagram",
        )
    if has_start and has_end and text.index(START_MARKER) > text.index(END_MARKER):
        findings.add(
            f"{START_MARKER} must appear before {END_MARKER}",
            f"Move {START_MARKER} to the top and {END_MARKER} to the bottom of the diagram",
        )


def _check_brackets(text: str, findings: _Findings) -> None:
    stack: list[tuple[str, int]] = []
    for number, line in enumerate(text.split("\n"), start=1):
        for char in _CROWS_FOOT_RE.sub("", line):
            if char in _BRACKET_PAIRS:
                stack.append((char, number))
                continue
            if char not in _CLOSERS:
                continue
            if not stack:
                findings.add(
                    f"Unmatched closing '{char}' on line {number}",
                    f"Remove the extra '{char}' on line {number} or add the matching '{_CLOSERS[char]}' before it",
                )
                return
            opener, opened_on = stack.pop()
            if _BRACKET_PAIRS[opener] != char:
                findings.add(
                    f"Mismatched '{char}' on line {number}: expected '{_BRACKET_PAIRS[opener]}' "
                    f"to close '{opener}' opened on line {opened_on}",
                    f"Close the '{opener}' from line {opened_on} with '{_BRACKET_PAIRS[opener]}' before using '{char}'",
                )
                return

    for opener, opened_on in stack:
        findings.add(
            f"Unclosed '{opener}' opened on line {opened_on}",
            f"Add the matching '{_BRACKET_PAIRS[opener]}' for the '{opener}' on line {opened_on}",
        )


def _check_double_quotes(text: str, lines: list[_Line], mode: QuoteMode, findings: _Findings) -> None:
    if mode == "document":
        if text.replace("'", "").count('"') % 2:
            findings.add(
                "Unbalanced double quotes in the diagram",
                'Make sure every opening " has a closing " on the same element',
            )
        return

    for line in lines:
        if line.is_comment:
            continue
        if line.text.count('"') % 2:
            findings.add(
                f"Unterminated string on line {line.number}",
                f'Close the quoted name on line {line.number} with a matching "',
            )


def _check_line_heuristics(text: str, lines: list[_Line], findings: _Findings) -> None:
    has_closing_brace = "}" in text

    for line in lines:
        if line.is_comment:
            continue
        content = line.text
        stripped = content.strip()
        if not stripped or stripped in (START_MARKER, END_MARKER):
            continue

        relation_part = content.split(":", 1)[0]
        if not _SEPARATOR_LINE_RE.match(content):
            if _TRIPLE_DASH_RE.search(relation_part):
                findings.add(
                    f"Malformed relationship arrow '---' on line {line.number}",
                    f"Use a directional arrow such as '-->' on line {line.number}",
                )
            if _BROKEN_ARROW_RE.search(relation_part):
                findings.add(
                    f"Broken arrow with a space before '>' on line {line.number}",
                    f"Write arrows without inner spaces, e.g. '-->' on line {line.number}",
                )
            if _TIGHT_ARROW_RE.search(relation_part):
                findings.add(
                    f"Arrow without surrounding spaces on line {line.number}",
                    f"Put a space on both sides of the arrow on line {line.number}, e.g. 'A --> B'",
                )

        if content.count("'") % 2:
            findings.add(
                f"Unmatched single quote on line {line.number}",
                f"Remove apostrophes from names and labels on line {line.number}; use double quotes for names",
            )

        if content.count("[") > content.count("]"):
            findings.add(
                f"Unclosed component bracket '[' on line {line.number}",
                f"Close the component name with ']' on line {line.number}, e.g. [Component Name]",
            )

        if content.count("(") > content.count(")"):
            findings.add(
                f"Unclosed use case parenthesis '(' on line {line.number}",
                f"Close the use case with ')' on line {line.number}, e.g. (Use Case Name)",
            )

        if _CLASS_OPEN_RE.match(content) and not has_closing_brace:
            findings.add(
                f"Class block opened with '{{' on line {line.number} is never closed",
                "Close every class body with '}' on its own line",
            )

        if _DECLARATION_RE.match(content) and content.count('"') % 2:
            findings.add(
                f"Unbalanced quotes in participant declaration on line {line.number}",
                f'Quote participant names fully on line {line.number}, e.g. participant "Web App" as WA',
            )


def _check_kind_structure(text: str, kind: DiagramKind, findings: _Findings) -> None:
    if kind == DiagramKind.COMPONENT:
        if not _COMPONENT_RE.search(text):
            findings.add(
                "Component diagram has no components in [Component Name] syntax",
                "Declare every component with square brackets, e.g. [Web App] --> [API]",
            )
    elif kind == DiagramKind.CLASS:
        if not _CLASS_BLOCK_RE.search(text):
            findings.add(
                "Class diagram has no class block",
                "Declare classes with class ClassName { ... } including attributes and methods",
            )
    elif kind == DiagramKind.SEQUENCE:
        if not _PARTICIPANT_RE.search(text):
            findings.add(
                "Sequence diagram has no participant or actor declarations",
                "Declare every lifeline with participant Name or actor Name before the messages",
            )
        if not _MESSAGE_ARROW_RE.search(text):
            findings.add(
                "Sequence diagram has no messages",
                "Add messages between participants, e.g. User -> System: login()",
            )
    elif kind == DiagramKind.USECASE:
        if not _ACTOR_RE.search(text):
            findings.add(
                "Use case diagram has no actor declarations",
                "Declare external entities with actor Name",
            )
        if not _USECASE_RE.search(text):
            findings.add(
                "Use case diagram has no use cases in (Use Case Name) syntax",
                "Declare use cases with parentheses, e.g. (Login) as UC1",
            )
    elif kind == DiagramKind.ACTIVITY:
        if not _ACTIVITY_STEP_RE.search(text):
            findings.add(
                "Activity diagram has no :activity; statements",
                "Write every step as :Activity Name; on its own line",
            )
        if not _ACTIVITY_START_RE.search(text):
            findings.add(
                "Activity diagram has no start marker",
                "Add 'start' after @startuml and 'stop' before @enduml",
            )
    elif kind == DiagramKind.STATE:
        if not _STATE_RE.search(text) and "[*]" not in text:
            findings.add(
                "State diagram has no states or initial/final markers",
                "Use [*] --> FirstState for the initial state and state \"Name\" for named states",
            )
    elif kind == DiagramKind.DEPLOYMENT:
        if not _NODE_RE.search(text):
            findings.add(
                "Deployment diagram has no node declarations",
                'Declare servers and devices with node "Node Name" { ... }',
            )


def validate_structure(text: str) -> ValidationVerdict:
    """Markers, marker order and bracket balance only."""
    findings = _Findings()
    if not (text or "").strip():
        findings.add("PlantUML text cannot be empty", f"Provide PlantUML code between {START_MARKER} and {END_MARKER}")
        return findings.verdict()
    _check_markers(text, findings)
    _check_brackets(text, findings)
    return findings.verdict()


def validate_plantuml(
    text: str,
    kind: DiagramKind | str | None = None,
    *,
    quote_mode: QuoteMode = "line",
) -> ValidationVerdict:
    """
    Heuristic PlantUML check used to gate model output before rendering.

    Every failing check adds an error and at least one suggestion; only empty
    input short-circuits. Never raises for malformed input.
    """
    findings = _Findings()
    if not (text or "").strip():
        findings.add("PlantUML text cannot be empty", f"Provide PlantUML code between {START_MARKER} and {END_MARKER}")
        return findings.verdict()

    lines = _split_lines(text)
    _check_markers(text, findings)
    _check_brackets(text, findings)
    _check_double_quotes(text, lines, quote_mode, findings)
    _check_line_heuristics(text, lines, findings)

    resolved_kind = _coerce_kind(kind)
    if resolved_kind is not None:
        _check_kind_structure(text, resolved_kind, findings)

    return findings.verdict()


def detect_diagram_kind(text: str) -> DiagramKind:
    """Best-effort guess of the diagram kind from its keywords."""
    body = text or ""
    if "[*]" in body or _STATE_RE.search(body):
        return DiagramKind.STATE
    if _ACTIVITY_START_RE.search(body) and _ACTIVITY_STEP_RE.search(body):
        return DiagramKind.ACTIVITY
    if _STRICT_PARTICIPANT_RE.search(body):
        return DiagramKind.SEQUENCE
    if _ACTOR_RE.search(body):
        if _USECASE_RE.search(body) and not re.search(r"\w\s*-{1,2}>\s*\w+\s*:", body):
            return DiagramKind.USECASE
        return DiagramKind.SEQUENCE
    if _NODE_RE.search(body):
        return DiagramKind.DEPLOYMENT
    if _CLASS_DECL_RE.search(body):
        return DiagramKind.CLASS
    return DiagramKind.COMPONENT
