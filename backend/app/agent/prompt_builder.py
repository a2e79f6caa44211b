"""
Prompt construction for diagram generation and editing.

Attempt 1 gets the baseline instruction. Later attempts prepend a retry block
listing every error of the previous verdict with its suggested fix, so the
model can correct exactly what failed.
"""

from app.agent.artifacts import AttemptContext, DiagramKind, ValidationVerdict
from app.agent.prompts.diagram import (
    DIAGRAM_KIND_RULES,
    EDIT_REQUIREMENTS,
    GENERAL_SYNTAX_REQUIREMENTS,
)


def _numbered(items: list[str]) -> str:
    return "\n".join(f"{index}. {item}" for index, item in enumerate(items, start=1))


def _verdict_block(verdict: ValidationVerdict | None, *, subject: str) -> str:
    if verdict is None or not verdict.errors:
        return ""
    block = (
        f"YOUR PREVIOUS {subject} HAD THESE VALIDATION ERRORS:\n"
        f"{_numbered(verdict.errors)}"
    )
    if verdict.suggestions:
        block += (
            "\n\nTO FIX THESE ERRORS, YOU MUST:\n"
            f"{_numbered(verdict.suggestions)}"
        )
    block += "\n\nCRITICAL: You MUST address every single error listed above in your new attempt."
    return block


def build_retry_context(
    context: AttemptContext,
    *,
    kind_label: str,
    subject: str = "PlantUML CODE",
    preserve_structure: bool = False,
) -> str:
    """Corrective feedback for attempts after the first; empty on attempt 1."""
    if not context.is_retry:
        return ""

    sections = [f"AUTOMATIC RETRY - ATTEMPT {context.attempt}/{context.max_attempts}"]

    verdict_block = _verdict_block(context.last_verdict, subject=subject)
    if verdict_block:
        sections.append(verdict_block)

    if context.last_error:
        sections.append(f"Previous attempt error: {context.last_error}")

    checklist = [
        "ANALYZE: Review each validation error above carefully",
        "IMPLEMENT: Apply every suggested fix listed above",
        "VERIFY: Make sure your PlantUML code addresses all validation errors",
        f"DIAGRAM TYPE: Produce a {kind_label} diagram only, using its specific syntax",
        "STRUCTURE: Keep @startuml as the first line and @enduml as the last line",
        "CLARITY: Use simple, clear names without special characters",
        "BALANCE: Double-check that every bracket, parenthesis, brace and double quote is closed",
        "COMPLETION: Return complete, syntactically correct PlantUML",
    ]
    if preserve_structure:
        checklist.insert(3, "MAINTAIN: Keep the existing diagram structure while applying the requested changes")

    sections.append("RETRY INSTRUCTIONS - FOLLOW EXACTLY:\n" + _numbered(checklist))
    sections.append("SUCCESS CRITERIA: Your PlantUML must pass validation on this attempt.")
    return "\n\n".join(sections)


def build_generate_prompt(
    description: str,
    kind: DiagramKind,
    context: AttemptContext | None = None,
) -> str:
    context = context or AttemptContext()
    kind_label = kind.value.upper()
    retry_context = build_retry_context(context, kind_label=kind.value)

    parts = [
        "Based on the following description, create a detailed architecture explanation "
        "and generate PlantUML code.",
        f"Description: {description}",
        "Create a comprehensive markdown description with headings, bullet points, bold and italic text where appropriate.",
    ]
    if retry_context:
        parts.append(retry_context)
    parts.append(
        "CRITICAL INSTRUCTIONS:\n"
        + _numbered([
            f"You MUST create a {kind_label} diagram - not any other type",
            f"Use ONLY the syntax specific to {kind.value} diagrams as specified below",
            f"Follow PlantUML {kind.value} diagram conventions exactly",
            "Provide a clear, detailed explanation of the architecture",
            "Generate clean, well-structured PlantUML code that renders correctly",
            f'Set diagram_type to "{kind.value}"',
        ])
    )
    parts.append(DIAGRAM_KIND_RULES[kind])
    parts.append(GENERAL_SYNTAX_REQUIREMENTS)
    parts.append(
        f"Remember: You are creating a {kind_label} diagram. "
        f"Use the specific syntax and conventions for {kind.value} diagrams only."
    )
    return "\n\n".join(parts)


def build_edit_prompt(
    existing_plantuml: str,
    instructions: str,
    context: AttemptContext | None = None,
    *,
    kind: DiagramKind | None = None,
) -> str:
    context = context or AttemptContext()
    kind_label = kind.value if kind else "the same type as the existing"
    retry_context = build_retry_context(
        context,
        kind_label=kind_label,
        subject="EDITED PlantUML CODE",
        preserve_structure=True,
    )

    parts = [
        "Modify the following PlantUML diagram based on the edit instructions.",
        f"Current PlantUML code:\n{existing_plantuml}",
        f"Edit instructions: {instructions}",
    ]
    if retry_context:
        parts.append(retry_context)
    parts.append(EDIT_REQUIREMENTS)
    if kind is not None:
        parts.append(f"The existing diagram is a {kind.value.upper()} diagram. Follow these rules:\n\n{DIAGRAM_KIND_RULES[kind]}")
    parts.append("Ensure the modified PlantUML code is syntactically correct and follows PlantUML conventions.")
    return "\n\n".join(parts)
