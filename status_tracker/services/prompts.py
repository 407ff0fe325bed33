"""
Prompt text for the status-update agent and the schedule analysis.
"""
from typing import Any, Dict, Optional, Sequence

STATUS_AGENT_PREAMBLE = """You are an AI Project Controls Agent collecting status updates from contractors on a construction project.
Your job is to turn each update into trackable progress information.

Guidelines:
1. Acknowledge what the contractor reported in one short sentence.
2. Ask focused follow-up questions about progress, schedule impact, blockers, risks and next steps.
3. Quantify where possible (percent complete, dates, crew size, quantities).
4. Stay within the project's tracking focus areas.
5. Keep replies concise and professional."""

STATUS_AGENT_CLOSING = (
    "Respond to the contractor's latest update with a brief acknowledgement "
    "followed by one or two specific follow-up questions."
)

SCHEDULE_ANALYSIS_TEMPLATE = """Analyze this project schedule and extract key information that would be useful for tracking project progress. Focus on:
1. Major milestones and deliverables
2. Critical path activities
3. Key dependencies
4. Resource requirements
5. Timeline phases

Project: {name}
Description: {description}
Focus Areas: {tracking_focus_areas}

Please provide a structured summary that an AI agent can use to ask intelligent follow-up questions to contractors about project status."""

GREETING_TEMPLATE = (
    'Hello! I\'m your AI Project Controls Agent for "{name}". '
    "I'm here to help you provide detailed status updates. "
    "Let's start - what progress would you like to report today?"
)

GENERATION_FALLBACK_MESSAGE = (
    "I apologize, but I'm having trouble processing your update right now. "
    "Please try again in a moment."
)


def build_greeting(project: Dict[str, Any]) -> str:
    return GREETING_TEMPLATE.format(name=project["name"])


def build_schedule_analysis_prompt(name: str, description: str, tracking_focus_areas: str) -> str:
    return SCHEDULE_ANALYSIS_TEMPLATE.format(
        name=name,
        description=description,
        tracking_focus_areas=tracking_focus_areas,
    )


def render_history(history: Sequence[Any], window: int) -> str:
    """Render the trailing ``window`` entries as ``role: text`` lines."""
    if window <= 0:
        return ""
    recent = list(history)[-window:]
    return "\n".join(f"{message.role.value}: {message.content}" for message in recent)


def build_status_update_prompt(
    project: Dict[str, Any],
    analysis_text: Optional[str],
    history: Sequence[Any],
    message: str,
    window: int = 6,
) -> str:
    """
    Assemble the generation prompt for one contractor turn.

    ``history`` holds the transcript entries before ``message``; only the
    last ``window`` of them are included.
    """
    sections = [
        STATUS_AGENT_PREAMBLE,
        "\n".join([
            f"Project: {project['name']}",
            f"Description: {project['description']}",
            f"Tracking Focus Areas: {project['tracking_focus_areas']}",
        ]),
    ]
    if analysis_text is not None:
        sections.append(f"Schedule Analysis:\n{analysis_text}")
    rendered = render_history(history, window)
    if rendered:
        sections.append(f"Recent Conversation:\n{rendered}")
    sections.append(f"Contractor's latest update: {message}")
    sections.append(STATUS_AGENT_CLOSING)
    return "\n\n".join(sections)
