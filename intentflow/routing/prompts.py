"""
Classification Prompts

Builds the system instruction and user prompt sent to the text generator
when classifying an input.
"""

from typing import Sequence

from intentflow.registry.agent import AgentProfile
from intentflow.state.models import RoutingContext

RECENT_TURNS_IN_PROMPT = 3


def build_system_instruction(profiles: Sequence[AgentProfile]) -> str:
    """Instruction enumerating the agent types and the required reply shape."""
    agent_lines = []
    for profile in profiles:
        keywords = ", ".join(profile.keywords[:8]) if profile.keywords else "none"
        agent_lines.append(
            f"- {profile.agent_type}: {profile.description or profile.name or profile.agent_type} "
            f"(keywords: {keywords})"
        )
    agent_types = ", ".join(f'"{p.agent_type}"' for p in profiles)

    return (
        "You are the intent router of a household management assistant. "
        "Decide which agent should handle the user's request.\n\n"
        "Available agents:\n"
        + "\n".join(agent_lines)
        + "\n\n"
        "Reply with a single JSON object and nothing else:\n"
        "{\n"
        f'  "targetAgent": one of [{agent_types}],\n'
        '  "confidence": number between 0 and 1,\n'
        '  "reasoning": short explanation,\n'
        '  "extractedEntities": object of detected entities (quantity, unit, action, itemName, timeReference, amount),\n'
        '  "suggestedActions": list of short strings,\n'
        '  "contextualInfo": short string\n'
        "}\n"
        "Use the conversation history to resolve follow-up requests."
    )


def build_user_prompt(user_input: str, context: RoutingContext) -> str:
    """Prompt embedding the input, recent turns, context pairs and preferences."""
    sections = [f"User input: {user_input}"]

    recent = context.session_history[-RECENT_TURNS_IN_PROMPT:]
    if recent:
        lines = []
        for turn in recent:
            lines.append(
                f"- user: {turn.user_input}\n"
                f"  response: {turn.agent_response or '(none)'}\n"
                f"  agent: {turn.agent_id or 'unknown'}"
            )
        sections.append("Recent conversation:\n" + "\n".join(lines))

    context_items = context.current_context.prompt_items()
    if context_items:
        sections.append(
            "Context:\n" + "\n".join(f"- {key}: {value}" for key, value in context_items)
        )

    preferences = context.user_preferences or context.current_context.user_preferences
    if preferences:
        sections.append(
            "User preferences:\n" + "\n".join(f"- {key}: {value}" for key, value in preferences.items())
        )

    return "\n\n".join(sections)
