"""
Function-calling contract appended to the system prompt.
"""

from __future__ import annotations

FUNCTION_CALLING_RULES = """
FUNCTION CALLING RULES:
- Use EXACTLY this format: FUNCTION:functionName:arguments
- For conversation: respond normally without function calls
- Never mix conversation and function calls in the same response
""".strip()

RESPONSE_GUIDELINES = """
RESPONSE GUIDELINES:
- Be contextually aware of the user's time when relevant
- Provide actionable, specific assistance
""".strip()


def render_function_catalog(functions: list[dict[str, str]]) -> str:
    """One line per function: ``- name (type): description``."""
    lines = ["AVAILABLE FUNCTIONS:"]
    for info in functions:
        desc = info.get("description") or ""
        desc = desc.split("\n")[0]
        if len(desc) > 80:
            desc = desc[:77] + "..."
        line = f"- {info['name']} ({info['type']})"
        lines.append(f"{line}: {desc}" if desc else line)
    return "\n".join(lines)


def render_contract(functions: list[dict[str, str]] | None = None) -> str:
    """Calling rules, optionally preceded by the function catalog."""
    parts = []
    if functions:
        parts.append(render_function_catalog(functions))
    parts.append(FUNCTION_CALLING_RULES)
    parts.append(RESPONSE_GUIDELINES)
    return "\n\n".join(parts)
