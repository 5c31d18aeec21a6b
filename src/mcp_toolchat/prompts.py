"""Jinja2 templates for the three LLM calls a tool turn can make.

Each template can be overridden by dropping a file with the same name into
the directory configured as ``prompt_templates_dir``.
"""

from pathlib import Path
from typing import Any

from jinja2 import ChoiceLoader, DictLoader, Environment, FileSystemLoader, StrictUndefined

DECISION_SYSTEM = "decision_system.j2"
DECISION_USER = "decision_user.j2"
SYNTHESIS_SYSTEM = "synthesis_system.j2"
SYNTHESIS_USER = "synthesis_user.j2"
AUGMENT_SYSTEM = "augment_system.j2"

DEFAULT_TEMPLATES = {
    DECISION_SYSTEM: "You are an assistant that decides whether a user request needs an external tool.",
    DECISION_USER: """Decide whether the user's message requires calling one of the external tools below.

Available tools:
{% for tool in tools %}- {{ tool.name }}: {{ tool.description }}
{% endfor %}
User message: {{ utterance }}

Reply with a JSON object in exactly this format:
{
  "needsTool": true or false,
  "toolName": "name of the tool, if one is needed",
  "reasoning": "why"
}

Rules:
1. Only answer needsTool: true when the user is asking for something one of the tools does.
2. For general questions, chit-chat or advice, answer needsTool: false.
3. toolName must match a name from the list exactly.""",
    SYNTHESIS_SYSTEM: "You generate tool arguments. Reply only with a JSON object that satisfies the schema.",
    SYNTHESIS_USER: """Produce the arguments for a tool call from the user's request.

Tool input schema:
{{ schema }}

User request: {{ utterance }}

Requirements:
1. The object must match the schema's structure and types.
2. Every required property must be present.
3. Infer values from the user's request.
4. Where the request does not say, use a sensible default for optional properties.
5. Reply with the JSON object only, no explanation.""",
    AUGMENT_SYSTEM: """You are an assistant with access to external tools. Tool result: {{ tool_result }}

Answer the user helpfully based on the tool result above. If the result contains links, include them in your reply as markdown images.""",
}


def build_environment(templates_dir: str | Path | None = None) -> Environment:
    loaders: list[Any] = []
    if templates_dir is not None:
        loaders.append(FileSystemLoader(str(Path(templates_dir).resolve())))
    loaders.append(DictLoader(DEFAULT_TEMPLATES))
    return Environment(
        loader=ChoiceLoader(loaders),
        undefined=StrictUndefined,
        keep_trailing_newline=False,
        autoescape=False,
    )


class PromptRenderer:
    def __init__(self, templates_dir: str | Path | None = None):
        self.env = build_environment(templates_dir)

    def render(self, name: str, **context: Any) -> str:
        return self.env.get_template(name).render(**context)
