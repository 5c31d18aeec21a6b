import os
import warnings
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

ToolResultFormat = Literal["result", "function_result", "function_args_result"]

PROVIDER_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "ollama": "http://localhost:11434/v1",
}
LOCAL_PROVIDERS = {"ollama"}
LOCAL_API_KEY = "not-needed"


class LLMSettings(BaseModel):
    """Connection and sampling settings for the OpenAI-compatible LLM endpoint."""

    provider: str = "openai"
    base_url: str | None = None
    api_key: str | None = None
    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 1000
    timeout: float = 60.0

    def resolved_base_url(self) -> str:
        if self.base_url:
            return self.base_url.rstrip("/")
        return PROVIDER_BASE_URLS.get(self.provider, PROVIDER_BASE_URLS["openai"])

    def resolved_api_key(self) -> str | None:
        if self.api_key:
            return self.api_key
        env_key = os.getenv("OPENAI_API_KEY")
        if env_key:
            return env_key
        # Local servers ignore the key but the client requires one
        if self.provider in LOCAL_PROVIDERS:
            return LOCAL_API_KEY
        return None


class SessionSettings(BaseModel):
    connect_timeout: float = Field(default=10.0, gt=0)
    call_timeout: float = Field(default=30.0, gt=0)
    sweep_interval: float = Field(default=300.0, gt=0)
    max_connection_age: float = Field(default=1800.0, gt=0)


class Config(BaseModel):
    llm: LLMSettings = Field(default_factory=LLMSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    default_server_url: str | None = None
    tool_result_format: ToolResultFormat = "result"
    prompt_templates_dir: str | None = None

    @model_validator(mode="before")
    @classmethod
    def migrate_flat_config(cls, data: Any) -> Any:
        """Accept the flat settings object saved by the chat UI.

        The UI stores ``{"baseUrl": ..., "model": ..., "mcpServer": ...}``;
        those keys are moved into the ``llm`` section and
        ``default_server_url``.
        """
        if not isinstance(data, dict):
            return data

        flat_keys = {
            "llmProvider": "provider",
            "baseUrl": "base_url",
            "apiKey": "api_key",
            "model": "model",
            "temperature": "temperature",
            "maxTokens": "max_tokens",
        }
        if not any(key in data for key in [*flat_keys, "mcpServer"]):
            return data

        warnings.warn(
            "Config uses the flat UI settings format. "
            "Move LLM settings under 'llm' and the server under 'default_server_url'.",
            DeprecationWarning,
            stacklevel=2,
        )

        data = dict(data)
        llm = dict(data.get("llm") or {})
        for old, new in flat_keys.items():
            if old in data:
                llm.setdefault(new, data.pop(old))
        data["llm"] = llm

        server = data.pop("mcpServer", None)
        if server and not data.get("default_server_url"):
            data["default_server_url"] = server
        for ignored in ("systemPrompt", "mcpEnabled"):
            data.pop(ignored, None)
        return data


class ChatConfig(BaseModel):
    """Per-request settings sent by the chat UI alongside the messages.

    Any LLM field left unset falls back to the server's :class:`Config`.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    llm_provider: str | None = None
    api_key: str | None = None
    base_url: str | None = None
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    mcp_enabled: bool = False
    mcp_server: str | None = None

    def llm_settings(self, defaults: LLMSettings) -> LLMSettings:
        overrides = {
            "provider": self.llm_provider,
            "api_key": self.api_key,
            "base_url": self.base_url,
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        return defaults.model_copy(
            update={k: v for k, v in overrides.items() if v not in (None, "")}
        )

    def server_url(self, default: str | None) -> str | None:
        url = (self.mcp_server or "").strip()
        return url or default
