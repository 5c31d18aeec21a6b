"""Tests for configuration models."""

import pytest

from mcp_toolchat.models.config import LOCAL_API_KEY, ChatConfig, Config, LLMSettings


class TestLLMSettings:
    """Tests for LLMSettings."""

    def test_base_url_from_provider(self):
        assert LLMSettings(provider="openai").resolved_base_url() == "https://api.openai.com/v1"
        assert LLMSettings(provider="ollama").resolved_base_url() == "http://localhost:11434/v1"

    def test_explicit_base_url_wins(self):
        settings = LLMSettings(provider="ollama", base_url="http://gpu-box:8000/v1/")
        assert settings.resolved_base_url() == "http://gpu-box:8000/v1"

    def test_api_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        assert LLMSettings().resolved_api_key() == "sk-env"
        assert LLMSettings(api_key="sk-explicit").resolved_api_key() == "sk-explicit"

    def test_api_key_placeholder_for_local_servers(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        assert LLMSettings(provider="ollama").resolved_api_key() == LOCAL_API_KEY

    def test_no_api_key_for_remote_providers(self, monkeypatch):
        """Test that the provider name is never sent as a key."""
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        assert LLMSettings(provider="openai").resolved_api_key() is None


class TestFlatConfigMigration:
    """Tests for accepting the chat UI's flat settings object."""

    def test_flat_keys_move_into_sections(self):
        """Test that UI keys land in the llm section and default server."""
        with pytest.warns(DeprecationWarning):
            config = Config.model_validate(
                {
                    "llmProvider": "ollama",
                    "baseUrl": "http://localhost:11434/v1",
                    "model": "llama3.1",
                    "temperature": 0.3,
                    "maxTokens": 500,
                    "mcpServer": "http://localhost:3001/mcp",
                    "mcpEnabled": True,
                    "systemPrompt": "ignored",
                }
            )

        assert config.llm.provider == "ollama"
        assert config.llm.base_url == "http://localhost:11434/v1"
        assert config.llm.model == "llama3.1"
        assert config.llm.temperature == 0.3
        assert config.llm.max_tokens == 500
        assert config.default_server_url == "http://localhost:3001/mcp"

    def test_sectioned_config_takes_precedence(self):
        with pytest.warns(DeprecationWarning):
            config = Config.model_validate({"llm": {"model": "gpt-4o"}, "model": "llama3.1"})

        assert config.llm.model == "gpt-4o"

    def test_sectioned_config_does_not_warn(self, recwarn):
        Config.model_validate({"llm": {"model": "gpt-4o"}})
        assert not [w for w in recwarn if issubclass(w.category, DeprecationWarning)]


class TestChatConfig:
    """Tests for per-request ChatConfig."""

    def test_camel_case_fields(self):
        chat_config = ChatConfig.model_validate(
            {"llmProvider": "openai", "maxTokens": 64, "mcpEnabled": True, "mcpServer": "http://x/mcp"}
        )

        assert chat_config.llm_provider == "openai"
        assert chat_config.max_tokens == 64
        assert chat_config.mcp_enabled is True

    def test_llm_settings_overrides_only_set_fields(self):
        defaults = LLMSettings(model="gpt-4o-mini", temperature=0.7, api_key="sk-default")

        settings = ChatConfig(model="gpt-4o", apiKey="").llm_settings(defaults)

        assert settings.model == "gpt-4o"
        assert settings.temperature == 0.7
        assert settings.api_key == "sk-default"

    def test_server_url_falls_back_to_default(self):
        assert ChatConfig().server_url("http://default/mcp") == "http://default/mcp"
        assert ChatConfig(mcpServer="  ").server_url("http://default/mcp") == "http://default/mcp"
        assert ChatConfig(mcpServer="http://req/mcp").server_url("http://default/mcp") == "http://req/mcp"
