# =============================================================================
# Application Configuration — Pydantic Settings
# =============================================================================
#
# DESIGN DECISION: Pydantic V2's `BaseSettings` for configuration.
# Values are type-checked at startup and loaded in this priority order
# (highest first):
#   1. Environment variables (e.g., `MAX_ITERATIONS=8`)
#   2. Values from the .env file
#   3. Default values defined below
#
# The knowledge sources and specialist profiles are NOT settings. They are
# data, loaded from the JSON file named by `knowledge_config_path`
# (see app/services/knowledge_config.py).
#
# USAGE:
#   from app.config import settings
#   print(settings.max_iterations)
# =============================================================================

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Defaults are suitable for local development against the bundled
    demo knowledge file. Override via environment variables or a .env file.
    """

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    app_name: str = "Agentic Retrieval Engine"
    app_version: str = "0.1.0"
    debug: bool = True

    # -------------------------------------------------------------------------
    # API Keys — External Services
    # -------------------------------------------------------------------------
    # Set via environment variables or .env file. No defaults, so a missing
    # key fails loudly when the provider is first constructed.
    # -------------------------------------------------------------------------
    anthropic_api_key: str = ""
    openai_api_key: str = ""

    # -------------------------------------------------------------------------
    # LLM Configuration — Multi-Provider
    # -------------------------------------------------------------------------
    # Two providers are supported:
    #   - "anthropic": Claude via native Anthropic SDK
    #   - "openai_compatible": Any OpenAI-compatible API with tool calling
    #
    # Example configs:
    #   DeepSeek V3:  provider=openai_compatible, base_url=https://api.deepseek.com/v1, model=deepseek-chat
    #   Claude:       provider=anthropic, model=claude-sonnet-4-6
    # -------------------------------------------------------------------------
    llm_provider: str = "anthropic"  # "anthropic" or "openai_compatible"
    llm_base_url: str | None = None  # Only needed for openai_compatible
    llm_api_key: str | None = None   # Overrides provider-specific key if set
    llm_model: str = "claude-sonnet-4-6"
    llm_temperature: float = 0.1
    llm_max_tokens: int = 4096

    # -------------------------------------------------------------------------
    # Reasoning Loop
    # -------------------------------------------------------------------------
    # max_iterations: decision calls before the loop is EXHAUSTED and forced
    # to answer. A run makes at most max_iterations + 1 model calls.
    # -------------------------------------------------------------------------
    max_iterations: int = 5

    # -------------------------------------------------------------------------
    # Retrieval Configuration
    # -------------------------------------------------------------------------
    # retrieval_max_results: hits returned per search_knowledge call.
    # dedupe_results: drop identical payloads within one dispatcher call.
    # -------------------------------------------------------------------------
    retrieval_max_results: int = 3
    dedupe_results: bool = True

    # -------------------------------------------------------------------------
    # Knowledge Sources
    # -------------------------------------------------------------------------
    # knowledge_config_path: JSON file with "sources" and "specialists".
    # chroma_url / chroma_path: where collection-backed sources live.
    #   - chroma_url set  → client/server mode (HttpClient)
    #   - chroma_path set → persistent local mode (PersistentClient)
    #   - neither         → in-process ephemeral mode (tests, demos)
    # -------------------------------------------------------------------------
    knowledge_config_path: str = "data/knowledge.json"
    chroma_url: str | None = None
    chroma_path: str | None = None

    # -------------------------------------------------------------------------
    # Live Search
    # -------------------------------------------------------------------------
    # Backend-less sources (e.g. "web_search") are answered by a JSON search
    # endpoint. Leave live_search_url unset to disable live search; queries
    # against live sources then come back as error results.
    # -------------------------------------------------------------------------
    live_search_url: str | None = None
    live_search_api_key: str | None = None
    live_search_timeout_seconds: float = 15.0

    # -------------------------------------------------------------------------
    # API
    # -------------------------------------------------------------------------
    # Caller-level timeout around a whole run. The iteration cap remains the
    # only cancellation mechanism inside the loop itself.
    # -------------------------------------------------------------------------
    request_timeout_seconds: float = 120.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# Import this directly:
#   from app.config import settings
settings = Settings()
