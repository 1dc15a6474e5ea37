from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    log_level: str = "info"
    # OpenAI-compatible chat completions (OpenAI, OpenRouter, Ollama, LM Studio...)
    openai_api_key: str = ""
    llm_model: str = "gpt-4o-mini"
    llm_base_url: str = "https://api.openai.com/v1"
    llm_temperature: float = 0.1
    llm_timeout_s: float = 60.0
    # Brave Search API for URL discovery
    brave_search_api_key: str = ""
    brave_search_url: str = "https://api.search.brave.com/res/v1/web/search"
    search_delay_ms: int = 1100
    search_max_retries: int = 3
    search_retry_base_s: float = 1.1
    search_timeout_s: float = 20.0
    # Playwright. Empty ws url = launch a local headless Chromium.
    playwright_ws_url: str = ""
    user_agent: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
    )
    render_timeout_ms: int = 30000
    render_text_limit: int = 20000
    # Extraction agent
    agent_enabled: bool = True
    agent_max_turns: int = 6
    agent_history_limit: int = 20
    tool_content_max: int = 16000
    hours_link_limit: int = 3
    # Pipeline defaults
    default_per_query: int = 3
    default_max_urls: int = 10
    output_dir: str = "demo outputs"
    # Job server
    host: str = "0.0.0.0"
    port: int = 3000
    # Langfuse Cloud observability
    langfuse_public_key: str = ""
    langfuse_secret_key: str = ""
    langfuse_base_url: str = "https://us.cloud.langfuse.com"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
