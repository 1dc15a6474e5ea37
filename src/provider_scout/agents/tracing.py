"""Langfuse tracing for the extraction agent and query generator LLM calls."""

from __future__ import annotations

import os
from functools import lru_cache

from provider_scout.config import settings
from provider_scout.utils.logging import get_logger, YELLOW, DIM, RESET

log = get_logger()


@lru_cache(maxsize=1)
def get_langfuse_handler():
    """Return a process-wide Langfuse LangChain callback handler, or None.

    None when keys are not configured or the client cannot start; LLM calls
    run untraced in that case.
    """
    if not settings.langfuse_public_key or not settings.langfuse_secret_key:
        log.debug(f"  {DIM}Langfuse not configured (skipping tracing){RESET}")
        return None

    try:
        from langfuse.langchain import CallbackHandler

        # Langfuse v3 reads its credentials from the environment
        os.environ.setdefault("LANGFUSE_PUBLIC_KEY", settings.langfuse_public_key)
        os.environ.setdefault("LANGFUSE_SECRET_KEY", settings.langfuse_secret_key)
        os.environ.setdefault("LANGFUSE_HOST", settings.langfuse_base_url)
        handler = CallbackHandler()
    except Exception as e:
        log.warning(f"  {YELLOW}Langfuse init failed: {e}{RESET}")
        return None

    log.info(f"  {DIM}Langfuse tracing enabled{RESET}")
    return handler


def trace_config(run_name: str, **metadata) -> dict:
    """LangChain runnable config naming the call, with the Langfuse callback when enabled."""
    config: dict = {"run_name": run_name}
    if metadata:
        config["metadata"] = metadata
    handler = get_langfuse_handler()
    if handler is not None:
        config["callbacks"] = [handler]
    return config
