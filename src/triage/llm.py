"""LLM factory — creates the chat model used to classify incidents."""

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel
from langchain_openai import ChatOpenAI
from pydantic import SecretStr

from src.config import Settings


def create_llm(settings: Settings, model_override: str | None = None) -> BaseChatModel:
    """Create a chat model instance based on the configured provider.

    SDK-level retries are switched off: a failed call is reported to the
    batch once and never retried.

    Args:
        settings: Application settings (provider, keys, model names, limits).
        model_override: Use this model name instead of the configured one.

    Returns:
        A ChatAnthropic or ChatOpenAI instance.
    """
    if settings.llm_provider == "anthropic":
        return ChatAnthropic(  # pyright: ignore[reportCallIssue]
            model=model_override or settings.anthropic_model,
            api_key=SecretStr(settings.anthropic_api_key),
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            max_retries=0,
        )

    return ChatOpenAI(
        model=model_override or settings.openai_model,
        api_key=SecretStr(settings.openai_api_key),
        base_url=settings.openai_base_url or None,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,  # pyright: ignore[reportCallIssue]
        max_retries=0,
    )
