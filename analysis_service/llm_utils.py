"""
llm_utils.py - Chat model construction and invocation

Notes are classified and topics summarized through one of three backends:
an OpenAI-compatible endpoint, DeepSeek, or a local Ollama server. Settings
come from ``LLMConfig``; missing keys and URLs fall back to environment
variables.
"""

import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_deepseek import ChatDeepSeek
from langchain_deepseek.chat_models import DEFAULT_API_BASE as DEEPSEEK_DEFAULT_API_BASE
from langchain_ollama import OllamaLLM
from langchain_openai import ChatOpenAI

_LOG = logging.getLogger("llm_utils")

DEFAULT_PROVIDER = "openai"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_OPENAI_MODEL = "gpt-4.1"
DEFAULT_DEEPSEEK_MODEL = "deepseek-chat"
DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "qwen3:8b"

_THINK_RE = re.compile(r"<think>.*?</think>", re.DOTALL)


@dataclass
class ModelSettings:
    """Resolved settings for one call."""
    provider: str
    model: str
    api_key: Optional[str]
    base_url: Optional[str]
    temperature: float = 0.3
    max_tokens: Optional[int] = None
    timeout: int = 60
    max_retries: int = 2


def resolve_settings(llm_config=None, **overrides) -> ModelSettings:
    """Merge ``LLMConfig`` values, explicit overrides and environment defaults."""
    values: Dict[str, Any] = {}
    if llm_config is not None:
        values.update(
            provider=llm_config.provider,
            model=llm_config.model,
            api_key=llm_config.api_key or None,
            base_url=llm_config.base_url or None,
            temperature=llm_config.temperature,
            max_tokens=llm_config.max_tokens,
            timeout=llm_config.timeout,
        )
    values.update({k: v for k, v in overrides.items() if v is not None})

    provider = (values.get("provider") or DEFAULT_PROVIDER).lower()
    api_key = values.get("api_key")
    base_url = values.get("base_url")
    model = values.get("model")

    if provider == "ollama":
        if not base_url or "openai.com" in base_url:
            base_url = os.getenv("OLLAMA_BASE_URL", DEFAULT_OLLAMA_BASE_URL)
        model = model or os.getenv("OLLAMA_MODEL", DEFAULT_OLLAMA_MODEL)
    elif provider == "deepseek":
        api_key = api_key or os.getenv("DEEPSEEK_API_KEY")
        # The OpenAI default URL is meaningless for DeepSeek
        if base_url and "openai.com" in base_url:
            base_url = None
        model = model or DEFAULT_DEEPSEEK_MODEL
    else:
        api_key = api_key or os.getenv("OPENAI_API_KEY")
        base_url = base_url or os.getenv("OPENAI_API_ENDPOINT", DEFAULT_OPENAI_BASE_URL)
        model = model or DEFAULT_OPENAI_MODEL

    return ModelSettings(
        provider=provider,
        model=model,
        api_key=api_key,
        base_url=base_url,
        temperature=values.get("temperature", 0.3),
        max_tokens=values.get("max_tokens"),
        timeout=values.get("timeout", 60),
        max_retries=values.get("max_retries", 2),
    )


def _build_openai(settings: ModelSettings):
    if not settings.api_key:
        raise ValueError("OpenAI API key required. Set OPENAI_API_KEY or llm.api_key in the config file")
    return ChatOpenAI(
        model=settings.model,
        api_key=settings.api_key,
        base_url=settings.base_url,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
        timeout=settings.timeout,
        max_retries=settings.max_retries,
    )


def _build_deepseek(settings: ModelSettings):
    if not settings.api_key:
        raise ValueError("DeepSeek API key required. Set DEEPSEEK_API_KEY or llm.api_key in the config file")
    return ChatDeepSeek(
        model=settings.model,
        api_key=settings.api_key,
        api_base=settings.base_url or DEEPSEEK_DEFAULT_API_BASE,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
        timeout=settings.timeout,
        max_retries=settings.max_retries,
    )


def _build_ollama(settings: ModelSettings):
    return OllamaLLM(
        model=settings.model,
        base_url=settings.base_url,
        temperature=settings.temperature,
    )


_BUILDERS: Dict[str, Callable[[ModelSettings], Any]] = {
    "openai": _build_openai,
    "deepseek": _build_deepseek,
    "ollama": _build_ollama,
}


def build_model(settings: ModelSettings):
    """Instantiate the langchain model for ``settings.provider``."""
    builder = _BUILDERS.get(settings.provider, _build_openai)
    _LOG.debug("Using %s model %s (%s)", settings.provider, settings.model, settings.base_url or "default endpoint")
    return builder(settings)


def _role_label(message: BaseMessage) -> str:
    if isinstance(message, SystemMessage):
        return "System"
    if isinstance(message, HumanMessage):
        return "User"
    return "Assistant"


def messages_to_prompt(messages: List[BaseMessage]) -> str:
    """Flatten chat messages for completion-style models."""
    if len(messages) == 1:
        return messages[0].content
    return "\n\n".join(f"{_role_label(m)}: {m.content}" for m in messages)


def strip_thinking(content: str) -> str:
    """Remove ``<think>`` blocks emitted by reasoning models."""
    if not isinstance(content, str):
        return content
    return _THINK_RE.sub("", content).strip()


def llm_invoke(messages: List[BaseMessage], llm_config=None, **overrides) -> AIMessage:
    """Send ``messages`` to the configured model and return its reply.

    Raises:
        ValueError: the provider needs an API key that is not configured
    """
    settings = resolve_settings(llm_config, **overrides)
    model = build_model(settings)
    if settings.provider == "ollama":
        return AIMessage(content=strip_thinking(model.invoke(messages_to_prompt(messages))))
    response = model.invoke(messages)
    return AIMessage(content=strip_thinking(response.content))
