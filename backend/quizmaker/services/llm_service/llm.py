"""LLM provider factory and the generation backend used by the quiz pipeline.

Usage:
    from quizmaker.services.llm_service.llm import LangChainGenerationBackend

    backend = LangChainGenerationBackend()
    text = await backend.invoke(prompt, max_tokens=4000, temperature=0.1)
"""

from __future__ import annotations

import asyncio
import logging
import time
import warnings
from typing import Any, Dict, List, Optional

import requests
from langchain_core.language_models.llms import LLM
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_nvidia_ai_endpoints import ChatNVIDIA
from langchain_ollama import ChatOllama

from quizmaker.core.config import settings

logger = logging.getLogger(__name__)

# Suppress warnings
warnings.simplefilter("ignore", UserWarning)

# ── Provider registry ─────────────────────────────────────────

_PROVIDERS: Dict[str, Any] = {}

# ── LLM instance cache (keyed on frozen kwargs) ───────────────
_llm_cache: Dict[tuple, Any] = {}
_LLM_CACHE_MAX = 16


def _register_providers():
    """Build the provider map lazily (called once on first ``get_llm``)."""
    if _PROVIDERS:
        return

    _PROVIDERS["OLLAMA"] = _build_ollama
    _PROVIDERS["GOOGLE"] = _build_google
    _PROVIDERS["NVIDIA"] = _build_nvidia
    _PROVIDERS["MYOPENLM"] = _build_openlm


# ── Builder functions ─────────────────────────────────────────


def _common_kwargs(temperature: float, top_p: Optional[float], max_tokens: int) -> dict:
    kwargs = {
        "temperature": temperature,
        "timeout": settings.LLM_TIMEOUT,
        "max_tokens": max_tokens,
    }
    if top_p is not None:
        kwargs["top_p"] = top_p
    return kwargs


def _build_ollama(temperature: float, top_p: Optional[float], max_tokens: int):
    kw = _common_kwargs(temperature, top_p, max_tokens)
    # Ollama names the output cap num_predict
    kw["num_predict"] = kw.pop("max_tokens")
    kw.pop("timeout")
    kw["model"] = settings.OLLAMA_MODEL
    return ChatOllama(**kw)


def _build_google(temperature: float, top_p: Optional[float], max_tokens: int):
    kw = _common_kwargs(temperature, top_p, max_tokens)
    kw.update(
        model=settings.GOOGLE_MODEL,
        google_api_key=settings.GOOGLE_API_KEY,
    )
    return ChatGoogleGenerativeAI(**kw)


def _build_nvidia(temperature: float, top_p: Optional[float], max_tokens: int):
    kw = _common_kwargs(temperature, top_p, max_tokens)
    kw.pop("timeout")
    kw.update(
        model=settings.NVIDIA_MODEL,
        api_key=settings.NVIDIA_API_KEY,
        model_kwargs={"chat_template_kwargs": {"thinking": False}},  # disable 'thinking'
    )
    return ChatNVIDIA(**kw)


def _build_openlm(temperature: float, top_p: Optional[float], max_tokens: int):
    return MyOpenLM(temperature=temperature, max_tokens=max_tokens)


# ── Public API ────────────────────────────────────────────────


def get_llm(
    temperature: float,
    max_tokens: int,
    top_p: Optional[float] = None,
    provider: Optional[str] = None,
):
    """Return a cached LangChain-compatible model for the given generation params.

    Args:
        temperature: Sampling temperature.
        max_tokens: Output token cap.
        top_p: Nucleus sampling parameter (default: LLM_TOP_P).
        provider: Override global config for a specific provider.
    """
    _register_providers()

    p = top_p if top_p is not None else settings.LLM_TOP_P
    active_provider = provider if provider else settings.LLM_PROVIDER

    builder = _PROVIDERS.get(active_provider)
    if builder is None:
        logger.warning(f"Unknown LLM_PROVIDER '{active_provider}', falling back to OLLAMA")
        active_provider = "OLLAMA"
        builder = _PROVIDERS["OLLAMA"]

    cache_key = (active_provider, temperature, p, max_tokens)
    cached = _llm_cache.get(cache_key)
    if cached is not None:
        return cached

    instance = builder(temperature=temperature, top_p=p, max_tokens=max_tokens)
    if len(_llm_cache) >= _LLM_CACHE_MAX:
        _llm_cache.pop(next(iter(_llm_cache)))
    _llm_cache[cache_key] = instance
    return instance


def response_text(response: Any) -> str:
    """Pull the text out of a chat message, a plain string, or content blocks."""
    content = getattr(response, "content", response)
    if content is None:
        return ""
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, dict):
                parts.append(str(block.get("text", "")))
            else:
                parts.append(str(block))
        content = "".join(parts)
    return (content or "").strip() if isinstance(content, str) else str(content).strip()


class LangChainGenerationBackend:
    """Generation backend over the configured LangChain provider.

    Exposes the narrow ``invoke(prompt, max_tokens, temperature) -> text``
    contract the quiz generator depends on; network and timeout errors are
    left for the caller to classify.
    """

    def __init__(self, provider: Optional[str] = None):
        self.provider = provider

    @property
    def provider_name(self) -> str:
        return self.provider or settings.LLM_PROVIDER

    async def invoke(self, prompt: str, max_tokens: int, temperature: float) -> str:
        llm = get_llm(temperature=temperature, max_tokens=max_tokens, provider=self.provider)
        started = time.perf_counter()
        response = await llm.ainvoke(prompt)
        logger.info(
            "LLM call provider=%s max_tokens=%d took %.1fms",
            self.provider_name, max_tokens, (time.perf_counter() - started) * 1000,
        )
        return response_text(response)


# ── Custom OpenLM wrapper ─────────────────────────────────────


class MyOpenLM(LLM):
    """Custom LangChain wrapper for the MyOpenLM REST API.

    Includes async support and retry on transient errors (500, 502, 429).
    Timeouts are not retried here; the quiz generator owns that policy.
    """

    api_url: str = settings.MYOPENLM_API_URL
    model_name: str = settings.MYOPENLM_MODEL
    temperature: float = 0.1
    max_tokens: int = 4000

    # Transient HTTP codes that should trigger retry
    _RETRYABLE_CODES = {429, 500, 502, 503, 504}
    _MAX_RETRIES = 3

    @property
    def _llm_type(self) -> str:
        return "my_lm"

    def _build_payload(self, prompt: str) -> dict:
        return {
            "message": prompt,
            "model": self.model_name,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

    def _call(
        self, prompt: str, stop: Optional[List[str]] = None, *args: Any, **kwargs: Any
    ) -> str:
        last_exc: Optional[Exception] = None

        for attempt in range(self._MAX_RETRIES):
            try:
                resp = requests.post(
                    self.api_url,
                    json=self._build_payload(prompt),
                    headers={"Content-Type": "application/json"},
                    timeout=settings.LLM_TIMEOUT,
                )
                resp.raise_for_status()
                return resp.json()["data"]["response"]

            except requests.exceptions.HTTPError as exc:
                last_exc = exc
                if resp.status_code in self._RETRYABLE_CODES:
                    delay = 2 ** attempt
                    logger.warning("LLM %d: retry %d/%d in %ds", resp.status_code, attempt + 1, self._MAX_RETRIES, delay)
                    time.sleep(delay)
                    continue
                raise

            except requests.exceptions.ConnectionError as exc:
                last_exc = exc
                delay = 2 ** attempt
                logger.warning("LLM connection error: retry %d/%d in %ds: %s", attempt + 1, self._MAX_RETRIES, delay, exc)
                time.sleep(delay)
                continue

        raise last_exc or Exception("LLM call failed after all retries")

    async def _acall(
        self, prompt: str, stop: Optional[List[str]] = None, *args: Any, **kwargs: Any
    ) -> str:
        """Async version using httpx for true non-blocking IO."""
        import httpx

        last_exc: Optional[Exception] = None

        for attempt in range(self._MAX_RETRIES):
            try:
                async with httpx.AsyncClient(timeout=settings.LLM_TIMEOUT) as client:
                    resp = await client.post(
                        self.api_url,
                        json=self._build_payload(prompt),
                        headers={"Content-Type": "application/json"},
                    )
                    resp.raise_for_status()
                    return resp.json()["data"]["response"]

            except httpx.HTTPStatusError as exc:
                last_exc = exc
                if exc.response.status_code in self._RETRYABLE_CODES:
                    delay = 2 ** attempt
                    logger.warning("LLM %d: retry %d/%d in %ds", exc.response.status_code, attempt + 1, self._MAX_RETRIES, delay)
                    await asyncio.sleep(delay)
                    continue
                raise

            except httpx.ConnectError as exc:
                last_exc = exc
                delay = 2 ** attempt
                logger.warning("LLM connection error: retry %d/%d in %ds: %s", attempt + 1, self._MAX_RETRIES, delay, exc)
                await asyncio.sleep(delay)
                continue

        raise last_exc or Exception("LLM call failed after all retries")
