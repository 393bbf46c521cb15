# src/llm_stack/backend.py
"""
Strategy text providers.

The core only sees `StrategyTextProvider`: one async call, prompt in, free
text out, allowed to raise. The concrete provider wraps a blocking local
backend (llama_cpp, GGUF model) and runs it in a worker thread so the event
loop keeps ticking while the model generates.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from env.schema import LLMConfig

from .log_files import log_llm_call

logger = logging.getLogger(__name__)


class StrategyTextProvider(Protocol):
    """External strategy text source. Every call may fail."""

    async def generate_content(
        self,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
    ) -> str:
        ...


class LLMBackend(Protocol):
    """Simple interface around a local (blocking) text generation backend."""

    def generate(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float,
        stop: Optional[List[str]] = None,
        system_prompt: Optional[str] = None,
    ) -> str:
        ...


class LlamaCppBackend:
    """
    LLMBackend using llama_cpp and a local GGUF model.

    Chat-completion style: system_prompt becomes the system message, the
    prompt the user message.
    """

    def __init__(self, cfg: LLMConfig) -> None:
        if not cfg.model_path:
            raise ValueError("LlamaCppBackend requires llm.model_path")
        path = Path(cfg.model_path)
        if not path.exists():
            raise FileNotFoundError(path)

        # Imported here so the rest of the bot runs without the native wheel.
        from llama_cpp import Llama

        self._llm = Llama(
            model_path=str(path),
            n_ctx=cfg.n_ctx,
            n_gpu_layers=cfg.n_gpu_layers,
            verbose=False,
        )

    def generate(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float,
        stop: Optional[List[str]] = None,
        system_prompt: Optional[str] = None,
    ) -> str:
        messages: List[Dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        out = self._llm.create_chat_completion(
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            stop=stop or [],
        )
        # OpenAI-style shape: choices[0]["message"]["content"]
        text = out["choices"][0]["message"]["content"]
        return (text or "").strip()


class BackendStrategyProvider:
    """Adapts a blocking LLMBackend to the async StrategyTextProvider contract."""

    def __init__(
        self,
        backend: LLMBackend,
        *,
        max_tokens: int = 1000,
        temperature: float = 0.7,
        log_calls: bool = False,
        role: str = "strategy",
    ) -> None:
        self._backend = backend
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._log_calls = log_calls
        self._role = role

    async def generate_content(
        self,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
    ) -> str:
        text = await asyncio.to_thread(
            self._backend.generate,
            prompt,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            system_prompt=system_prompt,
        )
        if self._log_calls:
            self._log(prompt, text, system_prompt)
        return text

    def _log(self, prompt: str, text: str, system_prompt: Optional[str]) -> None:
        extra: Dict[str, Any] = {"system_prompt": system_prompt}
        try:
            log_llm_call(
                role=self._role,
                operation="generate_content",
                prompt=prompt,
                raw_response=text,
                extra=extra,
            )
        except OSError:
            logger.warning("Could not write LLM call log", exc_info=True)


def create_strategy_provider(cfg: LLMConfig) -> Optional[StrategyTextProvider]:
    """
    Build the configured provider, or None when no model is configured.

    None is a normal configuration: combat and research fall back to their
    static tables.
    """
    if not cfg.model_path:
        logger.info("No LLM model configured; using static strategies only")
        return None
    backend = LlamaCppBackend(cfg)
    return BackendStrategyProvider(
        backend,
        max_tokens=cfg.max_tokens,
        temperature=cfg.temperature,
        log_calls=cfg.log_calls,
    )
