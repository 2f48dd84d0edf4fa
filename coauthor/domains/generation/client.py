"""Клиент модели генерации: промпт и system на входе, поток дельт текста на выходе."""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, AsyncIterator, Dict, List, Optional

from openai import AsyncOpenAI, OpenAIError

from coauthor.core.config import settings
from coauthor.core.errors import GenerationFailure

logger = logging.getLogger(__name__)


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TurnChunk:
    """Кусок ответа модели в ходе диалога: дельта текста или вызов инструмента"""
    text: Optional[str] = None
    tool_call: Optional[ToolCall] = None


class TextGenerator(ABC):
    """Возможность генерации, которой пользуются конвейер правок и автодополнение"""

    @abstractmethod
    def stream_text(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[str]:
        ...

    @abstractmethod
    def stream_turn(
        self,
        *,
        system: str,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        model: Optional[str] = None,
    ) -> AsyncIterator[TurnChunk]:
        ...


class OpenAITextGenerator(TextGenerator):
    """Генерация через OpenAI-совместимый Chat Completions API"""

    def __init__(self, api_key: str, base_url: Optional[str] = None, default_model: str = "gpt-4o-mini"):
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url)
        self.default_model = default_model

    async def stream_text(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[str]:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        params: Dict[str, Any] = {"model": model or self.default_model, "messages": messages, "stream": True}
        if temperature is not None:
            params["temperature"] = temperature
        if max_tokens is not None:
            params["max_tokens"] = max_tokens

        stream = None
        try:
            stream = await self.client.chat.completions.create(**params)
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except OpenAIError as e:
            logger.error(f"Text generation failed: {e}")
            raise GenerationFailure(str(e)) from e
        finally:
            if stream is not None:
                await stream.close()

    async def stream_turn(
        self,
        *,
        system: str,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        model: Optional[str] = None,
    ) -> AsyncIterator[TurnChunk]:
        params: Dict[str, Any] = {
            "model": model or self.default_model,
            "messages": [{"role": "system", "content": system}, *messages],
            "stream": True,
        }
        if tools:
            params["tools"] = [{"type": "function", "function": tool} for tool in tools]

        # Аргументы вызовов приходят фрагментами, собираем по индексу
        pending: Dict[int, Dict[str, str]] = {}
        stream = None
        try:
            stream = await self.client.chat.completions.create(**params)
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta.content:
                    yield TurnChunk(text=delta.content)
                for fragment in delta.tool_calls or []:
                    slot = pending.setdefault(fragment.index, {"id": "", "name": "", "arguments": ""})
                    if fragment.id:
                        slot["id"] = fragment.id
                    if fragment.function and fragment.function.name:
                        slot["name"] += fragment.function.name
                    if fragment.function and fragment.function.arguments:
                        slot["arguments"] += fragment.function.arguments
        except OpenAIError as e:
            logger.error(f"Chat turn generation failed: {e}")
            raise GenerationFailure(str(e)) from e
        finally:
            if stream is not None:
                await stream.close()

        for index in sorted(pending):
            slot = pending[index]
            try:
                arguments = json.loads(slot["arguments"] or "{}")
            except json.JSONDecodeError:
                logger.warning(f"Unparseable arguments for tool call {slot['name']}: {slot['arguments']!r}")
                arguments = {}
            if not isinstance(arguments, dict):
                logger.warning(f"Non-object arguments for tool call {slot['name']}: {slot['arguments']!r}")
            yield TurnChunk(tool_call=ToolCall(id=slot["id"], name=slot["name"], arguments=arguments))


@lru_cache
def get_text_generator() -> TextGenerator:
    """Зависимость FastAPI: общий клиент генерации"""
    return OpenAITextGenerator(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        default_model=settings.chat_model,
    )
