"""Provider relay: streams assistant text and runs tool rounds.

Providers yield :class:`RelayEvent` items. ``LangChainProvider`` drives any
OpenAI-compatible endpoint through ``langchain-openai``; the upstream stream is
closed as soon as the consumer stops iterating, which is how a client
disconnect cancels the provider call.
"""

from __future__ import annotations

import logging
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Protocol

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, AIMessageChunk, BaseMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_openai import ChatOpenAI

from ..config import GatewayConfig
from .model_router import ModelRouter
from .tools import TOOL_SCHEMAS


logger = logging.getLogger("scout.llm")

ToolRunner = Callable[[str, Dict[str, Any]], Awaitable[str]]


@dataclass
class RelayEvent:
    type: str  # text | tool_start | tool_done
    text: str = ""
    tool: Optional[str] = None


class ChatProvider(Protocol):
    def stream(
        self,
        system: str,
        messages: List[Dict[str, Any]],
        tool_runner: ToolRunner,
    ) -> AsyncIterator[RelayEvent]: ...


def _to_messages(system: str, messages: List[Dict[str, Any]]) -> List[BaseMessage]:
    out: List[BaseMessage] = [SystemMessage(content=system)]
    for m in messages:
        if m["role"] == "assistant":
            out.append(AIMessage(content=m["content"]))
        else:
            out.append(HumanMessage(content=m["content"]))
    return out


def _chunk_text(chunk: AIMessageChunk) -> str:
    content = chunk.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


class LangChainProvider:
    def __init__(
        self,
        max_tool_rounds: int = 3,
        router: Optional[ModelRouter] = None,
        model: Optional[BaseChatModel] = None,
    ) -> None:
        self._max_tool_rounds = max_tool_rounds
        self._router = router
        self._model = model

    def _get_model(self) -> BaseChatModel:
        if self._model is not None:
            return self._model
        router = self._router or ModelRouter()
        selection = router.select_provider("conversation")
        base_url = router.base_url_for(selection)
        api_key = router.api_key_for(selection)
        if selection.requires_api_key and not api_key:
            raise RuntimeError("LLM not configured")
        logger.info(
            "Using LLM provider name=%s model=%s base_url=%s",
            selection.name,
            selection.model,
            base_url,
        )
        self._model = ChatOpenAI(
            api_key=api_key or "not-needed",
            base_url=base_url,
            model=selection.model,
            temperature=0.4,
            max_tokens=2048,
        )
        return self._model

    async def stream(
        self,
        system: str,
        messages: List[Dict[str, Any]],
        tool_runner: ToolRunner,
    ) -> AsyncIterator[RelayEvent]:
        model = self._get_model().bind_tools(TOOL_SCHEMAS)
        convo = _to_messages(system, messages)
        rounds = 0
        while True:
            gathered: Optional[AIMessageChunk] = None
            async with aclosing(model.astream(convo)) as chunks:
                async for chunk in chunks:
                    gathered = chunk if gathered is None else gathered + chunk
                    text = _chunk_text(chunk)
                    if text:
                        yield RelayEvent(type="text", text=text)
            if gathered is None or not gathered.tool_calls:
                return
            if rounds >= self._max_tool_rounds:
                logger.info("tool_round_limit_reached", extra={"rounds": rounds})
                return
            rounds += 1
            convo.append(AIMessage(content=gathered.content, tool_calls=gathered.tool_calls))
            for call in gathered.tool_calls:
                name = call["name"]
                yield RelayEvent(type="tool_start", tool=name)
                result = await tool_runner(name, call.get("args") or {})
                convo.append(ToolMessage(content=result, tool_call_id=call.get("id") or name))
                yield RelayEvent(type="tool_done", tool=name)


_provider: ChatProvider | None = None


def get_provider() -> ChatProvider:
    global _provider
    if _provider is None:
        _provider = LangChainProvider(max_tool_rounds=GatewayConfig.from_env().max_tool_rounds)
    return _provider
