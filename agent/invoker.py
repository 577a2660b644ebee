"""
Single persona call: start/chunk/complete events around one model request.

The Bedrock client is synchronous, so a streaming call runs in a worker thread
that feeds a queue; the event loop drains the queue without blocking other
runs in the same process.
"""

import asyncio
import logging
import queue
import threading
from collections import Counter
from typing import Any, Awaitable, Callable, Dict, List, Optional

from bedrock_service import BedrockService, GenerationConfig
from config import AppConfig, ModelConfig, app_config, model_config

from .events import AgentChunk, AgentComplete, AgentEvent, AgentStart
from .prompts import get_persona, persona_models

logger = logging.getLogger(__name__)

EventCallback = Callable[[AgentEvent], Awaitable[None]]


class AgentInvocationError(Exception):
    """A persona's model call failed for good. Fatal to the workflow."""

    def __init__(self, role: str, message: str):
        self.role = role
        persona = get_persona(role)
        super().__init__(f"Agent {persona.name} ({persona.title}) encountered an error: {message}")


class AgentInvoker:
    """Runs persona calls against the model service and reports them as events."""

    def __init__(
        self,
        service: BedrockService,
        on_event: EventCallback,
        settings: Optional[AppConfig] = None,
        models: Optional[ModelConfig] = None,
        call_counter: Optional[Counter] = None,
    ):
        self.service = service
        self.on_event = on_event
        self.settings = settings or app_config
        self.models = models or model_config
        self.routing = persona_models(self.models)
        self.calls = call_counter if call_counter is not None else Counter()

    def model_for(self, role: str) -> str:
        return self.routing[role]

    def _generation_config(self) -> GenerationConfig:
        return GenerationConfig(
            max_tokens=self.models.max_tokens,
            temperature=self.models.temperature,
            top_p=self.models.top_p,
            throughput_mode=self.models.throughput_mode,
        )

    async def invoke(self, role: str, messages: List[Dict[str, Any]]) -> str:
        """Run one persona call and return its full text.

        Raises AgentInvocationError on any model failure; nothing further is
        emitted for the role in that case.
        """
        persona = get_persona(role)
        model_id = self.model_for(role)
        self.calls[model_id] += 1
        logger.info(f"Invoking {persona.label} on {model_id}")

        await self.on_event(AgentStart(role=role))
        try:
            if self.settings.stream_responses:
                text = await self._stream(role, persona.system_prompt, messages, model_id)
            else:
                text = await self._whole(role, persona.system_prompt, messages, model_id)
        except Exception as e:
            logger.error(f"{persona.label} call failed: {e}")
            raise AgentInvocationError(role, str(e) or type(e).__name__) from e

        await self.on_event(AgentComplete(role=role, content=text))
        return text

    async def _whole(self, role: str, system_prompt: str, messages: List[Dict[str, Any]], model_id: str) -> str:
        loop = asyncio.get_running_loop()
        config = self._generation_config()
        result = await loop.run_in_executor(
            None,
            lambda: self.service.generate_response(
                messages=messages,
                system_prompt=system_prompt,
                model_id=model_id,
                config=config,
            ),
        )
        if result.content:
            await self.on_event(AgentChunk(role=role, content=result.content))
        return result.content

    async def _stream(self, role: str, system_prompt: str, messages: List[Dict[str, Any]], model_id: str) -> str:
        loop = asyncio.get_running_loop()
        config = self._generation_config()
        cq: queue.Queue = queue.Queue()

        def _producer():
            try:
                for c in self.service.generate_response_stream(
                    messages=messages,
                    system_prompt=system_prompt,
                    model_id=model_id,
                    config=config,
                ):
                    cq.put(c)
                cq.put(None)
            except Exception as exc:
                cq.put(exc)

        t = threading.Thread(target=_producer, daemon=True)
        t.start()

        text = ""
        while True:
            chunk = await loop.run_in_executor(None, cq.get)
            if chunk is None:
                break
            if isinstance(chunk, Exception):
                raise chunk
            if chunk.get("type") == "text" and chunk.get("content"):
                text += chunk["content"]
                await self.on_event(AgentChunk(role=role, content=chunk["content"]))
        return text
