"""Intent handler registry built on Pydantic v2 models."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from time import perf_counter
from typing import Any

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, ConfigDict, Field

from crm_assistant.types import DispatchTrace, Intent, QueryResult


class HandlerSpec(BaseModel):
    """Declarative handler specification for one intent."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    intent: Intent
    name: str
    description: str
    args_schema: type[BaseModel]
    handler: Callable[[BaseModel], Awaitable[QueryResult]]
    tags: list[str] = Field(default_factory=list)

    async def invoke(self, payload: dict[str, Any]) -> QueryResult:
        data = self.args_schema.model_validate(payload)
        return await self.handler(data)


class IntentRegistry:
    """Maps intents to async handlers and exports them as LangChain tools."""

    def __init__(self) -> None:
        self._handlers: dict[Intent, HandlerSpec] = {}
        self._observer: Callable[[DispatchTrace], None] | None = None

    def register(self, spec: HandlerSpec) -> None:
        if spec.intent is Intent.UNKNOWN:
            raise ValueError("The unknown intent cannot have a handler")
        if spec.intent in self._handlers:
            raise ValueError(f"Handler already registered: {spec.intent.value}")
        self._handlers[spec.intent] = spec

    def set_observer(self, observer: Callable[[DispatchTrace], None] | None) -> None:
        """Set an optional callback invoked after each handler execution."""
        self._observer = observer

    def missing_intents(self) -> list[Intent]:
        return [
            intent
            for intent in Intent
            if intent is not Intent.UNKNOWN and intent not in self._handlers
        ]

    def ensure_complete(self) -> None:
        missing = self.missing_intents()
        if missing:
            names = ", ".join(intent.value for intent in missing)
            raise ValueError(f"No handler registered for: {names}")

    async def dispatch(
        self,
        intent: Intent,
        payload: dict[str, Any],
        *,
        observer: Callable[[DispatchTrace], None] | None = None,
    ) -> QueryResult:
        """Validate `payload` and run the handler registered for `intent`.

        `observer` receives the trace of this call only, which keeps traces of
        concurrently dispatched queries apart.
        """
        spec = self._handlers.get(intent)
        if spec is None:
            raise KeyError(f"Unknown intent: {intent.value}")
        return await self._execute_spec(spec, payload, observer)

    def as_langchain_tools(self) -> list[StructuredTool]:
        tools: list[StructuredTool] = []
        for spec in self._handlers.values():
            tools.append(
                StructuredTool.from_function(
                    name=spec.name,
                    description=spec.description,
                    args_schema=spec.args_schema,
                    coroutine=self._build_coroutine(spec),
                )
            )
        return tools

    def specs(self) -> list[HandlerSpec]:
        return list(self._handlers.values())

    def _build_coroutine(self, spec: HandlerSpec) -> Callable[..., Awaitable[str]]:
        async def _callable(**kwargs: Any) -> str:
            result = await self._execute_spec(spec, kwargs)
            return result.summary

        return _callable

    async def _execute_spec(
        self,
        spec: HandlerSpec,
        payload: dict[str, Any],
        observer: Callable[[DispatchTrace], None] | None = None,
    ) -> QueryResult:
        start = perf_counter()
        output = await spec.invoke(payload)
        latency_ms = (perf_counter() - start) * 1000.0

        trace = DispatchTrace(
            intent=spec.intent.value,
            handler=spec.name,
            input_payload=payload,
            latency_ms=latency_ms,
        )
        for callback in (self._observer, observer):
            if callback is not None:
                callback(trace)
        return output
