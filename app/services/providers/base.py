"""Provider adapter interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from .types import AdapterRequest, AdapterResponse, StreamChunk


class ProviderAdapter(ABC):
    """One vendor wire protocol behind ``chat`` / ``chat_stream``.

    ``chat`` raises :class:`~app.services.providers.errors.ProviderError` on
    failure. ``chat_stream`` returns an async generator: it reports failures
    as a single ``error`` chunk, otherwise ends with one ``done`` chunk, and
    emits nothing after either. Calling ``aclose()`` on that generator early
    releases the upstream connection, so implementations either return the
    inner generator directly or delegate to it under ``contextlib.aclosing``.
    """

    dialect: str = ""

    @abstractmethod
    async def chat(self, request: AdapterRequest) -> AdapterResponse: ...

    @abstractmethod
    def chat_stream(self, request: AdapterRequest) -> AsyncIterator[StreamChunk]: ...
