"""Shared value types for the provider adapter layer."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Literal, Optional, Union

MessageRole = Literal["user", "assistant", "system"]
ContentType = Literal["text", "image", "file", "audio", "video"]
ToolCallStatus = Literal["pending", "running", "success", "error"]
StreamChunkType = Literal["text", "thinking", "tool_call", "tool_result", "image", "audio", "error", "done"]

TERMINAL_CHUNK_TYPES = frozenset({"done", "error"})


@dataclass(frozen=True, slots=True)
class ContentItem:
    type: ContentType
    text: Optional[str] = None
    # 远程 URL 或 data: URI（base64 + MIME）
    url: Optional[str] = None
    file_name: Optional[str] = None
    mime_type: Optional[str] = None


MessageContent = Union[str, tuple[ContentItem, ...]]


@dataclass(frozen=True, slots=True)
class ChatMessage:
    role: MessageRole
    content: MessageContent

    def __post_init__(self) -> None:
        if not isinstance(self.content, str):
            object.__setattr__(self, "content", tuple(self.content))


@dataclass(frozen=True, slots=True)
class ToolParameter:
    name: str
    type: Literal["string", "number", "boolean", "object", "array"]
    description: str
    required: bool = False
    enum: Optional[tuple[str, ...]] = None


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    id: str
    name: str
    description: str
    parameters: tuple[ToolParameter, ...] = ()
    builtin: bool = False
    icon: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "builtin": self.builtin,
            "parameters": [
                {
                    "name": p.name,
                    "type": p.type,
                    "description": p.description,
                    "required": p.required,
                    **({"enum": list(p.enum)} if p.enum else {}),
                }
                for p in self.parameters
            ],
        }


@dataclass(slots=True)
class ToolCall:
    id: Optional[str]
    name: Optional[str]
    arguments: dict[str, Any] = field(default_factory=dict)
    result: Any = None
    status: ToolCallStatus = "pending"
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "arguments": self.arguments,
            "status": self.status,
        }
        if self.result is not None:
            data["result"] = self.result
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True, slots=True)
class ModelCapabilities:
    """Declared model capability flags (static configuration, never inferred)."""

    function_call: bool = False
    vision: bool = False
    file: bool = False
    reasoning: bool = False
    image_output: bool = False
    search: bool = False
    tts: bool = False
    asr: bool = False
    stt: bool = False

    _WIRE_NAMES = {"function_call": "functionCall", "image_output": "imageOutput"}

    def to_dict(self) -> dict[str, bool]:
        return {
            self._WIRE_NAMES.get(f.name, f.name): True
            for f in fields(self)
            if getattr(self, f.name)
        }


@dataclass(slots=True)
class AdapterRequest:
    messages: list[ChatMessage]
    model: str
    base_url: str
    api_key: str
    reasoning: bool = False
    tools: Optional[list[ToolDefinition]] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    capabilities: Optional[ModelCapabilities] = None
    # 由调用方提供；None 表示不设超时
    timeout: Optional[float] = None
    request_id: Optional[str] = None

    @property
    def last_message(self) -> Optional[ChatMessage]:
        return self.messages[-1] if self.messages else None


@dataclass(frozen=True, slots=True)
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass(frozen=True, slots=True)
class AudioOutput:
    url: str
    mime_type: str


@dataclass(slots=True)
class AdapterResponse:
    content: str = ""
    thinking: Optional[str] = None
    tool_calls: Optional[list[ToolCall]] = None
    images: Optional[list[str]] = None
    audio: Optional[AudioOutput] = None
    usage: Optional[Usage] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"content": self.content}
        if self.thinking:
            data["thinking"] = self.thinking
        if self.tool_calls:
            data["toolCalls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.images:
            data["images"] = list(self.images)
        if self.audio is not None:
            data["audio"] = {"url": self.audio.url, "mimeType": self.audio.mime_type}
        if self.usage is not None:
            data["usage"] = self.usage.to_dict()
        return data


@dataclass(slots=True)
class StreamChunk:
    type: StreamChunkType
    content: Optional[str] = None
    tool_call: Optional[ToolCall] = None
    image_url: Optional[str] = None
    mime_type: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def done(cls) -> "StreamChunk":
        return cls(type="done")

    @classmethod
    def fail(cls, message: str) -> "StreamChunk":
        return cls(type="error", error=message)

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_CHUNK_TYPES

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type}
        if self.content is not None:
            data["content"] = self.content
        if self.tool_call is not None:
            call = self.tool_call
            data["toolCall"] = {"id": call.id, "name": call.name, "arguments": call.arguments}
        if self.image_url is not None:
            data["imageUrl"] = self.image_url
        if self.mime_type is not None:
            data["mimeType"] = self.mime_type
        if self.error is not None:
            data["error"] = self.error
        return data

