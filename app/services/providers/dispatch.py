"""Capability-based dispatch (chat / tts / asr / stt / image)."""

from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence

from .types import ChatMessage, ModelCapabilities


class ModelType(str, Enum):
    CHAT = "chat"
    TTS = "tts"
    ASR = "asr"
    STT = "stt"
    IMAGE = "image"


# 固定优先级：tts > asr > stt > imageOutput > chat；与声明顺序无关
DISPATCH_PRIORITY: tuple[tuple[str, ModelType], ...] = (
    ("tts", ModelType.TTS),
    ("asr", ModelType.ASR),
    ("stt", ModelType.STT),
    ("image_output", ModelType.IMAGE),
)

AUDIO_INPUT_TYPES = frozenset({ModelType.ASR, ModelType.STT})


def detect_model_type(
    capabilities: Optional[ModelCapabilities],
    priority: Sequence[tuple[str, ModelType]] = DISPATCH_PRIORITY,
) -> ModelType:
    if capabilities is None:
        return ModelType.CHAT
    for flag, model_type in priority:
        if getattr(capabilities, flag, False):
            return model_type
    return ModelType.CHAT


def has_audio_attachment(message: Optional[ChatMessage]) -> bool:
    if message is None or isinstance(message.content, str):
        return False
    for item in message.content:
        if not item.url:
            continue
        if item.type == "audio":
            return True
        if item.type == "file" and str(item.mime_type or "").lower().startswith("audio/"):
            return True
    return False
