"""HTTP 边界的请求模型（转换为核心 dataclass 后交给服务层）。"""

from __future__ import annotations

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from app.services.providers.types import ChatMessage, ContentItem


class ContentItemIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["text", "image", "file", "audio", "video"]
    text: Optional[str] = None
    url: Optional[str] = Field(default=None, description="远程 URL 或 data: URI")
    file_name: Optional[str] = Field(default=None, alias="fileName")
    mime_type: Optional[str] = Field(default=None, alias="mimeType")

    def to_core(self) -> ContentItem:
        return ContentItem(
            type=self.type,
            text=self.text,
            url=self.url,
            file_name=self.file_name,
            mime_type=self.mime_type,
        )


class MessageIn(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: Union[str, List[ContentItemIn]]

    def to_core(self) -> ChatMessage:
        if isinstance(self.content, str):
            return ChatMessage(role=self.role, content=self.content)
        return ChatMessage(role=self.role, content=tuple(item.to_core() for item in self.content))


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: List[MessageIn] = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    provider: str = Field(..., min_length=1)
    stream: bool = True
    reasoning: bool = False
    tools: Optional[List[str]] = Field(default=None, description="工具 id 列表")
    temperature: Optional[float] = None
    max_tokens: Optional[int] = Field(default=None, alias="maxTokens", gt=0)
    password: Optional[str] = None
    web_search: bool = Field(default=False, alias="webSearch")

    def to_messages(self) -> list[ChatMessage]:
        return [msg.to_core() for msg in self.messages]


class PasswordRequest(BaseModel):
    password: Optional[str] = None


class SummarizeRequest(BaseModel):
    content: str = ""
    password: Optional[str] = None
