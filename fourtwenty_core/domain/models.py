"""统一的对话与流式数据模型。

本模块定义中继服务端与桌面客户端共享的标准数据结构：

- ConversationMessage: 一条对话消息（system/user/assistant），可附带图片 URL。
- ChatRequest: 发给底层 LLM Provider 的完整请求。
- DeltaChunk: 从一条 SSE 帧中解析出的增量文本。

Provider 适配器（如 OpenAIClient）只依赖这些模型，
并负责在 OpenAI JSON 与这些模型之间做转换。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal


# LLM 消息角色类型（与 OpenAI 的 role 字段对应）
Role = Literal["system", "user", "assistant"]


@dataclass
class ConversationMessage:
    """一条对话消息，既用于请求，也用于客户端展示。

    - role: 消息角色。
    - content: 纯文本内容；仅当 image_urls 非空时允许为空。
    - image_urls: 按顺序排列的图片 URL，可以为空。

    助手消息在客户端先以空内容创建，随后每收到一个分片就整体替换 content。
    """

    role: Role
    content: str = ""
    image_urls: List[str] = field(default_factory=list)

    @property
    def has_images(self) -> bool:
        return bool(self.image_urls)

    def to_wire(self) -> Dict[str, Any]:
        """序列化为中继接口的请求格式（image_urls 仅在非空时携带）。"""

        payload: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.image_urls:
            payload["image_urls"] = list(self.image_urls)
        return payload


@dataclass
class ChatRequest:
    """一次完整的补全请求。

    messages 是调用方传入的历史，不含系统提示词；
    系统提示词由 Provider 适配层在构造 payload 时前置。
    """

    messages: List[ConversationMessage]

    @property
    def has_images(self) -> bool:
        return any(m.has_images for m in self.messages)


@dataclass(frozen=True)
class DeltaChunk:
    """一段增量文本。所有分片按到达顺序拼接即为完整回答。"""

    text: str

    def encode(self) -> bytes:
        return self.text.encode("utf-8")
