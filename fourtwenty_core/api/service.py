"""进程级装配模块。

配置对象与 Provider 客户端只在进程启动时构造一次，
再以引用方式注入 FastAPI 应用，避免在各调用点临时创建客户端。
"""

from typing import Any, Dict, List, Optional

from fourtwenty_core.config.settings import Settings, settings
from fourtwenty_core.domain.models import ChatRequest, ConversationMessage
from fourtwenty_core.providers import create_provider
from fourtwenty_core.providers.base import ProviderClient


_provider: Optional[ProviderClient] = None


def get_default_provider(cfg: Settings = settings) -> ProviderClient:
    """获取默认的 Provider 客户端实例（单例）。"""
    global _provider
    if _provider is None:
        _provider = create_provider("openai", cfg)
    return _provider


def extract_image_urls(message: Dict[str, Any]) -> List[str]:
    """从请求里的单条消息提取图片 URL。

    优先使用 image_urls 字段；没有时退回 attachments 中 type=image 且 url 非空的条目。
    """
    image_urls = message.get("image_urls")
    if isinstance(image_urls, list):
        return [u for u in image_urls if isinstance(u, str)]
    attachments = message.get("attachments")
    if isinstance(attachments, list):
        return [
            att["url"]
            for att in attachments
            if isinstance(att, dict) and att.get("type") == "image" and att.get("url")
        ]
    return []


def build_chat_request(messages: List[Dict[str, Any]]) -> ChatRequest:
    """把中继接口收到的 messages 转成 ChatRequest。"""
    return ChatRequest(
        messages=[
            ConversationMessage(
                role=m.get("role") or "user",
                content=m.get("content") or "",
                image_urls=extract_image_urls(m),
            )
            for m in messages
        ]
    )
