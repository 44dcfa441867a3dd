"""桌面客户端：聊天会话与增量渲染。"""

from fourtwenty_core.client.chat_session import (
    CONFIG_ERROR_TEXT,
    GENERIC_ERROR_TEXT,
    ChatSession,
    SessionState,
)

__all__ = ["CONFIG_ERROR_TEXT", "GENERIC_ERROR_TEXT", "ChatSession", "SessionState"]
