"""客户端增量渲染器。

ChatSession 持有一次聊天会话的消息列表（仅在内存中），并实现
idle → streaming → settled 三态：

- submit() 上传附件、追加用户消息和空的助手占位消息，然后向中继发起唯一一次请求；
- 每读到一段文本就追加到累加器，并用累加器的完整值替换占位消息内容，触发一次渲染；
- 流结束或出错时进入 settled。出错时占位消息内容替换为两条固定文案之一。

cancel() 可以在任意线程调用：它会立即关闭在途响应，中止底层请求；
取消之后才读到的文本不再渲染，占位消息保留已收到的部分内容。
"""

import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

import httpx

from fourtwenty_core.config.settings import settings
from fourtwenty_core.domain.exceptions import BusinessError
from fourtwenty_core.domain.models import ConversationMessage
from fourtwenty_core.infrastructure.logging.logger import log_event
from fourtwenty_core.providers.imgbb_client import ImgBBClient


CONFIG_ERROR_TEXT = (
    "It seems the OpenAI API key is not configured. Please add your API key to the .env file."
)
GENERIC_ERROR_TEXT = "Sorry, I encountered an error. Please try again."

# 只有图片、没有文字时使用的默认文本
IMAGE_ONLY_DISPLAY_TEXT = "What's in this image?"
IMAGE_ONLY_REQUEST_TEXT = "Can you analyze these images?"


class SessionState(str, Enum):
    """会话状态"""

    IDLE = "idle"
    STREAMING = "streaming"
    SETTLED = "settled"


class ImageUploader(Protocol):
    def upload(self, path: str) -> str:
        ...


RenderCallback = Callable[[List[ConversationMessage]], None]


class ChatSession:
    """一个聊天窗口对应一个 ChatSession。

    on_update 是渲染回调，可以在构造后由视图层替换。
    """

    def __init__(
        self,
        cfg=settings,
        uploader: Optional[ImageUploader] = None,
        on_update: Optional[RenderCallback] = None,
    ):
        self._settings = cfg
        self._uploader = uploader
        self.on_update = on_update
        self._cancel = threading.Event()
        self._response: Optional[httpx.Response] = None
        self.messages: List[ConversationMessage] = []
        self.state = SessionState.IDLE

    def submit(self, text: str, attachments: Sequence[str] = ()) -> bool:
        """提交一次输入。

        Args:
            text: 用户输入（会去掉首尾空白）。
            attachments: 本地图片路径或已上传的 http(s) URL。

        Returns:
            是否发起了请求。空文本且无附件、或已有请求在途时返回 False。
        """
        text = (text or "").strip()
        if (not text and not attachments) or self.state is SessionState.STREAMING:
            return False

        self.state = SessionState.STREAMING
        self._cancel.clear()
        try:
            image_urls = self._upload_attachments(attachments)

            # 被取消或出错前没收到内容的占位消息不作为历史发送
            history = [m.to_wire() for m in self.messages if m.content or m.image_urls]
            self.messages.append(
                ConversationMessage(
                    role="user",
                    content=text or IMAGE_ONLY_DISPLAY_TEXT,
                    image_urls=image_urls,
                )
            )
            placeholder = ConversationMessage(role="assistant", content="")
            self.messages.append(placeholder)
            self._render()

            request_message: Dict[str, Any] = {
                "role": "user",
                "content": text or IMAGE_ONLY_REQUEST_TEXT,
            }
            if image_urls:
                request_message["image_urls"] = image_urls
            self._stream_reply({"messages": history + [request_message]}, placeholder)
        finally:
            self.state = SessionState.SETTLED
        return True

    def cancel(self) -> None:
        """停止当前流，并关闭在途响应。"""
        self._cancel.set()
        resp = self._response
        if resp is not None:
            resp.close()

    def close(self) -> None:
        """聊天窗口关闭时调用，会中止在途请求。"""
        self.cancel()

    # ---- 内部实现 ----

    def _stream_reply(self, body: Dict[str, Any], placeholder: ConversationMessage) -> None:
        log_ctx = {"relay_url": self._settings.relay_url}
        accumulator = ""
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                with client.stream("POST", self._settings.relay_url, json=body) as resp:
                    self._response = resp
                    if not 200 <= resp.status_code < 300:
                        self._settle_error(placeholder, self._error_text(resp), log_ctx, status=resp.status_code)
                        return
                    for text in resp.iter_text():
                        if self._cancel.is_set():
                            break
                        if not text:
                            continue
                        accumulator += text
                        placeholder.content = accumulator
                        self._render()
        except httpx.HTTPError as e:
            if not self._cancel.is_set():
                self._settle_error(placeholder, GENERIC_ERROR_TEXT, log_ctx, error=str(e) or type(e).__name__)
                return
        finally:
            self._response = None
        if self._cancel.is_set():
            log_event(logging.INFO, "Chat stream cancelled", log_ctx, received=len(accumulator))
            return
        log_event(logging.INFO, "Chat stream settled", log_ctx, received=len(accumulator))

    @staticmethod
    def _error_text(resp: httpx.Response) -> str:
        """HTTP 500 且 error 字段含 "API key" 时返回配置错误文案，其余一律通用文案。"""
        if resp.status_code != 500:
            return GENERIC_ERROR_TEXT
        try:
            resp.read()
            data = resp.json()
        except (ValueError, httpx.HTTPError):
            return GENERIC_ERROR_TEXT
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, str) and "API key" in error:
            return CONFIG_ERROR_TEXT
        return GENERIC_ERROR_TEXT

    def _settle_error(
        self,
        placeholder: ConversationMessage,
        text: str,
        log_ctx: Dict[str, Any],
        **fields: Any,
    ) -> None:
        placeholder.content = text
        self._render()
        log_event(logging.WARNING, "Chat stream failed", log_ctx, settled_with=text, **fields)

    def _upload_attachments(self, attachments: Sequence[str]) -> List[str]:
        """上传全部附件；任意一张失败则整体放弃图片，继续发送文字。"""
        if not attachments:
            return []
        urls: List[str] = []
        try:
            for item in map(str, attachments):
                if item.startswith(("http://", "https://")):
                    urls.append(item)
                else:
                    urls.append(self._get_uploader().upload(item))
        except BusinessError as e:
            log_event(logging.WARNING, "Error uploading attachments", {}, code=e.code, error=e.message)
            return []
        return urls

    def _get_uploader(self) -> ImageUploader:
        if self._uploader is None:
            self._uploader = ImgBBClient(self._settings)
        return self._uploader

    def _render(self) -> None:
        if self.on_update is not None:
            self.on_update(self.messages)
