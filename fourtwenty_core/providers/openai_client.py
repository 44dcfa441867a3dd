"""OpenAI Provider 适配器（补全请求构造方）。

本模块负责：

1. 接收统一的 ChatRequest。
2. 前置固定系统提示词，并把每条消息转换为 OpenAI chat/completions 的 messages 格式
   （带图片的消息使用 content 数组：可选的 text 段 + 每张图片一个 image_url 段）。
3. 只要有任意一条消息带图片就选择视觉模型，否则选择纯文本模型。
4. 以 stream=True 调用 HTTP 接口，把上游响应体按原始字节分片交给调用方。

SSE 帧解析不在这里做，见 streaming.sse_decoder。
"""

from typing import Any, Dict, Iterator, List, Optional

import httpx

from fourtwenty_core.config.settings import PLACEHOLDER_API_KEYS, settings
from fourtwenty_core.domain.exceptions import (
    ConfigurationError,
    NetworkError,
    ProtocolError,
    RateLimitError,
)
from fourtwenty_core.domain.models import ChatRequest, ConversationMessage
from fourtwenty_core.infrastructure.logging.logger import logger
from fourtwenty_core.prompts import load_system_prompt
from fourtwenty_core.providers.registry import OPENAI_CONFIG, select_model


MISSING_KEY_MESSAGE = (
    "OpenAI API key not configured. Please add a valid API key to your .env file."
)


def format_message(message: ConversationMessage) -> Dict[str, Any]:
    """把单条 ConversationMessage 转成 OpenAI message。"""

    if not message.image_urls:
        return {"role": message.role, "content": message.content}
    parts: List[Dict[str, Any]] = []
    if message.content:
        parts.append({"type": "text", "text": message.content})
    for url in message.image_urls:
        parts.append({"type": "image_url", "image_url": {"url": url}})
    return {"role": message.role, "content": parts}


class OpenAIClient:
    """OpenAI 提供方客户端实现。

    - name: Provider 名称（供日志使用）。
    - stream_chat: 对外统一调用入口，返回上游字节分片迭代器。
    """

    name = "openai"

    def __init__(self, cfg=settings, system_prompt: Optional[str] = None):
        # cfg 里包含 base_url、api_key、超时等配置
        self._settings = cfg
        self._system_prompt = system_prompt

    @property
    def system_prompt(self) -> str:
        if self._system_prompt is None:
            self._system_prompt = load_system_prompt()
        return self._system_prompt

    def stream_chat(self, req: ChatRequest) -> Iterator[bytes]:
        """发起一次流式补全。

        凭证在这里同步校验，缺失时直接抛 ConfigurationError，不发任何网络请求；
        HTTP 调用本身延迟到第一次迭代时才发生。
        """

        api_key = self._require_api_key()
        payload = self.build_payload(req)
        logger.info(
            "Calling provider",
            extra={"extra": {
                "provider": self.name,
                "model": payload["model"],
                "message_count": len(payload["messages"]),
            }},
        )
        return self._iter_response(payload, api_key)

    def build_payload(self, req: ChatRequest) -> Dict[str, Any]:
        """将 ChatRequest 转成 OpenAI 所需的请求 JSON。"""

        model_cfg = select_model(OPENAI_CONFIG, req.has_images)
        system = ConversationMessage(role="system", content=self.system_prompt)
        msgs = [format_message(m) for m in [system, *req.messages]]
        return {
            "model": model_cfg.provider_model,
            "messages": msgs,
            "stream": True,
            "max_tokens": model_cfg.max_tokens,
            "temperature": model_cfg.default_temperature,
        }

    def _require_api_key(self) -> str:
        api_key = getattr(self._settings, "openai_api_key", None)
        if not api_key or api_key in PLACEHOLDER_API_KEYS:
            raise ConfigurationError(code="MISSING_API_KEY", message=MISSING_KEY_MESSAGE)
        return api_key

    def _iter_response(self, payload: Dict[str, Any], api_key: str) -> Iterator[bytes]:
        base = getattr(self._settings, "openai_base_url", None) or OPENAI_CONFIG.base_url
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                with client.stream(
                    "POST",
                    f"{base}/chat/completions",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {api_key}",
                        "Content-Type": "application/json",
                    },
                ) as resp:
                    if resp.status_code == 429:
                        raise RateLimitError(code="RATE_LIMIT", message="OpenAI rate limit", upstream_status=429)
                    if resp.status_code >= 400:
                        raise ProtocolError(
                            code="PROTOCOL_ERROR",
                            message=f"OpenAI request failed with status {resp.status_code}",
                            upstream_status=resp.status_code,
                        )
                    for chunk in resp.iter_bytes():
                        if chunk:
                            yield chunk
        except httpx.HTTPError as e:
            # 网络错误：DNS 失败、连接超时、流中途断开等
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__)
