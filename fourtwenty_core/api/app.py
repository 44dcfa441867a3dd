"""420 Assistant 中继服务 - FastAPI 应用。

- POST /api/chat: 把对话转发给 LLM Provider，返回纯文本字节流。
- GET /health: 健康检查。

所有失败都以 HTTP 500 + {"error": <message>} 返回；
其中配置错误的 message 含 "API key"，客户端据此展示专门的文案。
"""

from typing import List, Literal, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field, model_validator

from fourtwenty_core.api.service import build_chat_request, get_default_provider
from fourtwenty_core.config.settings import settings
from fourtwenty_core.domain.exceptions import BusinessError
from fourtwenty_core.infrastructure.logging.logger import logger
from fourtwenty_core.providers.base import ProviderClient
from fourtwenty_core.streaming.relay import STREAM_HEADERS, open_relay


GENERIC_ERROR_MESSAGE = "An error occurred during the chat completion."


class Attachment(BaseModel):
    """附件（目前只识别 type=image）"""

    type: str
    url: str = ""


class IncomingMessage(BaseModel):
    """中继接口中的单条消息"""

    role: Literal["system", "user", "assistant"] = "user"
    content: str = ""
    image_urls: Optional[List[str]] = None
    attachments: Optional[List[Attachment]] = None

    @model_validator(mode="after")
    def _require_content_or_images(self) -> "IncomingMessage":
        # image_urls 存在时优先于 attachments，与 service.extract_image_urls 一致
        if self.image_urls is not None:
            has_images = bool(self.image_urls)
        else:
            has_images = any(a.type == "image" and a.url for a in self.attachments or [])
        if not self.content and not has_images:
            raise ValueError("message content may be empty only when images are attached")
        return self


class ChatPayload(BaseModel):
    """中继接口请求体"""

    messages: List[IncomingMessage] = Field(default_factory=list)


def _error_response(message: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(provider: Optional[ProviderClient] = None) -> FastAPI:
    """构造 FastAPI 应用；provider 未指定时使用进程级默认实例。"""

    app = FastAPI(
        title="420 Assistant Relay",
        description="Streams chat completions from the language-model provider as plain text.",
        version="0.1.0",
    )
    app.state.provider = provider or get_default_provider()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BusinessError)
    async def business_error_handler(request: Request, exc: BusinessError) -> JSONResponse:
        logger.error(
            "Chat API error",
            extra={"extra": {"code": exc.code, "error": exc.message, **exc.extra}},
        )
        return _error_response(exc.message, exc.http_status)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning("Invalid chat request", extra={"extra": {"errors": exc.errors()}})
        return _error_response("Invalid chat request body.")

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unexpected chat API error")
        return _error_response(GENERIC_ERROR_MESSAGE)

    @app.post("/api/chat")
    def chat(payload: ChatPayload) -> StreamingResponse:
        """把对话转发给 Provider，逐段返回纯文本。

        同步路由：FastAPI 会在线程池里执行，上游预读与后续流式读取都不会阻塞事件循环。
        """
        req = build_chat_request([m.model_dump(exclude_none=True) for m in payload.messages])
        body = open_relay(app.state.provider, req)
        return StreamingResponse(
            body,
            media_type="text/plain; charset=utf-8",
            headers={k: v for k, v in STREAM_HEADERS.items() if k != "Content-Type"},
        )

    @app.get("/health")
    async def health_check() -> dict:
        """健康检查接口"""
        return {"status": "healthy"}

    return app


def main() -> None:
    uvicorn.run(create_app(), host=settings.server_host, port=settings.server_port)


if __name__ == "__main__":
    main()
