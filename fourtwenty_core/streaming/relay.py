"""纯文本重发器。

把上游的 SSE 字节流转换成调用方使用的原始文本字节流：
每个 DeltaChunk 原样 UTF-8 编码后转发，不加任何分帧。

open_relay() 会先同步读取上游的第一个分片，这样配置错误、上游非 2xx、
没有响应体等请求级错误都能在返回 200 之前抛出，由 API 层渲染成 HTTP 500 JSON。
"""

import logging
import time
from typing import Any, Dict, Iterator
from uuid import uuid4

from fourtwenty_core.domain.exceptions import ProtocolError
from fourtwenty_core.domain.models import ChatRequest
from fourtwenty_core.infrastructure.logging.logger import log_event
from fourtwenty_core.providers.base import ProviderClient
from fourtwenty_core.streaming.sse_decoder import SseFrameDecoder


STREAM_HEADERS: Dict[str, str] = {
    "Content-Type": "text/plain; charset=utf-8",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def reemit(chunks: Iterator[bytes], log_ctx: Dict[str, Any]) -> Iterator[bytes]:
    """逐个分片解码并重新编码为纯文本字节。

    无论正常结束、出错还是下游提前断开，上游迭代器都会在这里被关闭。
    """

    decoder = SseFrameDecoder()
    start_time = time.time()
    emitted = 0
    try:
        for chunk in chunks:
            for delta in decoder.feed(chunk):
                emitted += 1
                yield delta.encode()
        for delta in decoder.flush():
            emitted += 1
            yield delta.encode()
    except Exception as e:
        log_event(logging.ERROR, "Relay stream aborted", log_ctx, error=str(e), emitted_chunks=emitted)
        raise
    finally:
        close = getattr(chunks, "close", None)
        if close is not None:
            close()
    log_event(
        logging.INFO,
        "Relay stream finished",
        log_ctx,
        emitted_chunks=emitted,
        dropped_frames=decoder.dropped_frames,
        elapsed_seconds=round(time.time() - start_time, 2),
    )


def open_relay(provider: ProviderClient, req: ChatRequest) -> Iterator[bytes]:
    """打开上游流并返回下游字节迭代器。

    Raises:
        ConfigurationError: 凭证缺失（未发起任何网络请求）。
        ProtocolError: 上游非 2xx，或响应体为空。
        NetworkError: 建立连接失败。
    """

    log_ctx = {"trace_id": f"tr-{uuid4().hex}", "provider": provider.name}
    upstream = iter(provider.stream_chat(req))
    first = next(upstream, None)
    if first is None:
        raise ProtocolError(code="NO_RESPONSE_BODY", message="No response body from OpenAI")
    log_event(logging.INFO, "Relay stream started", log_ctx, message_count=len(req.messages))
    return reemit(_PrimedStream(first, upstream), log_ctx)


class _PrimedStream:
    """先吐出已预读的分片，再继续读上游；close() 会透传给上游。"""

    def __init__(self, head: bytes, rest: Iterator[bytes]):
        self._head = [head]
        self._rest = rest

    def __iter__(self) -> "_PrimedStream":
        return self

    def __next__(self) -> bytes:
        if self._head:
            return self._head.pop(0)
        return next(self._rest)

    def close(self) -> None:
        close = getattr(self._rest, "close", None)
        if close is not None:
            close()
