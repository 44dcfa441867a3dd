"""Provider 抽象接口。

中继层不直接依赖具体厂商的 HTTP 细节，而是依赖此协议：

- 每个厂商实现一个 ProviderClient（如 OpenAIClient）。
- 负责：将 ChatRequest 转成具体 API 请求，并把上游响应体以原始字节分片的形式交出。

SSE 帧的解析由 streaming.sse_decoder 统一完成，与厂商无关。
"""

from typing import Iterator, Protocol

from fourtwenty_core.domain.models import ChatRequest


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    - name: Provider 名称，用于日志。
    - stream_chat(req): 凭证校验必须在返回前同步完成；
      返回的迭代器按到达顺序产出上游响应体的字节分片。
    """

    name: str

    def stream_chat(self, req: ChatRequest) -> Iterator[bytes]:
        ...
