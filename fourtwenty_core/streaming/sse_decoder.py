"""SSE 帧解码器。

把上游的字节流解码成按顺序排列的 DeltaChunk：

1. 每个字节分片按 UTF-8 增量解码（跨分片的多字节字符会被拼回）。
2. 按 "\\n" 切行；末尾不完整的一行留在缓冲区，等下一个分片或 flush() 时再处理。
3. 只处理以 "data:" 开头的行；"data: [DONE]" 是结束标记，不转发。
4. 去掉 5 个字符的前缀后按 JSON 解析，读取 choices[0].delta.content。
5. JSON 解析失败只记录日志并丢弃该行，不中断流。
"""

import codecs
import json
import logging
from typing import Any, Iterable, Iterator, List, Optional

from fourtwenty_core.domain.exceptions import DecodeError
from fourtwenty_core.domain.models import DeltaChunk
from fourtwenty_core.infrastructure.logging.logger import log_event


DATA_PREFIX = "data:"
DONE_FRAME = "data: [DONE]"


def parse_frame(line: str) -> Optional[str]:
    """解析单行 SSE 帧，返回其中的增量文本（没有则返回 None）。

    Raises:
        DecodeError: data 行的 JSON 非法。
    """

    line = line.rstrip("\r")
    if not line.startswith(DATA_PREFIX) or line == DONE_FRAME:
        return None
    raw = line[len(DATA_PREFIX):]
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise DecodeError(code="DECODE_ERROR", message=str(e), frame=raw[:200])
    return _delta_content(data)


def _delta_content(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    if isinstance(content, str) and content:
        return content
    return None


class SseFrameDecoder:
    """单线程的流式解码器，一个实例只服务一次请求。"""

    def __init__(self) -> None:
        self._text = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""
        self.dropped_frames = 0

    def feed(self, chunk: bytes) -> List[DeltaChunk]:
        """喂入一个传输层分片，返回本分片内完整行产出的增量。"""

        text = self._pending + self._text.decode(chunk)
        lines = text.split("\n")
        self._pending = lines.pop()
        return self._decode_lines(lines)

    def flush(self) -> List[DeltaChunk]:
        """流结束时处理缓冲区里剩下的最后一行（上游没有以换行结尾时）。"""

        text = self._pending + self._text.decode(b"", final=True)
        self._pending = ""
        if not text:
            return []
        return self._decode_lines([text])

    def _decode_lines(self, lines: List[str]) -> List[DeltaChunk]:
        out: List[DeltaChunk] = []
        for line in lines:
            try:
                content = parse_frame(line)
            except DecodeError as e:
                self.dropped_frames += 1
                log_event(logging.WARNING, "Error parsing SSE event", {}, error=e.message, **e.extra)
                continue
            if content:
                out.append(DeltaChunk(content))
        return out


def iter_deltas(chunks: Iterable[bytes]) -> Iterator[DeltaChunk]:
    """把上游字节分片迭代器转换为 DeltaChunk 迭代器（严格保持到达顺序）。"""

    decoder = SseFrameDecoder()
    for chunk in chunks:
        yield from decoder.feed(chunk)
    yield from decoder.flush()
