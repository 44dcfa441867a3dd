import pytest

from fourtwenty_core.domain.exceptions import DecodeError
from fourtwenty_core.streaming.sse_decoder import SseFrameDecoder, iter_deltas, parse_frame


def frame(content):
    return 'data: {"choices":[{"delta":{"content":"%s"}}]}' % content


def texts(deltas):
    return [d.text for d in deltas]


def test_two_frames_and_done():
    chunks = [f"{frame('He')}\n".encode(), f"{frame('llo')}\n".encode(), b"data: [DONE]\n"]
    assert texts(iter_deltas(chunks)) == ["He", "llo"]


def test_malformed_frame_is_dropped_and_stream_continues():
    body = f"{frame('a')}\ndata: {{not json\n{frame('b')}\ndata: [DONE]\n"
    decoder = SseFrameDecoder()
    out = decoder.feed(body.encode()) + decoder.flush()
    assert texts(out) == ["a", "b"]
    assert decoder.dropped_frames == 1


def test_non_data_lines_and_empty_deltas_are_skipped():
    body = "\n".join([
        ": keep-alive",
        "event: message",
        'data: {"choices":[{"delta":{"role":"assistant"}}]}',
        'data: {"choices":[{"delta":{"content":""}}]}',
        'data: {"choices":[]}',
        frame("ok"),
        "",
    ])
    assert texts(iter_deltas([body.encode()])) == ["ok"]


def test_frame_split_across_chunks_is_reassembled():
    raw = f"{frame('split')}\n{frame('!')}\n".encode()
    chunks = [raw[:17], raw[17:40], raw[40:]]
    assert texts(iter_deltas(chunks)) == ["split", "!"]


def test_multibyte_character_split_across_chunks():
    raw = f"{frame('café')}\n".encode("utf-8")
    cut = raw.index("é".encode("utf-8")) + 1
    assert texts(iter_deltas([raw[:cut], raw[cut:]])) == ["café"]


def test_final_line_without_newline_is_flushed():
    assert texts(iter_deltas([frame("tail").encode()])) == ["tail"]


def test_crlf_line_endings():
    body = f"{frame('x')}\r\ndata: [DONE]\r\n"
    decoder = SseFrameDecoder()
    assert texts(decoder.feed(body.encode()) + decoder.flush()) == ["x"]
    assert decoder.dropped_frames == 0


def test_parse_frame():
    assert parse_frame("data: [DONE]") is None
    assert parse_frame("id: 1") is None
    assert parse_frame(frame("hi")) == "hi"
    with pytest.raises(DecodeError):
        parse_frame("data: {")
