"""
Tests for halodesk.frames.

Covers:
  - Single-chunk decoding
  - Chunk-boundary independence (every split point, char-by-char)
  - CRLF normalisation, including a CR/LF pair split across chunks
  - Non-JSON data fallback, dropped data-less frames
  - Repeated event / data lines
  - Unterminated trailing data discarded on close
  - FrameStream async adapter
"""

import pytest

from halodesk.frames import (
    Frame,
    FrameDecoder,
    FrameStream,
    decode_frames,
    iter_frames,
    parse_frame,
)

from .conftest import sse

HELLO = 'event: delta\ndata: {"text":"Hi"}\n\n'

STREAM = (
    sse("meta", {"provider": "openrouter", "model": "openrouter:openai/gpt-4o-mini"})
    + sse("delta", {"text": "Hel"})
    + ": keep-alive\n\n"
    + sse("delta", {"text": "lo "})
    + sse("delta", {"text": "world"})
    + sse("done", {"finish_reason": "stop"})
)


def _decode_in_pieces(text: str, cuts: list[int]) -> list[Frame]:
    bounds = [0, *cuts, len(text)]
    return list(iter_frames(text[a:b] for a, b in zip(bounds, bounds[1:])))


# ========================================================================
# Basic decoding
# ========================================================================


class TestDecoding:
    def test_single_chunk_yields_one_frame(self):
        assert list(iter_frames([HELLO])) == [Frame(event="delta", data={"text": "Hi"})]

    def test_full_stream_in_order(self):
        frames = list(iter_frames([STREAM]))
        assert [frame.event for frame in frames] == ["meta", "delta", "delta", "delta", "done"]
        assert "".join(f.data["text"] for f in frames if f.event == "delta") == "Hello world"

    def test_event_defaults_to_message(self):
        assert list(iter_frames(['data: {"a": 1}\n\n'])) == [Frame(event="message", data={"a": 1})]

    def test_non_json_data_becomes_text_payload(self):
        assert list(iter_frames(["data: not json\n\n"])) == [
            Frame(event="message", data={"text": "not json"})
        ]

    def test_frame_without_data_is_dropped(self):
        assert list(iter_frames(["event: ping\n\n"])) == []

    def test_comment_only_frame_is_dropped(self):
        assert list(iter_frames([": keep-alive\n\n", HELLO])) == [
            Frame(event="delta", data={"text": "Hi"})
        ]

    def test_data_lines_are_concatenated_without_separator(self):
        frames = list(iter_frames(['event: delta\ndata: {"text":\ndata:  "joined"}\n\n']))
        assert frames == [Frame(event="delta", data={"text": "joined"})]

    def test_last_event_line_wins(self):
        frames = list(iter_frames(['event: meta\nevent: delta\ndata: {"text":"x"}\n\n']))
        assert frames[0].event == "delta"

    def test_leading_whitespace_after_colon_is_trimmed(self):
        frame = parse_frame('event:   delta\ndata:    {"text":"x"}')
        assert frame == Frame(event="delta", data={"text": "x"})

    def test_data_without_space_after_colon(self):
        assert parse_frame('event:delta\ndata:{"text":"x"}') == Frame(
            event="delta", data={"text": "x"}
        )

    def test_json_scalars_are_kept(self):
        assert parse_frame("data: 42") == Frame(event="message", data=42)

    def test_pathologically_nested_json_falls_back_to_text(self):
        raw = "[" * 100_000
        frames = list(iter_frames(["event: delta\ndata: " + raw + "\n\n", HELLO]))
        assert frames == [
            Frame(event="delta", data={"text": raw}),
            Frame(event="delta", data={"text": "Hi"}),
        ]


# ========================================================================
# Chunk-boundary independence
# ========================================================================


class TestChunking:
    def test_every_two_way_split_of_one_frame(self):
        expected = [Frame(event="delta", data={"text": "Hi"})]
        for cut in range(1, len(HELLO)):
            assert _decode_in_pieces(HELLO, [cut]) == expected, f"split at {cut}"

    def test_every_two_way_split_of_full_stream(self):
        expected = list(iter_frames([STREAM]))
        for cut in range(1, len(STREAM)):
            assert _decode_in_pieces(STREAM, [cut]) == expected, f"split at {cut}"

    def test_character_by_character(self):
        assert list(iter_frames(list(STREAM))) == list(iter_frames([STREAM]))

    def test_empty_chunks_are_harmless(self):
        assert list(iter_frames(["", HELLO[:5], "", HELLO[5:], ""])) == list(iter_frames([HELLO]))

    def test_split_between_terminator_newlines(self):
        cut = HELLO.index("\n\n") + 1
        decoder = FrameDecoder()
        assert decoder.feed(HELLO[:cut]) == []
        assert decoder.feed(HELLO[cut:]) == [Frame(event="delta", data={"text": "Hi"})]


# ========================================================================
# Line terminators
# ========================================================================


class TestLineTerminators:
    def test_crlf_matches_lf(self):
        crlf = STREAM.replace("\n", "\r\n")
        assert list(iter_frames([crlf])) == list(iter_frames([STREAM]))

    def test_crlf_split_inside_pair(self):
        crlf = HELLO.replace("\n", "\r\n")
        expected = [Frame(event="delta", data={"text": "Hi"})]
        for cut in range(1, len(crlf)):
            assert _decode_in_pieces(crlf, [cut]) == expected, f"split at {cut}"

    def test_crlf_character_by_character(self):
        crlf = STREAM.replace("\n", "\r\n")
        assert list(iter_frames(list(crlf))) == list(iter_frames([STREAM]))


# ========================================================================
# Completion
# ========================================================================


class TestCompletion:
    def test_unterminated_trailing_frame_is_discarded(self):
        frames = list(iter_frames([HELLO, 'event: delta\ndata: {"text":"partial"}\n']))
        assert frames == [Frame(event="delta", data={"text": "Hi"})]

    def test_close_clears_pending_buffer(self):
        decoder = FrameDecoder()
        decoder.feed("data: {")
        assert decoder.pending == "data: {"
        decoder.close()
        assert decoder.pending == ""
        assert decoder.closed

    def test_feed_after_close_raises(self):
        decoder = FrameDecoder()
        decoder.close()
        with pytest.raises(RuntimeError, match="closed"):
            decoder.feed(HELLO)


# ========================================================================
# Async adapter
# ========================================================================


async def _agen(chunks):
    for chunk in chunks:
        yield chunk


class TestFrameStream:
    async def test_yields_frames_from_async_source(self):
        frames = [frame async for frame in FrameStream(_agen([STREAM[:7], STREAM[7:]]))]
        assert frames == list(iter_frames([STREAM]))

    async def test_decode_frames_shorthand(self):
        frames = [frame async for frame in decode_frames(_agen(list(HELLO)))]
        assert frames == [Frame(event="delta", data={"text": "Hi"})]

    async def test_stream_is_not_restartable(self):
        stream = FrameStream(_agen([HELLO]))
        [frame async for frame in stream]
        with pytest.raises(RuntimeError, match="once"):
            stream.__aiter__()

    async def test_frames_arrive_before_source_ends(self):
        seen: list[str] = []

        async def source():
            yield HELLO
            seen.append("second chunk requested")
            yield sse("done", {"finish_reason": "stop"})

        iterator = decode_frames(source())
        first = await iterator.__anext__()
        assert first.event == "delta"
        assert seen == []
        await iterator.aclose()
