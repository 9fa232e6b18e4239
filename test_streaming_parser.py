"""
Tests for the incremental SSE parser: UTF-8 decoding, frame splitting and
frame decoding.
"""

import pytest

from streamchat.llm.exceptions import MalformedChunkError
from streamchat.llm.streaming.models import SSEEventKind
from streamchat.llm.streaming.parser import (
    FrameBuffer,
    StreamingParser,
    Utf8StreamDecoder,
    decode_frame,
)


class TestFrameBuffer:
    """Test frame reassembly across arbitrary chunk boundaries."""

    def test_single_complete_frame(self):
        buffer = FrameBuffer()
        assert buffer.ingest("data: a\n\n") == ["data: a"]
        assert buffer.pending == ""

    def test_partial_frame_is_retained(self):
        buffer = FrameBuffer()
        assert buffer.ingest("data: hel") == []
        assert buffer.pending == "data: hel"
        assert buffer.ingest("lo\n") == []
        assert buffer.ingest("\ndata: next") == ["data: hello"]
        assert buffer.pending == "data: next"

    def test_multiple_frames_in_one_chunk_keep_order(self):
        buffer = FrameBuffer()
        frames = buffer.ingest("data: 1\n\ndata: 2\n\ndata: 3\n\n")
        assert frames == ["data: 1", "data: 2", "data: 3"]

    def test_no_frame_returned_twice(self):
        buffer = FrameBuffer()
        assert buffer.ingest("data: 1\n\n") == ["data: 1"]
        assert buffer.ingest("data: 2\n\n") == ["data: 2"]
        assert buffer.ingest("") == []

    def test_crlf_delimiters(self):
        buffer = FrameBuffer()
        assert buffer.ingest("data: a\r\n\r\ndata: b\r\n\r\n") == ["data: a", "data: b"]

    def test_crlf_split_across_chunks(self):
        buffer = FrameBuffer()
        assert buffer.ingest("data: a\r") == []
        assert buffer.ingest("\n\r") == []
        assert buffer.ingest("\ndata: b") == ["data: a"]
        assert buffer.pending == "data: b"

    def test_bare_cr_terminators(self):
        buffer = FrameBuffer()
        assert buffer.ingest("data: a\r\rdata: b\r") == ["data: a"]
        assert buffer.ingest("x") == []
        assert buffer.pending == "data: b\nx"

    def test_close_discards_residue(self):
        buffer = FrameBuffer()
        buffer.ingest("data: {\"choi")
        assert buffer.close() == len("data: {\"choi")
        assert buffer.pending == ""

    def test_malformed_input_never_raises(self):
        buffer = FrameBuffer()
        assert buffer.ingest("\x00garbage\n\n\n\n") == ["\x00garbage", ""]

    def test_held_cr_terminates_frame_on_final_ingest(self):
        buffer = FrameBuffer()
        assert buffer.ingest("data: a\r\r") == []
        assert buffer.pending == "data: a\n\r"
        assert buffer.ingest("", final=True) == ["data: a"]
        assert buffer.close() == 0

    def test_long_frame_fed_char_by_char(self):
        buffer = FrameBuffer()
        frame = "data: " + "x" * 5000
        for ch in frame:
            assert buffer.ingest(ch) == []
        assert buffer.ingest("\n\n") == [frame]
        assert buffer.pending == ""

    def test_oversized_frame_is_rejected(self):
        buffer = FrameBuffer(max_pending=16)
        buffer.ingest("data: 0123456789")
        with pytest.raises(MalformedChunkError, match="exceeds 16 characters"):
            buffer.ingest("a")

    def test_completed_frames_do_not_count_towards_limit(self):
        buffer = FrameBuffer(max_pending=16)
        assert buffer.ingest("data: 0123456789\n\ndata: 1") == ["data: 0123456789"]
        assert buffer.pending == "data: 1"


class TestDecodeFrame:
    """Test SSE frame interpretation."""

    def test_data_frame(self):
        event = decode_frame('data: {"a": 1}')
        assert event.kind is SSEEventKind.DATA
        assert event.payload == '{"a": 1}'

    def test_sentinel(self):
        assert decode_frame("data: [DONE]").kind is SSEEventKind.SENTINEL

    def test_sentinel_with_surrounding_whitespace(self):
        assert decode_frame("data:  [DONE] ").kind is SSEEventKind.SENTINEL

    def test_multiple_data_lines_are_concatenated(self):
        event = decode_frame("data: first\ndata: second")
        assert event.kind is SSEEventKind.DATA
        assert event.payload == "first\nsecond"

    def test_only_one_leading_space_is_removed(self):
        assert decode_frame("data:   x").payload == "  x"
        assert decode_frame("data:x").payload == "x"

    def test_comment_frame_is_ignorable(self):
        assert decode_frame(": keep-alive").kind is SSEEventKind.IGNORABLE

    def test_empty_payload_is_ignorable(self):
        assert decode_frame("data:").kind is SSEEventKind.IGNORABLE
        assert decode_frame("data:    ").kind is SSEEventKind.IGNORABLE

    def test_unknown_fields_are_ignored(self):
        event = decode_frame("retry: 1000\nfoo: bar")
        assert event.kind is SSEEventKind.IGNORABLE

    def test_event_and_id_fields_are_recorded(self):
        event = decode_frame("event: message\nid: 7\ndata: x")
        assert event.kind is SSEEventKind.DATA
        assert event.event == "message"
        assert event.id == "7"

    @pytest.mark.parametrize("frame", ["", "\n", "data", "::::", "\ufffd"])
    def test_odd_frames_do_not_raise(self, frame):
        decode_frame(frame)


class TestUtf8StreamDecoder:
    """Test decoding of code points split across chunks."""

    def test_split_multibyte_sequence(self):
        decoder = Utf8StreamDecoder()
        encoded = "é😀".encode()
        pieces = [decoder.decode(encoded[i:i + 1]) for i in range(len(encoded))]
        assert "".join(pieces) == "é😀"
        assert pieces[0] == ""

    def test_flush_replaces_truncated_sequence(self):
        decoder = Utf8StreamDecoder()
        assert decoder.decode("😀".encode()[:2]) == ""
        assert decoder.flush() == "\ufffd"

    def test_leading_bom_is_dropped_across_chunks(self):
        decoder = Utf8StreamDecoder()
        data = b"\xef\xbb\xbfdata: x"
        assert "".join(decoder.decode(data[i:i + 1]) for i in range(len(data))) == "data: x"

    def test_only_first_bom_is_dropped(self):
        decoder = Utf8StreamDecoder()
        assert decoder.decode(b"\xef\xbb\xbfa\xef\xbb\xbf") == "a\ufeff"


class TestStreamingParser:
    """Test the bytes-to-events chain."""

    def test_ignorable_frames_are_dropped(self):
        parser = StreamingParser()
        events = parser.feed(b": ping\n\ndata: x\n\ndata: [DONE]\n\n")
        assert [e.kind for e in events] == [SSEEventKind.DATA, SSEEventKind.SENTINEL]
        stats = parser.get_stats()
        assert stats["total_frames"] == 3
        assert stats["ignored_frames"] == 1
        assert stats["data_frames"] == 1

    def test_byte_at_a_time_matches_single_feed(self):
        body = "data: ünïcode\n\ndata: 漢字\n\n".encode()
        whole = StreamingParser().feed(body)

        parser = StreamingParser()
        pieces = []
        for i in range(len(body)):
            pieces.extend(parser.feed(body[i:i + 1]))
        pieces.extend(parser.close())

        assert pieces == whole
        assert [e.payload for e in pieces] == ["ünïcode", "漢字"]

    def test_close_releases_frame_ended_by_bare_crs(self):
        parser = StreamingParser()
        assert parser.feed(b'data: {"choices":[{"delta":{"content":"x"}}]}\r\r') == []
        events = parser.close()
        assert [e.payload for e in events] == ['{"choices":[{"delta":{"content":"x"}}]}']
        assert parser.get_stats()["dropped_chars"] == 0

    def test_bom_before_first_frame(self):
        parser = StreamingParser()
        events = parser.feed(b"\xef\xbb\xbfdata: first\n\ndata: second\n\n")
        assert [e.payload for e in events] == ["first", "second"]

    def test_close_drops_partial_frame(self):
        parser = StreamingParser()
        assert parser.feed(b"data: x\n\ndata: unterminated") != []
        assert parser.close() == []
        assert parser.get_stats()["dropped_chars"] == len("data: unterminated")
