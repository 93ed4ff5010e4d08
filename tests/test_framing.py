"""Tests for bluesky_client.framing module."""

import json

from bluesky_client.framing import FrameAssembler, split_documents


class TestSplitDocuments:
    def test_single_document(self):
        assert split_documents('{"a": 1}') == ['{"a": 1}']

    def test_glued_documents(self):
        assert split_documents('{"a": 1}{"b": 2}') == ['{"a": 1}', '{"b": 2}']

    def test_whitespace_separated_documents(self):
        assert split_documents('{"a": 1}\n  {"b": 2}\n') == ['{"a": 1}', '{"b": 2}']

    def test_brace_pair_inside_string_is_not_a_boundary(self):
        text = '{"text": "look }{ here"}'
        assert split_documents(text) == [text]

    def test_nested_objects(self):
        text = '{"commit": {"record": {"reply": {}}}}{"did": "x"}'
        parts = split_documents(text)
        assert len(parts) == 2
        assert json.loads(parts[0])["commit"]["record"] == {"reply": {}}

    def test_malformed_remainder_is_one_fragment(self):
        parts = split_documents('{"a": 1}{"b": ')
        assert parts == ['{"a": 1}', '{"b":']

    def test_empty(self):
        assert split_documents("") == []
        assert split_documents("  \n") == []


class TestFrameAssembler:
    def test_partial_frames_are_held(self):
        assembler = FrameAssembler()
        assert assembler.feed(b'{"did": "did:plc:a"', final=False) == []
        assert assembler.pending == len(b'{"did": "did:plc:a"')

    def test_final_frame_flushes_in_order(self):
        assembler = FrameAssembler()
        assembler.feed(b'{"n": 1}{"n"', final=False)
        documents = assembler.feed(b': 2}{"n": 3}', final=True)

        assert [json.loads(d)["n"] for d in documents] == [1, 2, 3]
        assert assembler.pending == 0

    def test_buffer_never_spans_messages(self):
        assembler = FrameAssembler()
        assert assembler.feed(b'{"n": 1}', final=True) == ['{"n": 1}']
        assert assembler.feed(b'{"n": 2}', final=True) == ['{"n": 2}']

    def test_multibyte_character_split_across_frames(self):
        data = '{"text": "héllo"}'.encode()
        cut = data.index(b"\xa9")
        assembler = FrameAssembler()
        assembler.feed(data[:cut], final=False)
        documents = assembler.feed(data[cut:], final=True)
        assert json.loads(documents[0])["text"] == "héllo"

    def test_invalid_utf8_is_replaced(self):
        assembler = FrameAssembler()
        documents = assembler.feed(b'{"text": "\xff"}', final=True)
        assert json.loads(documents[0])["text"] == "�"

    def test_reset_drops_partial_message(self):
        assembler = FrameAssembler()
        assembler.feed(b'{"n": 1', final=False)
        assembler.reset()
        assert assembler.pending == 0
        assert assembler.feed(b'{"n": 2}', final=True) == ['{"n": 2}']
