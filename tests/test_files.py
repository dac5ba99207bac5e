"""
Tests for encrypt_file / decrypt_file and delivery sinks.
"""

import asyncio
import logging
import os

import pytest

from file_envelope import (
    DEFAULT_FILE_NAME,
    DEFAULT_MIME_TYPE,
    DecryptionFailedError,
    DirectorySink,
    EmptyInputError,
    MemorySink,
    PayloadTooLargeError,
    StorageError,
    decode,
    decrypt_file,
    encode,
    encrypt_file,
)
from file_envelope.delivery import safe_file_name


class TestEncryptFile:
    async def test_from_bytes(self):
        envelope = await encrypt_file(b"in memory")
        assert decode(envelope) == b"in memory"

    async def test_from_path(self, tmp_path):
        source = tmp_path / "report.pdf"
        source.write_bytes(b"%PDF-1.7 test")
        envelope = await encrypt_file(source)
        assert decode(envelope) == b"%PDF-1.7 test"

    async def test_from_str_path(self, tmp_path):
        source = tmp_path / "a.txt"
        source.write_bytes(b"abc")
        assert decode(await encrypt_file(str(source))) == b"abc"

    async def test_oversized_file_is_not_read(self, tmp_path, monkeypatch):
        source = tmp_path / "big.bin"
        source.write_bytes(b"x" * 11)

        async def fail(*args, **kwargs):
            raise AssertionError("file must not be read")

        monkeypatch.setattr(asyncio, "to_thread", fail)
        with pytest.raises(PayloadTooLargeError):
            await encrypt_file(source, max_size=10)

    async def test_missing_file(self, tmp_path):
        with pytest.raises(StorageError):
            await encrypt_file(tmp_path / "missing.bin")

    async def test_concurrent_calls_are_independent(self):
        payloads = [bytes([i]) * (i + 1) for i in range(20)]
        envelopes = await asyncio.gather(*(encrypt_file(p) for p in payloads))
        assert len(set(envelopes)) == len(payloads)
        assert [decode(e) for e in envelopes] == payloads


class TestDecryptFile:
    def test_delivers_to_memory_sink(self):
        sink = MemorySink()
        delivered = decrypt_file(encode(b"hello"), "hello.txt", "text/plain", sink)

        assert delivered.data == b"hello"
        assert delivered.name == "hello.txt"
        assert delivered.mime_type == "text/plain"
        assert delivered.size == 5
        assert sink.files == [delivered]

    def test_defaults_for_name_and_type(self):
        sink = MemorySink()
        delivered = decrypt_file(encode(b"x"), None, "", sink)
        assert delivered.name == DEFAULT_FILE_NAME
        assert delivered.mime_type == DEFAULT_MIME_TYPE

    def test_malformed_envelope_keeps_its_type(self, caplog):
        sink = MemorySink()
        with caplog.at_level(logging.ERROR, logger="file_envelope"):
            with pytest.raises(EmptyInputError):
                decrypt_file("", "a.txt", "text/plain", sink)
        assert sink.files == []
        assert "No data provided for decryption" in caplog.text

    def test_unexpected_sink_failure_becomes_decryption_failed(self):
        class BrokenSink(MemorySink):
            def deliver(self, data, name, mime_type):
                raise RuntimeError("disk on fire")

        with pytest.raises(DecryptionFailedError, match="disk on fire"):
            decrypt_file(encode(b"x"), "a", "b", BrokenSink())


class TestDirectorySink:
    def test_writes_file(self, tmp_path):
        sink = DirectorySink(tmp_path)
        delivered = sink.deliver(b"content", "notes.txt", "text/plain")

        assert delivered.path == tmp_path / "notes.txt"
        assert delivered.path.read_bytes() == b"content"
        assert delivered.size == 7

    def test_temporary_file_released(self, tmp_path):
        DirectorySink(tmp_path).deliver(b"content", "notes.txt", None)
        assert [p.name for p in tmp_path.iterdir()] == ["notes.txt"]

    def test_does_not_overwrite(self, tmp_path):
        sink = DirectorySink(tmp_path)
        first = sink.deliver(b"1", "a.txt", None)
        second = sink.deliver(b"2", "a.txt", None)
        third = sink.deliver(b"3", "a.txt", None)

        assert first.name == "a.txt"
        assert second.name == "a (1).txt"
        assert third.name == "a (2).txt"
        assert second.path.read_bytes() == b"2"

    def test_concurrent_delivery_of_same_name_keeps_both(self, tmp_path, monkeypatch):
        sink = DirectorySink(tmp_path)
        real_replace = os.replace
        interleaved = []
        started = []

        def replace_after_other_delivery(src, dst):
            if not started:
                started.append(True)
                interleaved.append(sink.deliver(b"other", "a.txt", None))
            real_replace(src, dst)

        monkeypatch.setattr("file_envelope.delivery.os.replace", replace_after_other_delivery)
        first = sink.deliver(b"first", "a.txt", None)

        assert sorted(p.name for p in tmp_path.iterdir()) == ["a (1).txt", "a.txt"]
        assert first.path.read_bytes() == b"first"
        assert interleaved[0].path.read_bytes() == b"other"

    def test_failed_save_leaves_nothing_behind(self, tmp_path, monkeypatch):
        def fail(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("file_envelope.delivery.os.replace", fail)

        with pytest.raises(StorageError, match="disk full"):
            DirectorySink(tmp_path).deliver(b"content", "notes.txt", None)
        assert list(tmp_path.iterdir()) == []

    def test_strips_directories_from_name(self, tmp_path):
        delivered = DirectorySink(tmp_path).deliver(b"x", "../../etc/passwd", None)
        assert delivered.path == tmp_path / "passwd"

    def test_creates_directory(self, tmp_path):
        target = tmp_path / "downloads" / "nested"
        delivered = DirectorySink(target).deliver(b"x", None, None)
        assert delivered.path == target / DEFAULT_FILE_NAME

    def test_end_to_end_with_decrypt_file(self, tmp_path):
        payload = bytes(range(256)) * 10
        delivered = decrypt_file(
            encode(payload), "data.bin", None, DirectorySink(tmp_path)
        )
        assert delivered.path.read_bytes() == payload
        assert delivered.mime_type == DEFAULT_MIME_TYPE


@pytest.mark.parametrize(
    "name,expected",
    [
        ("report.pdf", "report.pdf"),
        ("dir/report.pdf", "report.pdf"),
        ("C:\\Users\\me\\report.pdf", "report.pdf"),
        ("", DEFAULT_FILE_NAME),
        (None, DEFAULT_FILE_NAME),
        ("..", DEFAULT_FILE_NAME),
    ],
)
def test_safe_file_name(name, expected):
    assert safe_file_name(name) == expected
