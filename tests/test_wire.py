"""Tests for SSH wire encoding."""

import pytest


class TestWireReader:
    """Tests for fallible length-prefixed reads."""

    def test_read_string(self):
        from sshkeycodec.wire import WireReader
        reader = WireReader(b'\x00\x00\x00\x04none')
        assert reader.read_string() == 'none'
        assert reader.remaining == 0

    def test_read_length_prefixed_raw_bytes(self):
        from sshkeycodec.wire import WireReader
        reader = WireReader(b'\x00\x00\x00\x02\xff\x00rest')
        assert reader.read_length_prefixed() == b'\xff\x00'
        assert reader.rest() == b'rest'

    def test_declared_length_exceeds_remaining(self):
        from sshkeycodec.wire import WireReader
        reader = WireReader(b'\x00\x00\x00\x10short')
        assert reader.read_string() is None
        assert reader.read_length_prefixed() is None
        # failed reads leave the cursor alone
        assert reader.position == 0

    def test_invalid_utf8_string(self):
        from sshkeycodec.wire import WireReader
        reader = WireReader(b'\x00\x00\x00\x02\xc3\x28')
        assert reader.read_string() is None
        assert reader.position == 0
        assert reader.read_length_prefixed() == b'\xc3\x28'

    def test_truncated_length(self):
        from sshkeycodec.wire import WireReader
        reader = WireReader(b'\x00\x00')
        assert reader.read_uint32() is None
        assert reader.read_string() is None

    def test_empty_input(self):
        from sshkeycodec.wire import WireReader
        reader = WireReader(b'')
        assert reader.read_uint32() is None
        assert reader.read_bytes(1) is None
        assert reader.read_buffer() is None
        assert reader.read_bytes(0) == b''

    def test_read_buffer_is_independent(self):
        from sshkeycodec.wire import WireReader
        reader = WireReader(b'\x00\x00\x00\x08\x00\x00\x00\x01\x00\x00\x00\x02tail')
        inner = reader.read_buffer()
        assert inner.read_uint32() == 1
        assert inner.read_uint32() == 2
        assert inner.read_uint32() is None
        assert reader.rest() == b'tail'


class TestWireWriter:
    """Tests for wire output."""

    def test_write_string(self):
        from sshkeycodec.wire import WireWriter
        writer = WireWriter()
        assert writer.write_string('ssh-ed25519') == 15
        assert writer.getvalue() == b'\x00\x00\x00\x0bssh-ed25519'

    def test_write_length_prefixed(self):
        from sshkeycodec.wire import WireWriter
        writer = WireWriter()
        writer.write_length_prefixed(b'\x01\x02')
        assert writer.getvalue() == b'\x00\x00\x00\x02\x01\x02'

    def test_write_composite_backfills_length(self):
        from sshkeycodec.wire import WireWriter
        writer = WireWriter()
        writer.write_uint32(7)

        def body(inner):
            inner.write_string('abc')
            inner.write_bytes(b'\xff')

        written = writer.write_composite(body)
        assert written == 4 + 8
        assert writer.getvalue() == (b'\x00\x00\x00\x07' + b'\x00\x00\x00\x08'
                                     + b'\x00\x00\x00\x03abc\xff')

    def test_write_empty_composite(self):
        from sshkeycodec.wire import WireWriter
        writer = WireWriter()
        writer.write_composite(lambda inner: None)
        assert writer.getvalue() == b'\x00\x00\x00\x00'

    @pytest.mark.parametrize('value, encoded', [
        (0, b'\x00\x00\x00\x00'),
        (0x7f, b'\x00\x00\x00\x01\x7f'),
        (0x80, b'\x00\x00\x00\x02\x00\x80'),
        (0x1234, b'\x00\x00\x00\x02\x12\x34'),
    ])
    def test_write_mpint(self, value, encoded):
        from sshkeycodec.wire import WireWriter
        writer = WireWriter()
        writer.write_mpint(value)
        assert writer.getvalue() == encoded

    def test_write_negative_mpint_rejected(self):
        from sshkeycodec.wire import WireWriter
        with pytest.raises(ValueError):
            WireWriter().write_mpint(-1)
