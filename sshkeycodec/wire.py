"""
SSH wire encoding.

Length-prefixed strings and buffers (RFC 4251 section 5) as used by the
``openssh-key-v1`` container and by the per-key-type payloads inside it.

Reads are fallible: on truncated or undecodable input they return None and
leave the cursor where it was. They never raise IndexError.
"""

import struct

_UINT32 = struct.Struct('>I')


class WireReader:
    """Cursor over an immutable byte sequence."""

    def __init__(self, data):
        self._data = bytes(data)
        self._pos = 0

    @property
    def remaining(self):
        return len(self._data) - self._pos

    @property
    def position(self):
        return self._pos

    def rest(self):
        """Return all unread bytes and move the cursor to the end."""
        data = self._data[self._pos:]
        self._pos = len(self._data)
        return data

    def read_bytes(self, length):
        if length < 0 or length > self.remaining:
            return None
        start = self._pos
        self._pos += length
        return self._data[start:self._pos]

    def read_uint32(self):
        if self.remaining < 4:
            return None
        (value,) = _UINT32.unpack_from(self._data, self._pos)
        self._pos += 4
        return value

    def read_length_prefixed(self):
        start = self._pos
        length = self.read_uint32()
        if length is None:
            return None
        data = self.read_bytes(length)
        if data is None:
            self._pos = start
        return data

    def read_string(self):
        start = self._pos
        data = self.read_length_prefixed()
        if data is None:
            return None
        try:
            return data.decode('utf-8')
        except UnicodeDecodeError:
            self._pos = start
            return None

    def read_buffer(self):
        """Read a length-prefixed section as its own reader."""
        data = self.read_length_prefixed()
        if data is None:
            return None
        return WireReader(data)


class WireWriter:
    """Growable output buffer for SSH wire values."""

    def __init__(self):
        self._buf = bytearray()

    def __len__(self):
        return len(self._buf)

    def getvalue(self):
        return bytes(self._buf)

    def write_bytes(self, data):
        self._buf += data
        return len(data)

    def write_uint32(self, value):
        self._buf += _UINT32.pack(value)
        return 4

    def write_length_prefixed(self, data):
        data = bytes(data)
        return self.write_uint32(len(data)) + self.write_bytes(data)

    def write_string(self, value):
        return self.write_length_prefixed(value.encode('utf-8'))

    def write_mpint(self, value):
        if value < 0:
            raise ValueError("mpint must be non-negative")
        if value == 0:
            return self.write_length_prefixed(b'')
        # extra byte keeps the sign bit clear
        length = value.bit_length() // 8 + 1
        return self.write_length_prefixed(value.to_bytes(length, 'big'))

    def write_composite(self, closure):
        """
        Write a nested length-prefixed section.

        ``closure`` receives a fresh writer and fills it; the section's length
        and bytes are then appended here. Returns bytes written, including the
        4-byte length.
        """
        inner = WireWriter()
        closure(inner)
        return self.write_length_prefixed(inner.getvalue())
