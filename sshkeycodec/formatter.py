"""
OpenSSH public key lines (``authorized_keys`` format).

    ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAI... comment
    ecdsa-sha2-nistp256 AAAAE2VjZHNhLXNoYTItbmlzdHAyNTYAAAAIbmlzdHAyNTYAAABBB... comment
"""

import base64
import binascii
import hashlib

from .errors import InvalidBase64Payload, InvalidKeyData, KeyTypeMismatch, MalformedStructure
from .keytypes import (UNCOMPRESSED_POINT_MARKER, KeyType, decode_public_blob,
                       encode_public_blob, key_type_for)


class PublicKeyLine:
    """A single authorized_keys entry: type label, wire blob, comment."""

    def __init__(self, key_type, blob, comment=''):
        self.key_type = key_type_for(key_type)
        self.blob = blob
        self.comment = comment or ''

    @property
    def label(self):
        return self.key_type.label

    @property
    def blob_base64(self):
        return base64.b64encode(self.blob).decode('ascii')

    @property
    def fingerprint(self):
        return fingerprint_sha256(self.blob)

    def __str__(self):
        parts = [self.label, self.blob_base64]
        if self.comment:
            parts.append(self.comment)
        return ' '.join(parts)

    def __eq__(self, other):
        if not isinstance(other, PublicKeyLine):
            return NotImplemented
        return (self.key_type, self.blob, self.comment) == (other.key_type, other.blob, other.comment)

    def __repr__(self):
        return f'<PublicKeyLine {self.label} {self.fingerprint}>'


def fingerprint_sha256(blob):
    """OpenSSH-style fingerprint: ``SHA256:`` + unpadded base64 digest."""
    digest = hashlib.sha256(blob).digest()
    return 'SHA256:' + base64.b64encode(digest).decode('ascii').rstrip('=')


def _uncompressed_point(key_bytes, key_type):
    """Add the 0x04 marker to a bare X||Y point; pass a marked point through."""
    key_bytes = bytes(key_bytes)
    if len(key_bytes) == key_type.point_size - 1:
        return bytes([UNCOMPRESSED_POINT_MARKER]) + key_bytes
    if len(key_bytes) == key_type.point_size and key_bytes[0] == UNCOMPRESSED_POINT_MARKER:
        return key_bytes
    raise InvalidKeyData(
        f"{key_type.display_name} public key must be {key_type.point_size - 1} bytes of X||Y "
        f"or a {key_type.point_size} byte uncompressed point, got {len(key_bytes)} bytes"
    )


def format_ed25519_public_key(key_bytes, comment=''):
    """Format a raw 32-byte Ed25519 public key as an OpenSSH line."""
    line = PublicKeyLine(KeyType.ED25519, encode_public_blob(KeyType.ED25519, bytes(key_bytes)), comment)
    return str(line)


def format_ecdsa_public_key(key_bytes, curve, comment=''):
    """
    Format an ECDSA public key as an OpenSSH line.

    ``curve`` is ``nistp256``, ``nistp384`` or ``nistp521``. ``key_bytes`` may
    be bare X||Y coordinates; the uncompressed point marker is added, since
    other SSH tools reject points without it.
    """
    key_type = key_type_for(curve)
    if not key_type.is_ecdsa:
        raise KeyTypeMismatch(expected='ECDSA curve', actual=curve)
    point = _uncompressed_point(key_bytes, key_type)
    return str(PublicKeyLine(key_type, encode_public_blob(key_type, point), comment))


def format_public_key(key_type, key_bytes, comment=''):
    """Dispatch on a KeyType, SSH label, display name or curve name."""
    key_type = key_type_for(key_type)
    if key_type is KeyType.ED25519:
        return format_ed25519_public_key(key_bytes, comment)
    return format_ecdsa_public_key(key_bytes, key_type.curve_name, comment)


def public_key_line(key, comment=None):
    """PublicKeyLine for a ParsedPrivateKey; defaults to the key's own comment."""
    if comment is None:
        comment = key.comment
    return PublicKeyLine(key.key_type, key.public_key_blob, comment)


def parse_public_key_line(line):
    """Parse and validate an authorized_keys line."""
    parts = line.strip().split(None, 2)
    if len(parts) < 2:
        raise MalformedStructure("Public key line needs a key type and a base64 blob")
    label, blob_b64 = parts[0], parts[1]
    comment = parts[2] if len(parts) > 2 else ''

    try:
        blob = base64.b64decode(blob_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidBase64Payload() from e

    key_type, _ = decode_public_blob(blob)
    if key_type.label != label:
        raise KeyTypeMismatch(expected=label, actual=key_type.label)
    return PublicKeyLine(key_type, blob, comment)
