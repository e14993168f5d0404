"""
Per-key-type codecs.

Each supported key type knows how to read its private payload out of the
private section of an ``openssh-key-v1`` container and how to write it back.

Payload layouts (after the key-type label, which the container reads):

    ssh-ed25519:            string pubkey(32), string seed(32) || pubkey(32)
    ecdsa-sha2-nistpNNN:    string curve name, string Q (0x04||X||Y), mpint d

Curve arithmetic is left to the cryptography package.
"""

from enum import Enum

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519

from .audit_logger import log_debug
from .errors import (InvalidKeyData, KeyTypeMismatch, MalformedStructure,
                     MissingPrivateKeyBuffer, MissingPublicKeyBuffer,
                     ParsingFailed, UnsupportedKeyType)
from .wire import WireReader, WireWriter

ED25519_KEY_SIZE = 32
ED25519_PRIVATE_BLOB_SIZE = 64
UNCOMPRESSED_POINT_MARKER = 0x04


class KeyType(Enum):
    """Supported key types: (display name, SSH label, curve name, scalar size)."""
    ED25519 = ('Ed25519', 'ssh-ed25519', None, 32)
    P256 = ('P256', 'ecdsa-sha2-nistp256', 'nistp256', 32)
    P384 = ('P384', 'ecdsa-sha2-nistp384', 'nistp384', 48)
    P521 = ('P521', 'ecdsa-sha2-nistp521', 'nistp521', 66)

    def __init__(self, display_name, label, curve_name, scalar_size):
        self.display_name = display_name
        self.label = label
        self.curve_name = curve_name
        self.scalar_size = scalar_size

    @property
    def is_ecdsa(self):
        return self.curve_name is not None

    @property
    def curve(self):
        """cryptography curve instance, or None for Ed25519."""
        curve_class = _CURVES.get(self)
        return curve_class() if curve_class else None

    @property
    def point_size(self):
        """Size of an uncompressed public point including the 0x04 marker."""
        if not self.is_ecdsa:
            return ED25519_KEY_SIZE
        coordinate = (self.curve.key_size + 7) // 8
        return 1 + 2 * coordinate


_CURVES = {
    KeyType.P256: ec.SECP256R1,
    KeyType.P384: ec.SECP384R1,
    KeyType.P521: ec.SECP521R1,
}


def key_type_for(value):
    """
    Resolve a KeyType from a KeyType, SSH label, display name or curve name.

    Raises UnsupportedKeyType for anything else.
    """
    if isinstance(value, KeyType):
        return value
    if value:
        for key_type in KeyType:
            if value in (key_type.label, key_type.display_name, key_type.curve_name):
                return key_type
    raise UnsupportedKeyType(value)


def key_type_for_curve(curve):
    for key_type, curve_class in _CURVES.items():
        if isinstance(curve, curve_class):
            return key_type
    raise UnsupportedKeyType(getattr(curve, 'name', str(curve)))


class ParsedPrivateKey:
    """
    A successfully parsed private key.

    Holds a cryptography private key object tagged with its KeyType. Two
    instances are equal when their type and public key match. The repr never
    includes key material.
    """

    __slots__ = ('key_type', 'private_key', 'comment')

    def __init__(self, key_type, private_key, comment=''):
        self.key_type = key_type
        self.private_key = private_key
        self.comment = comment

    @property
    def label(self):
        return self.key_type.label

    @property
    def display_name(self):
        return self.key_type.display_name

    @property
    def public_key(self):
        return self.private_key.public_key()

    @property
    def public_bytes(self):
        """Raw public key (Ed25519) or uncompressed 0x04||X||Y point (ECDSA)."""
        if self.key_type is KeyType.ED25519:
            return self.public_key.public_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PublicFormat.Raw,
            )
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.X962,
            format=serialization.PublicFormat.UncompressedPoint,
        )

    @property
    def public_key_blob(self):
        return encode_public_blob(self.key_type, self.public_bytes)

    def private_bytes_raw(self):
        """Ed25519 seed, or the ECDSA scalar left-padded to the curve size."""
        if self.key_type is KeyType.ED25519:
            return self.private_key.private_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PrivateFormat.Raw,
                encryption_algorithm=serialization.NoEncryption(),
            )
        value = self.private_key.private_numbers().private_value
        return value.to_bytes(self.key_type.scalar_size, 'big')

    def __eq__(self, other):
        if not isinstance(other, ParsedPrivateKey):
            return NotImplemented
        return self.key_type is other.key_type and self.public_bytes == other.public_bytes

    def __hash__(self):
        return hash((self.key_type, self.public_bytes))

    def __repr__(self):
        return f'<ParsedPrivateKey {self.display_name}>'


def generate_private_key(key_type=KeyType.ED25519):
    """Create a fresh key of the given type."""
    key_type = key_type_for(key_type)
    if key_type is KeyType.ED25519:
        return ParsedPrivateKey(key_type, ed25519.Ed25519PrivateKey.generate())
    return ParsedPrivateKey(key_type, ec.generate_private_key(key_type.curve))


def from_cryptography_key(private_key, comment=''):
    """Wrap an already loaded cryptography private key."""
    if isinstance(private_key, ed25519.Ed25519PrivateKey):
        return ParsedPrivateKey(KeyType.ED25519, private_key, comment)
    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        return ParsedPrivateKey(key_type_for_curve(private_key.curve), private_key, comment)
    raise UnsupportedKeyType(type(private_key).__name__)


def _ed25519_from_seed(seed):
    try:
        return ed25519.Ed25519PrivateKey.from_private_bytes(seed)
    except ValueError as e:
        raise ParsingFailed(f"Failed to create Ed25519 key from raw bytes: {e}") from e


def ed25519_from_raw(data):
    """
    Build an Ed25519 key from raw bytes.

    Accepts a 32-byte seed, or 64 bytes where the public key is appended to
    the seed; only the first 32 bytes are used.
    """
    data = bytes(data)
    if len(data) not in (ED25519_KEY_SIZE, ED25519_PRIVATE_BLOB_SIZE):
        raise InvalidKeyData(
            f"Raw key must be {ED25519_KEY_SIZE} or {ED25519_PRIVATE_BLOB_SIZE} bytes, got {len(data)}")
    seed = data[:ED25519_KEY_SIZE]
    return ParsedPrivateKey(KeyType.ED25519, _ed25519_from_seed(seed))


def _decode_ed25519(reader):
    public = reader.read_length_prefixed()
    if public is None:
        raise MissingPublicKeyBuffer()

    private = reader.read_length_prefixed()
    if private is None:
        raise MissingPrivateKeyBuffer()

    if len(private) != ED25519_PRIVATE_BLOB_SIZE:
        raise InvalidKeyData(
            f"Invalid key size: expected {ED25519_PRIVATE_BLOB_SIZE} bytes, got {len(private)} bytes")

    key = ParsedPrivateKey(KeyType.ED25519, _ed25519_from_seed(private[:ED25519_KEY_SIZE]))

    # The seed alone defines the pair, so a disagreeing copy of the public
    # key is tolerated rather than rejected.
    derived = key.public_bytes
    if public != derived or private[ED25519_KEY_SIZE:] != derived:
        log_debug("Ed25519 public key copy does not match the seed, using the seed")

    return key


def _decode_ecdsa(key_type, reader):
    curve_name = reader.read_string()
    if curve_name is None:
        raise MalformedStructure("Missing curve name")
    if curve_name != key_type.curve_name:
        raise KeyTypeMismatch(expected=key_type.curve_name, actual=curve_name)

    point = reader.read_length_prefixed()
    if point is None:
        raise MissingPublicKeyBuffer()

    scalar = reader.read_length_prefixed()
    if scalar is None:
        raise MissingPrivateKeyBuffer()

    # mpint: a leading zero byte keeps the sign bit clear
    scalar = scalar.lstrip(b'\x00')
    if len(scalar) > key_type.scalar_size:
        raise InvalidKeyData(
            f"Invalid key size: expected {key_type.scalar_size} bytes, got {len(scalar)} bytes")

    try:
        private_key = ec.derive_private_key(int.from_bytes(scalar, 'big'), key_type.curve)
    except ValueError as e:
        raise ParsingFailed(f"Invalid {key_type.display_name} private scalar") from e

    key = ParsedPrivateKey(key_type, private_key)
    if point != key.public_bytes:
        log_debug("ECDSA public point does not match the private scalar, using the scalar",
                  key_type=key_type.display_name)
    return key


def decode_private_key(label, reader):
    """
    Decode the key payload following ``label`` in an OpenSSH private section.

    ``reader`` is left positioned after the payload (at the comment).
    """
    key_type = key_type_for_label(label)
    if key_type is KeyType.ED25519:
        return _decode_ed25519(reader)
    return _decode_ecdsa(key_type, reader)


def key_type_for_label(label):
    for key_type in KeyType:
        if key_type.label == label:
            return key_type
    raise UnsupportedKeyType(label)


def encode_private_key(key, writer):
    """Write the payload for ``key`` in the layout decode_private_key reads."""
    public = key.public_bytes
    if key.key_type is KeyType.ED25519:
        seed = key.private_bytes_raw()
        n = writer.write_length_prefixed(public)
        return n + writer.write_composite(lambda w: w.write_bytes(seed + public))

    n = writer.write_string(key.key_type.curve_name)
    n += writer.write_length_prefixed(public)
    return n + writer.write_mpint(key.private_key.private_numbers().private_value)


def encode_public_blob(key_type, public_bytes):
    """Wire-encoded public key as used in authorized_keys and containers."""
    key_type = key_type_for(key_type)
    writer = WireWriter()
    writer.write_string(key_type.label)
    if key_type.is_ecdsa:
        writer.write_string(key_type.curve_name)
    writer.write_length_prefixed(public_bytes)
    return writer.getvalue()


def decode_public_blob(blob):
    """Read a wire public key blob back into (KeyType, public bytes)."""
    reader = WireReader(blob)
    label = reader.read_string()
    if label is None:
        raise MalformedStructure("Missing key type in public key")
    key_type = key_type_for_label(label)

    if key_type.is_ecdsa:
        curve_name = reader.read_string()
        if curve_name != key_type.curve_name:
            raise KeyTypeMismatch(expected=key_type.curve_name, actual=curve_name)

    public = reader.read_length_prefixed()
    if public is None:
        raise MissingPublicKeyBuffer()

    if key_type is KeyType.ED25519:
        if len(public) != ED25519_KEY_SIZE:
            raise InvalidKeyData(
                f"Invalid key size: expected {ED25519_KEY_SIZE} bytes, got {len(public)} bytes")
    else:
        try:
            ec.EllipticCurvePublicKey.from_encoded_point(key_type.curve, public)
        except ValueError as e:
            raise ParsingFailed(f"Invalid {key_type.display_name} public point") from e

    return key_type, public
