"""
Private key parsing entry points.

    key = parse_private_key(data, passphrase=None)

``data`` may be PEM text, an OpenSSH private key, or raw Ed25519 bytes. The
format is detected once; after that the matching decoder either succeeds or
raises, with no fallback to another interpretation.
"""

from .audit_logger import log_debug
from .container import parse_openssh_key
from .detect import KeyFormat, as_bytes, decode_text, detect_format
from .errors import RSANotSupported, SSHKeyParsingError, UnknownKeyFormat
from .keytypes import KeyType, ed25519_from_raw
from .pem import parse_pem_key

# Content hints used when a key can't be fully parsed
_TYPE_HINTS = (
    ('Ed25519', KeyType.ED25519),
    ('prime256v1', KeyType.P256),
    ('secp384r1', KeyType.P384),
    ('secp521r1', KeyType.P521),
)


def parse_private_key(data, passphrase=None):
    """
    Parse private key material into a ParsedPrivateKey.

    An empty passphrase counts as no passphrase. Raises SSHKeyParsingError.
    """
    data = as_bytes(data)
    passphrase = passphrase or None
    key_format = detect_format(data)
    log_debug("Detected key format", format=key_format.value)

    if key_format in (KeyFormat.PEM_EC, KeyFormat.PEM_PKCS8):
        return parse_pem_key(data, passphrase)
    if key_format is KeyFormat.RAW:
        return ed25519_from_raw(data)
    if key_format is KeyFormat.OPENSSH:
        return parse_openssh_key(data, passphrase)
    if key_format is KeyFormat.PEM_RSA:
        raise RSANotSupported()
    raise UnknownKeyFormat()


def validate_key_data(data):
    """
    Cheap pre-import check without decoding the key.

    Returns:
        tuple: (is_valid: bool, error: str or None)
    """
    key_format = detect_format(data)

    if key_format in (KeyFormat.PEM_EC, KeyFormat.PEM_PKCS8, KeyFormat.RAW):
        return True, None

    if key_format is KeyFormat.OPENSSH:
        text = decode_text(data)
        if text is None:
            return False, "Invalid key encoding"
        if 'ENCRYPTED' in text:
            return False, "Encrypted OpenSSH keys require a passphrase"
        return True, None

    if key_format is KeyFormat.PEM_RSA:
        return False, RSANotSupported.default_message

    return False, "Unknown key format. Supported: PEM (ECDSA), OpenSSH, raw bytes (Ed25519)"


def detect_key_type(data, passphrase=None):
    """
    Best-effort key type display name (``Ed25519``, ``P256``, ...), or None.

    Parses the key when possible and falls back to textual hints.
    """
    try:
        return parse_private_key(data, passphrase).display_name
    except SSHKeyParsingError:
        pass

    text = decode_text(data)
    if text is not None:
        for hint, key_type in _TYPE_HINTS:
            if hint in text:
                return key_type.display_name
    return None
