"""Key format sniffing."""

from enum import Enum

OPENSSH_MARKER = 'BEGIN OPENSSH PRIVATE KEY'
EC_MARKER = 'BEGIN EC PRIVATE KEY'
PKCS8_MARKER = 'BEGIN PRIVATE KEY'
RSA_MARKER = 'BEGIN RSA PRIVATE KEY'

RAW_KEY_SIZES = (32, 64)


class KeyFormat(Enum):
    PEM_EC = 'pem-ec'
    PEM_PKCS8 = 'pem-pkcs8'
    OPENSSH = 'openssh'
    PEM_RSA = 'pem-rsa'
    RAW = 'raw'
    UNKNOWN = 'unknown'


def as_bytes(data):
    if isinstance(data, str):
        # lone surrogates survive as bytes that are not valid UTF-8
        return data.encode('utf-8', 'surrogatepass')
    return bytes(data)


def decode_text(data):
    """Return ``data`` as text, or None if it isn't valid UTF-8."""
    try:
        return as_bytes(data).decode('utf-8')
    except UnicodeDecodeError:
        return None


def detect_format(data):
    """
    Classify raw key input. Checked in order, first match wins.

    Never raises: any byte sequence, including an empty one, maps to exactly
    one KeyFormat.
    """
    data = as_bytes(data)
    text = decode_text(data)

    if text is not None:
        if OPENSSH_MARKER in text:
            return KeyFormat.OPENSSH
        if EC_MARKER in text:
            return KeyFormat.PEM_EC
        if PKCS8_MARKER in text:
            return KeyFormat.PEM_PKCS8
        if RSA_MARKER in text:
            return KeyFormat.PEM_RSA

    if len(data) in RAW_KEY_SIZES:
        return KeyFormat.RAW

    return KeyFormat.UNKNOWN
