"""
PEM / PKCS#8 private keys (``BEGIN EC PRIVATE KEY``, ``BEGIN PRIVATE KEY``).

Decoding is delegated to cryptography; this module only decides which of
the supported key types the result is.
"""

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519
from cryptography.exceptions import UnsupportedAlgorithm

from .detect import as_bytes
from .errors import EncryptedPEMNotSupported, ParsingFailed
from .keytypes import KeyType, ParsedPrivateKey

# Tried in this order, first match wins
PEM_KEY_TYPES = (KeyType.P256, KeyType.P384, KeyType.P521)


def _load(data):
    try:
        return serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm):
        # TypeError: the PEM block is encrypted and no password was given
        return None


def parse_pem_key(data, passphrase=None):
    """
    Parse an unencrypted PEM EC or PKCS#8 private key.

    Supplying a passphrase fails immediately; encrypted PEM keys are not
    decrypted.
    """
    if passphrase:
        raise EncryptedPEMNotSupported()

    private_key = _load(as_bytes(data))

    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        for key_type in PEM_KEY_TYPES:
            if isinstance(private_key.curve, type(key_type.curve)):
                return ParsedPrivateKey(key_type, private_key)

    if isinstance(private_key, ed25519.Ed25519PrivateKey):
        return ParsedPrivateKey(KeyType.ED25519, private_key)

    raise ParsingFailed("Unable to parse PEM key. Ensure it's a valid P256, P384, P521 or Ed25519 key.")
