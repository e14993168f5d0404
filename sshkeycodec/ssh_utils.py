"""
Hand parsed keys to paramiko for authentication.

The codec decides what the key is; paramiko only receives key objects it
can use directly.
"""

import io
import paramiko

from .container import serialize_openssh_key
from .errors import SSHKeyParsingError
from .keytypes import KeyType
from .parser import parse_private_key as parse_key_data


def to_paramiko_key(key):
    """
    Convert a ParsedPrivateKey into a paramiko.PKey.

    Args:
        key: ParsedPrivateKey from the codec

    Returns:
        paramiko.PKey: Ed25519Key or ECDSAKey
    """
    if key.key_type is KeyType.ED25519:
        # Ed25519Key only loads from an OpenSSH container. No comment, so the
        # section always ends in 1..n padding.
        key_file = io.StringIO(serialize_openssh_key(key, comment=''))
        return paramiko.Ed25519Key.from_private_key(key_file)
    return paramiko.ECDSAKey(vals=(key.private_key, key.public_key))


def parse_private_key(key_content, passphrase=None):
    """
    Parse SSH private key content into a paramiko key.

    Accepts everything the codec accepts (OpenSSH, PEM EC/PKCS#8, raw
    Ed25519 bytes).

    Args:
        key_content: key text or bytes
        passphrase: optional passphrase

    Returns:
        paramiko.PKey: The parsed private key

    Raises:
        paramiko.ssh_exception.SSHException: If the key can't be used
    """
    try:
        key = parse_key_data(key_content, passphrase)
    except SSHKeyParsingError as e:
        raise paramiko.ssh_exception.SSHException(
            f"Unsupported key format: {e.message}"
        ) from e
    return to_paramiko_key(key)
