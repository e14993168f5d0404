"""
Encrypted secret store for SSH key material.

Private key bytes and remembered passphrases are written to disk with Fernet
(AES-128-CBC with HMAC) authenticated encryption.

Key derivation:
- Master secret is config.SECRET_KEY
- Per-user keys derived from master + user_id (prevents cross-user access)
"""

import base64
import os
from functools import lru_cache
from pathlib import Path
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
import config
from .audit_logger import log_info, log_warning, log_error

# Salt for key derivation (fixed per installation)
_DERIVATION_SALT = b'sshkeycodec_secret_store_v1'

# Derived Fernet instances kept, most recently used first
_FERNET_CACHE_SIZE = 256


def _secret_key() -> str:
    """Return the store master secret, refusing to run without one in production."""
    if config.SECRET_KEY:
        return config.SECRET_KEY
    if config.DEBUG:
        return config.DEBUG_SECRET_KEY
    raise RuntimeError(
        "SECURITY ERROR: SECRET_KEY environment variable is required in production. "
        "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
    )


def _derive_key(secret: str, user_id: str, iterations: int) -> bytes:
    """
    Derive a Fernet-compatible encryption key from secret and user_id.

    Uses PBKDF2 with SHA256.

    Args:
        secret: The application secret key
        user_id: User identifier (ensures keys are user-specific)
        iterations: PBKDF2 iteration count

    Returns:
        urlsafe base64 of a 32-byte key, suitable for Fernet
    """
    combined = f"{secret}:{user_id}".encode()

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=_DERIVATION_SALT,
        iterations=iterations,
    )

    key = kdf.derive(combined)
    return base64.urlsafe_b64encode(key)


@lru_cache(maxsize=_FERNET_CACHE_SIZE)
def _fernet_for(secret: str, user_id: str, iterations: int) -> Fernet:
    return Fernet(_derive_key(secret, user_id, iterations))


def get_user_fernet(user_id: str) -> Fernet:
    """
    Get a Fernet instance for a specific user.

    Derivation is slow, so the most recently used instances are kept per
    (secret, user, iterations).
    """
    return _fernet_for(_secret_key(), str(user_id), config.KDF_ITERATIONS)


def encrypt_secret(user_id: str, data: bytes) -> bytes:
    """
    Encrypt secret bytes for storage.

    Args:
        user_id: User identifier
        data: Key bytes or UTF-8 passphrase

    Returns:
        Encrypted bytes (includes authentication tag)
    """
    if isinstance(data, str):
        data = data.encode('utf-8')
    return get_user_fernet(user_id).encrypt(bytes(data))


def decrypt_secret(user_id: str, encrypted_data: bytes) -> bytes:
    """
    Decrypt secret bytes from storage.

    Raises:
        InvalidToken: If decryption fails (wrong key or tampered data)
    """
    return get_user_fernet(user_id).decrypt(encrypted_data)


def is_encrypted(data: bytes) -> bool:
    """
    Check if data appears to be Fernet-encrypted.

    Distinguishes between:
    - PEM/OpenSSH armored keys (start with '-----BEGIN')
    - Fernet-encrypted data (base64 urlsafe, specific structure)
    """
    if isinstance(data, str):
        data = data.encode()

    if data.strip().startswith(b'-----BEGIN'):
        return False

    if len(data) < 50:
        return False

    try:
        decoded = base64.urlsafe_b64decode(data)
    except ValueError:
        return False

    # Fernet format: version (1) + timestamp (8) + IV (16) + ciphertext + HMAC (32)
    # Minimum size: 1 + 8 + 16 + 16 + 32 = 73 bytes, version byte 0x80
    return len(decoded) >= 73 and decoded[0] == 0x80


def _write_private_file(path: Path, data: bytes):
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, 'wb') as f:
        f.write(data)
    os.chmod(path, 0o600)


def migrate_secret_to_encrypted(user_id: str, path: str) -> bool:
    """
    Migrate an unencrypted secret file to encrypted format.

    Reads the plaintext, encrypts it, and writes back. A backup with .bak
    extension is kept until the encrypted write succeeds.

    Returns:
        True if migration successful, False otherwise
    """
    try:
        path = Path(path)
        if not path.exists():
            log_warning("Secret file not found for migration", path=str(path))
            return False

        content = path.read_bytes()

        if is_encrypted(content):
            log_info("Secret already encrypted", path=str(path))
            return True

        encrypted = encrypt_secret(user_id, content)

        backup_path = Path(str(path) + '.bak')
        _write_private_file(backup_path, content)
        _write_private_file(path, encrypted)
        backup_path.unlink(missing_ok=True)

        log_info("Secret encrypted successfully", path=str(path), user_id=user_id)
        return True

    except (OSError, RuntimeError) as e:
        log_error("Failed to encrypt secret", path=str(path), error=str(e))
        return False


def read_secret(user_id: str, path: str) -> bytes:
    """
    Read and decrypt a secret file.

    Legacy plaintext files are returned as-is and migrated to encrypted format.

    Raises:
        FileNotFoundError: If the file doesn't exist
        InvalidToken: If decryption fails
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Secret file not found: {path}")

    content = path.read_bytes()

    if is_encrypted(content):
        return decrypt_secret(user_id, content)

    log_warning("Found unencrypted legacy secret, migrating", path=str(path))
    migrate_secret_to_encrypted(user_id, str(path))
    return content


def write_secret(user_id: str, path: str, data: bytes) -> bool:
    """
    Encrypt and write a secret file with 0600 permissions.

    Returns:
        True if successful
    """
    try:
        _write_private_file(Path(path), encrypt_secret(user_id, data))
        return True
    except (OSError, RuntimeError) as e:
        log_error("Failed to write encrypted secret", path=str(path), error=str(e))
        return False


__all__ = [
    'InvalidToken', 'encrypt_secret', 'decrypt_secret', 'is_encrypted',
    'read_secret', 'write_secret', 'migrate_secret_to_encrypted', 'get_user_fernet',
]
