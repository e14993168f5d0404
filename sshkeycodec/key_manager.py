import json
import os
import re
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from threading import Lock
import config
from .audit_logger import (log_info, log_warning, log_error, log_debug,
                           log_key_import, log_key_generate, log_key_delete,
                           log_public_key_export, log_private_key_export)
from . import key_encryption
from .container import serialize_openssh_key
from .errors import SSHKeyParsingError
from .formatter import public_key_line
from .keytypes import generate_private_key, key_type_for
from .detect import as_bytes
from .parser import parse_private_key, validate_key_data

PLACEHOLDER_MARKER = 'PLACEHOLDER'

_USER_ID_RE = re.compile(r'^[A-Za-z0-9_-]{1,64}$')
_keys_lock = Lock()


def get_user_keys_dir(user_id, create=False):
    """
    Get the keys directory for a specific user, or None for an invalid id.

    The directory is only created when create is set; read paths never touch
    the filesystem for unknown users.
    """
    user_id = str(user_id)
    if not _USER_ID_RE.match(user_id):
        return None
    keys_dir = config.DATA_DIR / 'users' / f"user_{user_id}" / 'keys'
    if create:
        keys_dir.mkdir(parents=True, exist_ok=True)
        os.chmod(keys_dir, 0o700)
    return keys_dir


def get_user_keys_file(user_id, create=False):
    """Get the keys metadata file path for a specific user."""
    keys_dir = get_user_keys_dir(user_id, create=create)
    if not keys_dir:
        return None
    return keys_dir / 'keys.json'


def load_keys(user_id):
    """Load all SSH key metadata for a specific user."""
    try:
        keys_file = get_user_keys_file(user_id)
        if not keys_file or not keys_file.exists():
            return []

        with open(keys_file, 'r') as f:
            data = json.load(f)
            return data.get('keys', [])
    except (OSError, ValueError) as e:
        log_error("Error loading keys", user_id=user_id, error=str(e))
        return []


def save_keys(user_id, keys):
    """Save keys list to JSON file for a specific user."""
    try:
        keys_file = get_user_keys_file(user_id, create=True)
        if not keys_file:
            return False

        tmp_file = keys_file.with_suffix('.tmp')
        with open(tmp_file, 'w') as f:
            json.dump({'keys': keys}, f, indent=2)
        os.replace(tmp_file, keys_file)
        return True
    except OSError as e:
        log_error("Error saving keys", user_id=user_id, error=str(e))
        return False


def _passphrase_path(keys_dir, key_id):
    return keys_dir / f"{key_id}.passphrase"


def _store_new_key(user_id, name, key_bytes, key, passphrase=None):
    """Write key bytes (and passphrase) encrypted, then append metadata."""
    keys_dir = get_user_keys_dir(user_id, create=True)
    if not keys_dir:
        return None, "User not found"

    key_id = str(uuid.uuid4())
    filename = f"{key_id}.key"
    key_path = keys_dir / filename
    line = public_key_line(key, comment=name)

    if not key_encryption.write_secret(str(user_id), str(key_path), key_bytes):
        return None, "Failed to encrypt and save key"

    if passphrase:
        if not key_encryption.write_secret(str(user_id), str(_passphrase_path(keys_dir, key_id)), passphrase):
            key_path.unlink(missing_ok=True)
            return None, "Failed to encrypt and save passphrase"

    key_meta = {
        'id': key_id,
        'name': name,
        'filename': filename,
        'key_type': key.display_name,
        'public_key': str(line),
        'fingerprint': line.fingerprint,
        'encrypted': True,
        'has_passphrase': bool(passphrase),
        'created_at': datetime.now(timezone.utc).isoformat()
    }

    with _keys_lock:
        keys = load_keys(user_id)
        keys.append(key_meta)
        saved = save_keys(user_id, keys)

    if not saved:
        key_path.unlink(missing_ok=True)
        _passphrase_path(keys_dir, key_id).unlink(missing_ok=True)
        return None, "Failed to save key metadata"

    return key_meta, None


def save_key(user_id, name, key_data, passphrase=None, remember_passphrase=False):
    """
    Import an SSH private key for a specific user.

    The key is validated and fully parsed before anything is written, so only
    usable keys are stored. Key bytes are stored as supplied (encrypted at
    rest); the passphrase is stored only when remember_passphrase is set.

    Returns:
        tuple: (key_meta: dict or None, error: str or None)
    """
    key_data = as_bytes(key_data)
    passphrase = passphrase or None

    if not name:
        return None, "Key name required"
    if not key_data:
        return None, "Key content required"
    if len(key_data) > config.MAX_KEY_SIZE:
        return None, f"Key file too large. Maximum: {config.MAX_KEY_SIZE} bytes"

    is_valid, error = validate_key_data(key_data)
    if not is_valid and not passphrase:
        log_key_import(user_id, name, False, error=error)
        return None, error

    try:
        key = parse_private_key(key_data, passphrase)
    except SSHKeyParsingError as e:
        log_key_import(user_id, name, False, error=e.message)
        return None, e.message

    key_meta, error = _store_new_key(
        user_id, name, key_data, key,
        passphrase=passphrase if remember_passphrase else None
    )
    if error:
        log_key_import(user_id, name, False, key_type=key.display_name, error=error)
        return None, error

    log_key_import(user_id, name, True, key_type=key.display_name, fingerprint=key_meta['fingerprint'])
    log_info("SSH key saved (encrypted)", user_id=user_id, key_name=name)
    return key_meta, None


def generate_key(user_id, name, key_type=None):
    """
    Generate a new key pair and store it as an OpenSSH private key.

    Returns:
        tuple: (key_meta: dict or None, error: str or None)
    """
    if not name:
        return None, "Key name required"
    try:
        key_type = key_type_for(key_type or config.DEFAULT_GENERATED_KEY_TYPE)
    except SSHKeyParsingError as e:
        return None, e.message

    key = generate_private_key(key_type)
    key.comment = name
    key_text = serialize_openssh_key(key, comment=name)

    key_meta, error = _store_new_key(user_id, name, key_text.encode('ascii'), key)
    if error:
        return None, error

    log_key_generate(user_id, name, key_type.display_name, key_meta['fingerprint'])
    return key_meta, None


def get_key_path(user_id, key_id):
    """Get the file path for a key by ID for a specific user."""
    keys_dir = get_user_keys_dir(user_id)
    if not keys_dir:
        return None

    for key in load_keys(user_id):
        if key['id'] == key_id:
            return str(keys_dir / key['filename'])
    return None


def get_key(user_id, key_id):
    """Get key metadata by ID for a specific user."""
    for key in load_keys(user_id):
        if key['id'] == key_id:
            return key
    return None


def read_key_content(user_id, key_id):
    """
    Read and decrypt stored key bytes.

    Returns:
        tuple: (key_data: bytes or None, error: str or None)
    """
    try:
        key_path = get_key_path(user_id, key_id)
        if not key_path:
            return None, "Key not found"

        return key_encryption.read_secret(str(user_id), key_path), None

    except FileNotFoundError:
        return None, "Key file not found"
    except (OSError, key_encryption.InvalidToken) as e:
        log_error("Error reading key content", user_id=user_id, key_id=key_id, error=type(e).__name__)
        return None, "Failed to read key"


def read_key_passphrase(user_id, key_id):
    """Stored passphrase for a key, or None."""
    keys_dir = get_user_keys_dir(user_id)
    if not keys_dir:
        return None
    path = _passphrase_path(keys_dir, key_id)
    if not path.exists():
        return None
    try:
        return key_encryption.read_secret(str(user_id), str(path)).decode('utf-8')
    except (OSError, UnicodeDecodeError, key_encryption.InvalidToken) as e:
        log_warning("Stored passphrase unreadable", user_id=user_id, key_id=key_id, error=type(e).__name__)
        return None


@contextmanager
def acquire_key_material(user_id, key_id):
    """
    Scoped access to stored key bytes and passphrase.

    Yields (key_data: bytearray, passphrase: str or None). The buffer is
    zeroed when the block exits.

    Raises:
        KeyError: If the key can't be read
    """
    content, error = read_key_content(user_id, key_id)
    if error:
        raise KeyError(error)

    buf = bytearray(content)
    del content
    try:
        yield buf, read_key_passphrase(user_id, key_id)
    finally:
        for i in range(len(buf)):
            buf[i] = 0


def load_private_key(user_id, key_id, passphrase_provider=None):
    """
    Parse a stored key for authentication.

    A stored passphrase is used first; otherwise passphrase_provider (a
    callable returning a passphrase or None) is asked.

    Returns:
        tuple: (ParsedPrivateKey or None, error: str or None)
    """
    try:
        with acquire_key_material(user_id, key_id) as (key_data, passphrase):
            if passphrase is None and passphrase_provider is not None:
                passphrase = passphrase_provider()
            return parse_private_key(bytes(key_data), passphrase), None
    except KeyError as e:
        return None, e.args[0]
    except SSHKeyParsingError as e:
        log_warning("Failed to load private key", user_id=user_id, key_id=key_id, kind=e.kind)
        return None, e.message


def get_public_key(user_id, key_id, comment=None):
    """
    OpenSSH public key line for a stored key.

    Returns the stored line unless a different comment is asked for or the
    stored one is missing, in which case it is rebuilt from the private key.

    Returns:
        tuple: (line: str or None, error: str or None)
    """
    meta = get_key(user_id, key_id)
    if not meta:
        return None, "Key not found"

    stored = meta.get('public_key', '')
    if stored and PLACEHOLDER_MARKER not in stored and comment is None:
        log_public_key_export(user_id, key_id, meta.get('fingerprint'))
        return stored, None

    key, error = load_private_key(user_id, key_id)
    if error:
        return None, error

    line = public_key_line(key, comment=meta['name'] if comment is None else comment)
    log_public_key_export(user_id, key_id, line.fingerprint)
    return str(line), None


def export_openssh_private_key(user_id, key_id):
    """
    Re-serialize a stored key as an unencrypted OpenSSH private key.

    Returns:
        tuple: (key_text: str or None, error: str or None)
    """
    meta = get_key(user_id, key_id)
    if not meta:
        return None, "Key not found"

    key, error = load_private_key(user_id, key_id)
    if error:
        return None, error

    log_private_key_export(user_id, key_id)
    return serialize_openssh_key(key, comment=meta['name']), None


def generate_missing_public_keys(user_id):
    """
    Fill in public keys that are empty or placeholders.

    Returns:
        int: number of keys updated
    """
    with _keys_lock:
        keys = load_keys(user_id)
        updated = 0

        for meta in keys:
            public_key = meta.get('public_key', '')
            if public_key and PLACEHOLDER_MARKER not in public_key:
                continue

            log_debug("Key has missing or placeholder public key", key_name=meta.get('name'))
            key, error = load_private_key(user_id, meta['id'])
            if error:
                log_warning("Failed to generate public key", key_name=meta.get('name'), error=error)
                continue

            line = public_key_line(key, comment=meta['name'])
            meta['public_key'] = str(line)
            meta['fingerprint'] = line.fingerprint
            meta['key_type'] = key.display_name
            updated += 1

        if updated:
            save_keys(user_id, keys)
            log_info(f"Updated {updated} SSH key(s) with generated public keys", user_id=user_id)

    return updated


def delete_key(user_id, key_id):
    """Delete an SSH key, its stored passphrase and its metadata."""
    with _keys_lock:
        keys = load_keys(user_id)
        key_to_delete = None
        for key in keys:
            if key['id'] == key_id:
                key_to_delete = key
                break

        if not key_to_delete:
            return False

        keys_dir = get_user_keys_dir(user_id)
        try:
            (keys_dir / key_to_delete['filename']).unlink(missing_ok=True)
            _passphrase_path(keys_dir, key_id).unlink(missing_ok=True)
        except OSError as e:
            log_error("Error deleting key", user_id=user_id, error=str(e))
            return False

        keys = [k for k in keys if k['id'] != key_id]
        if not save_keys(user_id, keys):
            return False

    log_key_delete(user_id, key_id)
    return True
