import os
from pathlib import Path

BASE_DIR = Path(__file__).parent

DATA_DIR = Path(os.environ.get('DATA_DIR', BASE_DIR / 'data'))

# SECURITY: Default to False - require explicit opt-in for debug mode
DEBUG = os.environ.get('DEBUG', 'False') == 'True'

# SECURITY: SECRET_KEY protects the key store. It is checked when the store
# is first used so the codec itself can be imported without it.
SECRET_KEY = os.environ.get('SECRET_KEY')
DEBUG_SECRET_KEY = 'sshkeycodec-debug-secret-not-for-production'

# SECURITY: bearer token for the HTTP API. Unset means the API refuses
# requests unless DEBUG is on.
API_TOKEN = os.environ.get('API_TOKEN')

# PBKDF2-HMAC-SHA256 rounds for per-user store keys (OWASP minimum)
KDF_ITERATIONS = int(os.environ.get('KDF_ITERATIONS', '600000'))

# Imported key files larger than this are refused before parsing
MAX_KEY_SIZE = int(os.environ.get('MAX_KEY_SIZE', 16 * 1024))

OPENSSH_BLOCK_SIZE = 8
PEM_LINE_WIDTH = 70

DEFAULT_KEY_COMMENT = os.environ.get('DEFAULT_KEY_COMMENT', '')
DEFAULT_GENERATED_KEY_TYPE = os.environ.get('DEFAULT_GENERATED_KEY_TYPE', 'Ed25519')

HOST = os.environ.get('HOST', '127.0.0.1')
PORT = int(os.environ.get('PORT', '5000'))
