import logging
import json
import sys
from pathlib import Path
from datetime import datetime, timezone
import config

LOGS_DIR = config.DATA_DIR / 'logs'
try:
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
except PermissionError:
    import tempfile
    LOGS_DIR = Path(tempfile.gettempdir()) / 'sshkeycodec_logs'
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    print(f"⚠️  WARNING: Cannot write to {config.DATA_DIR / 'logs'}, using {LOGS_DIR}")

class StructuredFormatter(logging.Formatter):
    """JSON structured logging formatter for production."""

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        if hasattr(record, 'extra_data'):
            log_data.update(record.extra_data)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)

class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'
    ICONS = {
        'DEBUG': '🔍',
        'INFO': '✓',
        'WARNING': '⚠️',
        'ERROR': '❌',
        'CRITICAL': '🚨',
    }

    def format(self, record):
        color = self.COLORS.get(record.levelname, '')
        icon = self.ICONS.get(record.levelname, '')
        reset = self.RESET if color else ''

        timestamp = datetime.now().strftime('%H:%M:%S')

        msg = f"{color}{icon} [{timestamp}] {record.getMessage()}"
        if hasattr(record, 'extra_data'):
            details = ' '.join(f"{k}={v}" for k, v in record.extra_data.items())
            msg += f" | {details}"
        msg += reset

        if record.exc_info:
            msg += f"\n{self.formatException(record.exc_info)}"

        return msg

def setup_logger(name, log_file=None, level=logging.INFO):
    """Setup a logger with console and optional file output."""
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    if config.DEBUG:
        console_handler.setFormatter(ConsoleFormatter())
    else:
        console_handler.setFormatter(StructuredFormatter())

    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(StructuredFormatter())
        logger.addHandler(file_handler)

    return logger

app_logger = setup_logger(
    'sshkeycodec',
    log_file=LOGS_DIR / 'app.log',
    level=logging.DEBUG if config.DEBUG else logging.INFO
)

audit_logger = setup_logger(
    'security_audit',
    log_file=LOGS_DIR / 'security_audit.log',
    level=logging.INFO
)

def _log(level, message, exc_info=False, **kwargs):
    if not app_logger.isEnabledFor(level):
        return
    if kwargs:
        record = logging.LogRecord(
            'sshkeycodec', level, '', 0, message, (), None
        )
        record.extra_data = {k: _sanitize_log_value(v) for k, v in kwargs.items()}
        if exc_info:
            record.exc_info = sys.exc_info()
        app_logger.handle(record)
    else:
        app_logger.log(level, message, exc_info=exc_info)

def log_info(message, **kwargs):
    """Log info message with optional structured data."""
    _log(logging.INFO, message, **kwargs)

def log_warning(message, **kwargs):
    """Log warning message with optional structured data."""
    _log(logging.WARNING, message, **kwargs)

def log_error(message, exc_info=False, **kwargs):
    """Log error message with optional exception and structured data."""
    _log(logging.ERROR, message, exc_info=exc_info, **kwargs)

def log_debug(message, **kwargs):
    """Log debug message with optional structured data."""
    _log(logging.DEBUG, message, **kwargs)

def _sanitize_log_value(value):
    """Sanitize a value for safe inclusion in log entries.

    Prevents log injection by removing newlines, carriage returns,
    and null bytes that could forge fake log entries.
    """
    if value is None:
        return 'None'
    s = str(value)
    s = s.replace('\n', '\\n').replace('\r', '\\r').replace('\x00', '\\x00')
    return s[:512]

def log_key_import(user_id, key_name, success, key_type=None, fingerprint=None, error=None):
    status = "SUCCESS" if success else "FAILED"
    type_msg = f" | type={_sanitize_log_value(key_type)}" if key_type else ""
    fp_msg = f" | fingerprint={_sanitize_log_value(fingerprint)}" if fingerprint else ""
    error_msg = f" | error={_sanitize_log_value(error)}" if error else ""
    audit_logger.info(
        f"KEY_IMPORT_{status} | user={_sanitize_log_value(user_id)} | "
        f"key={_sanitize_log_value(key_name)}{type_msg}{fp_msg}{error_msg}"
    )

def log_key_generate(user_id, key_name, key_type, fingerprint):
    audit_logger.info(
        f"KEY_GENERATE | user={_sanitize_log_value(user_id)} | "
        f"key={_sanitize_log_value(key_name)} | type={_sanitize_log_value(key_type)} | "
        f"fingerprint={_sanitize_log_value(fingerprint)}"
    )

def log_key_delete(user_id, key_id):
    audit_logger.info(
        f"KEY_DELETE | user={_sanitize_log_value(user_id)} | "
        f"key={_sanitize_log_value(key_id)}"
    )

def log_public_key_export(user_id, key_id, fingerprint):
    audit_logger.info(
        f"PUBLIC_KEY_EXPORT | user={_sanitize_log_value(user_id)} | "
        f"key={_sanitize_log_value(key_id)} | fingerprint={_sanitize_log_value(fingerprint)}"
    )

def log_private_key_export(user_id, key_id):
    audit_logger.warning(
        f"PRIVATE_KEY_EXPORT | user={_sanitize_log_value(user_id)} | "
        f"key={_sanitize_log_value(key_id)}"
    )

def log_unauthorized_request(endpoint, ip_address):
    audit_logger.warning(
        f"UNAUTHORIZED | endpoint={_sanitize_log_value(endpoint)} | "
        f"ip={_sanitize_log_value(ip_address)}"
    )
