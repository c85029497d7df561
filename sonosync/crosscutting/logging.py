import json
import logging
import re
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Context variables for correlation
transfer_id_var: ContextVar[Optional[str]] = ContextVar('transfer_id', default=None)
playlist_id_var: ContextVar[Optional[str]] = ContextVar('playlist_id', default=None)
stage_var: ContextVar[Optional[str]] = ContextVar('stage', default=None)


class SecretMasker:
    """Masks sensitive information in log messages."""

    def __init__(self):
        self.patterns = [
            # Generic tokens and keys
            r'(?i)(token|key|secret|password|auth)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{10,})["\']?',
            # Provider access tokens
            r'(?i)(spotify_access_token|youtube_access_token|access_token)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{20,})["\']?',
            # Deezer ARL cookie
            r'(?i)(deezer_arl|arl)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{20,})["\']?',
            # Client secrets
            r'(?i)(client_secret)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{20,})["\']?',
            # Bearer headers
            r'(?i)(bearer)[\s]+()([a-zA-Z0-9\-_\.]{20,})',
        ]
        self.compiled_patterns = [re.compile(pattern) for pattern in self.patterns]

    def mask_secrets(self, text: str) -> str:
        """Mask sensitive information in text."""
        if not text:
            return text

        masked_text = text
        for pattern in self.compiled_patterns:
            def replace_match(match):
                prefix = match.group(1)
                secret = match.group(match.lastindex)
                # Keep first 4 and last 4 characters, mask the rest
                if len(secret) > 8:
                    masked_secret = secret[:4] + '*' * (len(secret) - 8) + secret[-4:]
                else:
                    masked_secret = '*' * len(secret)
                separator = " " if match.lastindex == 3 else ": "
                return f"{prefix}{separator}{masked_secret}"

            masked_text = pattern.sub(replace_match, masked_text)

        return masked_text

    def mask_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Mask sensitive information in dictionary values."""
        if not data:
            return data

        masked_data = {}
        for key, value in data.items():
            if isinstance(value, str):
                masked_data[key] = self.mask_secrets(value)
            elif isinstance(value, dict):
                masked_data[key] = self.mask_dict(value)
            elif isinstance(value, list):
                masked_data[key] = [self.mask_dict(item) if isinstance(item, dict)
                                    else self.mask_secrets(item) if isinstance(item, str)
                                    else item for item in value]
            else:
                masked_data[key] = value
        return masked_data


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self):
        super().__init__()
        self.masker = SecretMasker()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': self.masker.mask_secrets(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        transfer_id = transfer_id_var.get()
        playlist_id = playlist_id_var.get()
        stage = stage_var.get()
        if transfer_id:
            log_entry['transferId'] = transfer_id
        if playlist_id:
            log_entry['playlistId'] = playlist_id
        if stage:
            log_entry['stage'] = stage

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        if getattr(record, 'fields', None):
            log_entry['fields'] = self.masker.mask_dict(record.fields)

        return json.dumps(log_entry, ensure_ascii=False)


class CorrelationContext:
    """Context manager for correlation data."""

    def __init__(self, transfer_id: Optional[str] = None,
                 playlist_id: Optional[str] = None,
                 stage: Optional[str] = None):
        self.transfer_id = transfer_id
        self.playlist_id = playlist_id
        self.stage = stage
        self._tokens = []

    def __enter__(self):
        if self.transfer_id is not None:
            self._tokens.append((transfer_id_var, transfer_id_var.set(self.transfer_id)))
        if self.playlist_id is not None:
            self._tokens.append((playlist_id_var, playlist_id_var.set(self.playlist_id)))
        if self.stage is not None:
            self._tokens.append((stage_var, stage_var.set(self.stage)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens = []


def setup_logging(level: str = 'INFO', log_file: Optional[str] = None) -> logging.Logger:
    """Setup structured logging on the package logger."""
    logger = logging.getLogger('sonosync')
    logger.setLevel(getattr(logging, level.upper()))
    logger.handlers.clear()

    formatter = StructuredFormatter()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        from logging.handlers import RotatingFileHandler
        # Rotate at ~100MB with up to 14 backups
        file_handler = RotatingFileHandler(log_file, maxBytes=100 * 1024 * 1024, backupCount=14)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def log_with_fields(logger: logging.Logger, level: str, message: str,
                    fields: Optional[Dict[str, Any]] = None, exc_info: bool = False,
                    **kwargs) -> None:
    """Log message with additional structured fields."""
    merged: Dict[str, Any] = dict(fields or {})
    merged.update(kwargs)
    logger.log(getattr(logging, level.upper()), message,
               extra={'fields': merged} if merged else None, exc_info=exc_info)


def log_transfer_start(logger: logging.Logger, transfer_id: str, source_platform: str,
                       destination_platform: str, playlist_id: str, **kwargs) -> None:
    with CorrelationContext(transfer_id=transfer_id, playlist_id=playlist_id, stage='start'):
        log_with_fields(logger, 'INFO', 'Transfer started', {
            'source_platform': source_platform,
            'destination_platform': destination_platform,
            **kwargs
        })


def log_transfer_complete(logger: logging.Logger, transfer_id: str, match_count: int,
                          total: int, **kwargs) -> None:
    with CorrelationContext(transfer_id=transfer_id, stage='complete'):
        log_with_fields(logger, 'INFO', 'Transfer completed', {
            'match_count': match_count,
            'total': total,
            **kwargs
        })


def log_error(logger: logging.Logger, message: str, error: Exception, **kwargs) -> None:
    """Log error with exception details."""
    log_with_fields(logger, 'ERROR', message, {
        'error_type': type(error).__name__,
        'error_message': str(error),
        **kwargs
    })
