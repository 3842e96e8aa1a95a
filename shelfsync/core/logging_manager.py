"""
Logging setup for ShelfSync
Console and rotating file handlers with token redaction
"""

import json
import logging
import logging.handlers
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class SecuritySafeFormatter(logging.Formatter):
    """Formatter that sanitizes sensitive information"""

    sensitive_fields = (
        'password', 'secret', 'token', 'api_key', 'authorization', 'bearer', 'private_key'
    )

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._patterns = [
            re.compile(rf'({field}["\']?\s*[:=]?\s*["\']?)([^"\'\s,}}]+)', re.IGNORECASE)
            for field in self.sensitive_fields
        ]

    def format(self, record):
        """Format log record with sensitive data sanitization"""
        record.msg = self._sanitize_message(record.getMessage())
        record.args = None
        return super().format(record)

    def _sanitize_message(self, message: str) -> str:
        lowered = message.lower()
        for field, pattern in zip(self.sensitive_fields, self._patterns):
            if field in lowered:
                message = pattern.sub(r'\1***', message)
        return message


class JSONFormatter(SecuritySafeFormatter):
    """JSON formatter for structured logging"""

    def format(self, record):
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'component': record.name,
            'message': self._sanitize_message(record.getMessage()),
        }

        error_code = getattr(record, 'error_code', None)
        if error_code:
            log_data['error_code'] = error_code

        if record.exc_info:
            log_data['stack_trace'] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False)


class LoggingManager:
    """Configures the root logger from the `logging` config section"""

    def __init__(self):
        self.configured = False
        self.handlers: List[logging.Handler] = []

    def configure(self, config: Dict[str, Any]):
        if self.configured:
            return

        log_config = config.get('logging', {})
        level = getattr(logging, str(log_config.get('level', 'INFO')).upper(), logging.INFO)

        root_logger = logging.getLogger()
        root_logger.setLevel(level)

        if log_config.get('console_enabled', True):
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(level)

            if log_config.get('format', 'text') == 'json':
                console_handler.setFormatter(JSONFormatter())
            else:
                console_handler.setFormatter(SecuritySafeFormatter(LOG_FORMAT))

            root_logger.addHandler(console_handler)
            self.handlers.append(console_handler)

        if log_config.get('file_enabled', False):
            file_path = Path(log_config.get('file_path', 'logs/shelfsync.log'))
            file_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                filename=str(file_path),
                maxBytes=int(log_config.get('file_max_size', 10 * 1024 * 1024)),
                backupCount=int(log_config.get('file_backup_count', 5)),
                encoding='utf-8'
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(JSONFormatter())
            root_logger.addHandler(file_handler)
            self.handlers.append(file_handler)

        self.configured = True
        logging.getLogger(__name__).debug(f"Logging configured at level {logging.getLevelName(level)}")

    def shutdown(self):
        """Detach and close configured handlers"""
        root_logger = logging.getLogger()
        for handler in self.handlers:
            root_logger.removeHandler(handler)
            handler.close()

        self.handlers.clear()
        self.configured = False


# Global logging manager
logging_manager = LoggingManager()


def configure_logging(config: Dict[str, Any]):
    """Configure process-wide logging once"""
    logging_manager.configure(config)
