"""
Configuration loader for ShelfSync
"""

import os
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional

from dotenv import load_dotenv


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path('config/shelfsync.yaml')


def default_config() -> Dict[str, Any]:
    """Built-in defaults, overridden by YAML and environment"""
    return {
        'database': {
            'url': 'sqlite+aiosqlite:///./data/shelfsync.db',
            'echo': False
        },
        'remote': {
            'type': 'memory',  # memory or http
            'base_url': 'http://localhost:8090/api',
            'token': '',
            'connect_timeout_s': 5,
            'read_timeout_s': 15,
            'verify_tls': True
        },
        'sync': {
            'owner_id': 'local-user',
            'interval_seconds': 300,
            'auto_start': False,
            'remote_timeout_seconds': 30,
            'max_recent_errors': 20
        },
        'queue': {
            'max_pending': 10000
        },
        'api': {
            'host': '0.0.0.0',
            'port': 8080,
            'api_key': 'development-key-change-in-production',
            'cors_origins': ['*']
        },
        'logging': {
            'level': 'INFO',
            'format': 'text',
            'console_enabled': True,
            'file_enabled': False,
            'file_path': 'logs/shelfsync.log',
            'file_max_size': 10 * 1024 * 1024,
            'file_backup_count': 5
        }
    }


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Load configuration from environment and YAML files"""

    # Load environment variables
    load_dotenv()

    config = default_config()

    yaml_path = Path(config_path or os.getenv('SHELFSYNC_CONFIG') or DEFAULT_CONFIG_PATH)

    if yaml_path.exists():
        try:
            with open(yaml_path, 'r', encoding='utf-8') as f:
                yaml_config = yaml.safe_load(f)
                if yaml_config:
                    _deep_update(config, yaml_config)
                    logger.info(f"Configuration loaded from {yaml_path}")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load configuration from {yaml_path}: {e}")
            logger.error("Using default configuration")
    else:
        logger.warning(f"Configuration file {yaml_path} not found, using defaults")

    # Override with environment variables
    if os.getenv('SHELFSYNC_DATABASE_URL'):
        config['database']['url'] = os.getenv('SHELFSYNC_DATABASE_URL')

    if os.getenv('SHELFSYNC_API_KEY'):
        config['api']['api_key'] = os.getenv('SHELFSYNC_API_KEY')

    if os.getenv('SHELFSYNC_REMOTE_URL'):
        config['remote']['base_url'] = os.getenv('SHELFSYNC_REMOTE_URL')
        config['remote']['type'] = 'http'

    if os.getenv('SHELFSYNC_REMOTE_TOKEN'):
        config['remote']['token'] = os.getenv('SHELFSYNC_REMOTE_TOKEN')

    if os.getenv('SHELFSYNC_OWNER_ID'):
        config['sync']['owner_id'] = os.getenv('SHELFSYNC_OWNER_ID')

    if os.getenv('LOG_LEVEL'):
        config['logging']['level'] = os.getenv('LOG_LEVEL', 'INFO').upper()

    logger.debug("Configuration loaded successfully")
    return config


def _deep_update(base_dict: Dict[str, Any], update_dict: Dict[str, Any]) -> None:
    """Deep update nested dictionary"""
    for key, value in update_dict.items():
        if key in base_dict and isinstance(base_dict[key], dict) and isinstance(value, dict):
            _deep_update(base_dict[key], value)
        else:
            base_dict[key] = value
