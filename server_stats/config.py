import configparser
from pathlib import Path
from typing import Optional

DEFAULT_CONFIG = {
    'general': {
        'top_processes': '5',
        'process_sample_seconds': '0.5'
    },
    'cpu': {
        'tool_timeout_seconds': '10'
    },
    'disk': {
        'exclude_fstypes': 'tmpfs, devtmpfs, squashfs'
    },
    'auth': {
        'failed_login_entries': '100'
    },
    'logging': {
        'level': 'WARNING',
        'max_size_mb': '10',
        'backup_count': '3'
    }
}

APP_DATA_DIR = Path.home() / '.serverstats'


class ConfigError(Exception):
    """Raised when the configuration file cannot be used"""


def load_config(path: Path) -> configparser.ConfigParser:
    """Load the INI file at path, writing the defaults first if it is absent"""
    config = configparser.ConfigParser()

    if not path.exists():
        write_default_config(path)

    try:
        config.read(path)
    except configparser.Error as e:
        raise ConfigError(f"Cannot parse {path}: {e}") from e

    for section in DEFAULT_CONFIG.keys():
        if section not in config:
            raise ConfigError(f"Missing config section: {section}")
    return config


def write_default_config(path: Path) -> None:
    config = configparser.ConfigParser()
    config.read_dict(DEFAULT_CONFIG)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            config.write(f)
    except OSError as e:
        raise ConfigError(f"Failed to create config {path}: {e}") from e


def exclude_fstypes(config: configparser.ConfigParser) -> set:
    """Filesystem types left out of the disk totals"""
    raw = config.get('disk', 'exclude_fstypes', fallback='')
    return {item.strip().lower() for item in raw.split(',') if item.strip()}


def default_config_path(app_data_dir: Optional[Path] = None) -> Path:
    return (app_data_dir or APP_DATA_DIR) / 'config' / 'config.ini'
