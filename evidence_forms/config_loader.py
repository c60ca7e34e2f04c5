"""
Configuration loading for the evidence request form.

Loads config.yaml, deep-merges it over the built-in defaults and falls
back to the defaults whenever the file is missing, empty or invalid.
"""

import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging
from copy import deepcopy

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config.yaml")

_config_cache: Optional[Dict[str, Any]] = None


def deep_merge(base_dict: Dict[str, Any], update_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries, with update_dict taking precedence.

    Args:
        base_dict: Base dictionary (defaults)
        update_dict: Dictionary to merge in (user config)

    Returns:
        Merged dictionary
    """
    result = deepcopy(base_dict)

    for key, value in update_dict.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = deepcopy(value)

    return result


def get_default_config() -> Dict[str, Any]:
    """Built-in configuration used when config.yaml is absent or incomplete."""
    return {
        'app': {
            'name': 'FVU Request System',
            'version': '1.0.0',
            'debug': False
        },
        'form': {
            'definition': 'recovery_form.yaml',
            'form_type': 'recovery'
        },
        'drafts': {
            'enabled': True,
            'directory': 'drafts',
            'key_prefix': 'fvu_draft_',
            'expiry_days': 7,
            'autosave_delay_seconds': 2.0
        },
        'validation': {
            'email_domain': 'peelpolice.ca',
            'phone_digits': 10,
            'identifier_prefix': 'PR',
            'debounce_seconds': 0.5
        },
        'widgets': {
            'read_defer_seconds': 0.0
        },
        'submission': {
            'outbox_directory': 'outbox'
        },
        'ui': {
            'page_title': 'FVU Recovery Request',
            'tick_interval_seconds': 1.0
        },
        'logging': {
            'level': 'INFO',
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        }
    }


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load application configuration.

    Args:
        config_path: Optional path to config file (defaults to config.yaml)

    Returns:
        Complete configuration dictionary
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
    config_path = Path(config_path)

    default_config = get_default_config()

    if not config_path.exists():
        logger.warning(f"Configuration file not found: {config_path}")
        logger.info("Using default configuration")
        return default_config

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            user_config = yaml.safe_load(f)

        if user_config is None:
            logger.warning(f"Configuration file is empty: {config_path}")
            return default_config

        if not isinstance(user_config, dict):
            logger.error(f"Configuration file is not a valid dictionary: {config_path}")
            logger.info("Using default configuration")
            return default_config

        config = deep_merge(default_config, user_config)

        if not validate_config(config):
            logger.error(f"Configuration in {config_path} failed validation")
            logger.info("Using default configuration")
            return default_config

        logger.info(f"Successfully loaded configuration from {config_path}")
        return config

    except yaml.YAMLError as e:
        logger.error(f"YAML parsing error in {config_path}: {e}")
        logger.info("Using default configuration")
        return default_config

    except (IOError, OSError) as e:
        logger.error(f"Failed to read configuration file {config_path}: {e}")
        logger.info("Using default configuration")
        return default_config


def _positive_number(section: Dict[str, Any], key: str, allow_zero: bool = False) -> bool:
    if key not in section:
        return True
    try:
        value = float(section[key])
    except (ValueError, TypeError):
        logger.warning(f"{key} must be a valid number")
        return False
    if value < 0 or (value == 0 and not allow_zero):
        logger.warning(f"{key} must be {'non-negative' if allow_zero else 'positive'}")
        return False
    return True


def validate_config(config: Dict[str, Any]) -> bool:
    """
    Validate configuration structure and value ranges.

    Args:
        config: Configuration dictionary to validate

    Returns:
        True if configuration is valid, False otherwise
    """
    required_sections = ['app', 'form', 'drafts', 'validation', 'ui']

    for section in required_sections:
        if not isinstance(config.get(section), dict):
            logger.warning(f"Missing required configuration section: {section}")
            return False

    app = config['app']
    if 'name' not in app or 'version' not in app:
        logger.warning("Missing required app configuration (name or version)")
        return False

    drafts = config['drafts']
    if not isinstance(drafts.get('directory', ''), str) or not isinstance(drafts.get('key_prefix', ''), str):
        logger.warning("Draft directory and key_prefix must be strings")
        return False
    if not _positive_number(drafts, 'expiry_days') or not _positive_number(drafts, 'autosave_delay_seconds'):
        return False

    validation = config['validation']
    if not _positive_number(validation, 'phone_digits') or not _positive_number(validation, 'debounce_seconds', True):
        return False
    if '@' in str(validation.get('email_domain', '')):
        logger.warning("email_domain must not contain '@'")
        return False

    widgets = config.get('widgets', {})
    if isinstance(widgets, dict) and not _positive_number(widgets, 'read_defer_seconds', True):
        return False

    if not _positive_number(config['ui'], 'tick_interval_seconds'):
        return False

    return True


def get_config(reload: bool = False) -> Dict[str, Any]:
    """Cached configuration for the running app."""
    global _config_cache
    if _config_cache is None or reload:
        _config_cache = load_config()
    return _config_cache


def get_config_value(section: str, key: str, default: Any = None) -> Any:
    """
    Get a specific configuration value.

    Args:
        section: Configuration section (e.g., 'drafts', 'ui')
        key: Configuration key within section
        default: Default value if not found

    Returns:
        Configuration value or default
    """
    return get_config().get(section, {}).get(key, default)


def get_config_summary(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Get a summary of the current configuration.

    Args:
        config: Configuration dictionary

    Returns:
        Dictionary with configuration summary
    """
    drafts = config.get('drafts', {})
    return {
        'app_name': config.get('app', {}).get('name', 'Unknown'),
        'app_version': config.get('app', {}).get('version', 'Unknown'),
        'debug_mode': config.get('app', {}).get('debug', False),
        'form_type': config.get('form', {}).get('form_type', 'Unknown'),
        'drafts_enabled': drafts.get('enabled', True),
        'drafts_directory': str(drafts.get('directory', 'drafts')),
        'draft_expiry_days': drafts.get('expiry_days', 7),
        'autosave_delay_seconds': drafts.get('autosave_delay_seconds', 2.0),
        'email_domain': config.get('validation', {}).get('email_domain', 'Unknown'),
        'log_level': config.get('logging', {}).get('level', 'INFO')
    }
