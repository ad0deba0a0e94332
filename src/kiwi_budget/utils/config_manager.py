"""Configuration management for the ingestion pipeline."""

import json
import os
import yaml
from dataclasses import fields
from typing import Dict, Any, Optional, List
import logging

from ..models.core import BankConfig, PipelineConfig
from .error_handler import ConfigurationError


logger = logging.getLogger(__name__)

BANK_COLUMN_KEYS = ('date', 'description', 'amount', 'debit', 'credit', 'balance', 'reference', 'merchant')
BANK_IDENTIFIER_KEYS = ('file_patterns', 'header_patterns', 'content_patterns')


def bank_configs_from_data(entries: List[Dict[str, Any]]) -> List[BankConfig]:
    """Convert ``bank_configs`` entries from a config file into BankConfig objects

    Raises:
        ConfigurationError: If an entry is malformed
    """
    validate_bank_configs(entries)
    return [BankConfig.from_dict(entry) for entry in entries]


def validate_bank_configs(entries: Any) -> None:
    if not isinstance(entries, list):
        raise ConfigurationError("bank_configs must be a list")

    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ConfigurationError(f"bank_configs[{index}] must be a dictionary")
        name = entry.get('name')
        if not isinstance(name, str) or not name.strip():
            raise ConfigurationError(f"bank_configs[{index}] needs a non-empty name")

        for section, keys in (('identifiers', BANK_IDENTIFIER_KEYS), ('columns', BANK_COLUMN_KEYS)):
            values = entry.get(section, {})
            if not isinstance(values, dict):
                raise ConfigurationError(f"{section} for bank {name} must be a dictionary")
            for key, aliases in values.items():
                if key not in keys:
                    raise ConfigurationError(f"Unknown {section} key for bank {name}: {key}")
                if isinstance(aliases, str):
                    continue
                if not isinstance(aliases, list) or not all(isinstance(a, str) for a in aliases):
                    raise ConfigurationError(f"{section}.{key} for bank {name} must be a list of strings")

        if not entry.get('columns', {}).get('date'):
            raise ConfigurationError(f"Bank {name} must declare at least one date column")


class ConfigManager:
    """Manages loading and validation of pipeline configuration"""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager

        Args:
            config_path: Path to configuration file. If None, searches for default locations.
        """
        self.config_path = config_path
        self._config_cache: Optional[PipelineConfig] = None
        self._bank_configs: List[BankConfig] = []

    def load_config(self, force_reload: bool = False) -> PipelineConfig:
        """Load pipeline configuration from file or return default

        Args:
            force_reload: Force reload from file even if cached

        Returns:
            PipelineConfig instance with loaded or default configuration
        """
        if self._config_cache is not None and not force_reload:
            return self._config_cache

        config_data = self._load_config_file()
        known = {f.name for f in fields(PipelineConfig)}

        try:
            self._config_cache = PipelineConfig(**{k: v for k, v in config_data.items() if k in known})
            self._bank_configs = bank_configs_from_data(self._config_cache.bank_configs)
            logger.info(f"Configuration loaded successfully from {self.config_path or 'defaults'}")
        except (TypeError, ConfigurationError) as e:
            logger.warning(f"Error loading configuration: {e}. Using defaults.")
            self._config_cache = PipelineConfig()
            self._bank_configs = []

        for key in config_data:
            if key not in known:
                logger.warning(f"Unknown configuration key: {key}")
        return self._config_cache

    def _load_config_file(self) -> Dict[str, Any]:
        """Load configuration from file

        Returns:
            Dictionary with configuration data or empty dict if no file found
        """
        config_file = self._find_config_file()

        if not config_file or not os.path.exists(config_file):
            logger.info("No configuration file found, using defaults")
            return {}

        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                if config_file.endswith('.json'):
                    data = json.load(f)
                elif config_file.endswith(('.yml', '.yaml')):
                    data = yaml.safe_load(f)
                else:
                    logger.warning(f"Unsupported config file format: {config_file}")
                    return {}

            self._validate_config_data(data)
            logger.info(f"Configuration loaded from {config_file}")
            return data

        except (OSError, ValueError, yaml.YAMLError, ConfigurationError) as e:
            logger.error(f"Error reading configuration file {config_file}: {e}")
            return {}

    def _find_config_file(self) -> Optional[str]:
        """Find configuration file in standard locations

        Returns:
            Path to configuration file or None if not found
        """
        if self.config_path:
            return self.config_path

        search_paths = [
            'kiwi_budget.json',
            'kiwi_budget.yml',
            'kiwi_budget.yaml',
            'config/kiwi_budget.json',
            'config/kiwi_budget.yml',
            'config/kiwi_budget.yaml',
            os.path.expanduser('~/.kiwi_budget/config.json'),
            os.path.expanduser('~/.kiwi_budget/config.yml'),
            os.path.expanduser('~/.kiwi_budget/config.yaml'),
        ]

        for path in search_paths:
            if os.path.exists(path):
                return path

        return None

    def _validate_config_data(self, data: Any) -> None:
        """Validate configuration data structure

        Args:
            data: Configuration data to validate

        Raises:
            ConfigurationError: If configuration data is invalid
        """
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration must be a dictionary")

        for dir_key in ['state_directory', 'output_directory']:
            if dir_key in data:
                if not isinstance(data[dir_key], str):
                    raise ConfigurationError(f"{dir_key} must be a string")
                if not data[dir_key].strip():
                    raise ConfigurationError(f"{dir_key} cannot be empty")

        for bool_key in ['normalize_signature_case', 'allow_date_fallback']:
            if bool_key in data and not isinstance(data[bool_key], bool):
                raise ConfigurationError(f"{bool_key} must be a boolean")

        for int_key in ['reversal_window_days', 'max_description_length']:
            if int_key in data:
                value = data[int_key]
                if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                    raise ConfigurationError(f"{int_key} must be a non-negative integer")

        for ratio_key in ['similarity_threshold', 'categorizer_confidence_threshold']:
            if ratio_key in data:
                value = data[ratio_key]
                if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 <= value <= 1:
                    raise ConfigurationError(f"{ratio_key} must be a number between 0 and 1")

        for number_key in ['amount_tolerance', 'amount_sanity_ceiling']:
            if number_key in data:
                value = data[number_key]
                if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                    raise ConfigurationError(f"{number_key} must be a non-negative number")

        if 'categorizer_rules' in data:
            rules = data['categorizer_rules']
            if not isinstance(rules, dict):
                raise ConfigurationError("categorizer_rules must be a dictionary")
            for keyword, subcategory in rules.items():
                if not isinstance(keyword, str) or not isinstance(subcategory, str):
                    raise ConfigurationError("categorizer_rules keys and values must be strings")

        if 'bank_configs' in data:
            validate_bank_configs(data['bank_configs'])

    def get_bank_configs(self) -> List[BankConfig]:
        """Bank formats declared in the configuration file

        Returns:
            List of BankConfig objects, empty when none are configured
        """
        if self._config_cache is None:
            self.load_config()
        return list(self._bank_configs)

    def save_config_template(self, output_path: str) -> None:
        """Generate and save a configuration file template

        Args:
            output_path: Path where to save the template
        """
        template = {
            "reversal_window_days": 7,
            "similarity_threshold": 0.8,
            "amount_tolerance": 0.01,
            "amount_sanity_ceiling": 1000000,
            "categorizer_confidence_threshold": 0.6,
            "normalize_signature_case": True,
            "allow_date_fallback": False,
            "max_description_length": 255,
            "state_directory": ".kiwi_budget_state",
            "output_directory": "data",
            "categorizer_rules": {
                "pak n save": "Groceries",
                "netflix": "Entertainment"
            },
            "bank_configs": [
                {
                    "name": "Credit Union",
                    "identifiers": {
                        "file_patterns": ["creditunion", "cu_"],
                        "header_patterns": ["member number"],
                        "content_patterns": []
                    },
                    "columns": {
                        "date": ["Date", "Posted"],
                        "description": ["Details"],
                        "amount": ["Amount"],
                        "debit": ["Withdrawal"],
                        "credit": ["Deposit"],
                        "balance": ["Balance"],
                        "reference": ["Reference"]
                    }
                }
            ]
        }

        try:
            output_dir = os.path.dirname(output_path)
            if output_dir:
                os.makedirs(output_dir, exist_ok=True)

            with open(output_path, 'w', encoding='utf-8') as f:
                if output_path.endswith(('.yml', '.yaml')):
                    yaml.dump(template, f, default_flow_style=False, indent=2, sort_keys=False)
                else:
                    json.dump(template, f, indent=2)

            logger.info(f"Configuration template saved to {output_path}")

        except OSError as e:
            logger.error(f"Error saving configuration template: {e}")
            raise

    def update_config(self, updates: Dict[str, Any]) -> None:
        """Update configuration with new values

        Args:
            updates: Dictionary of configuration updates
        """
        if self._config_cache is None:
            self.load_config()

        for key, value in updates.items():
            if hasattr(self._config_cache, key):
                setattr(self._config_cache, key, value)
                logger.debug(f"Updated configuration: {key} = {value}")
            else:
                logger.warning(f"Unknown configuration key: {key}")

    def reset_config(self) -> None:
        """Reset configuration cache, forcing reload on next access"""
        self._config_cache = None
        self._bank_configs = []
        logger.debug("Configuration cache reset")


def get_default_config_manager() -> ConfigManager:
    """Get a default configuration manager instance

    Returns:
        ConfigManager instance with default settings
    """
    return ConfigManager()
