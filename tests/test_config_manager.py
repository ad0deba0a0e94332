"""Tests for configuration management."""

import json
import os
import shutil
import tempfile
import unittest

import yaml

from kiwi_budget.models.core import PipelineConfig
from kiwi_budget.utils.config_manager import ConfigManager, bank_configs_from_data, validate_bank_configs
from kiwi_budget.utils.error_handler import ConfigurationError


class TestConfigManager(unittest.TestCase):
    """Test cases for ConfigManager"""

    def setUp(self):
        """Set up test fixtures"""
        self.temp_dir = tempfile.mkdtemp()
        self.config_file = os.path.join(self.temp_dir, 'test_config.json')

    def tearDown(self):
        """Clean up test fixtures"""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def write_config(self, data, path=None):
        path = path or self.config_file
        with open(path, 'w') as f:
            if path.endswith(('.yml', '.yaml')):
                yaml.dump(data, f)
            else:
                json.dump(data, f)
        return path

    def test_default_config_loading(self):
        """Test loading default configuration when no file exists"""
        manager = ConfigManager(config_path="nonexistent_file.json")
        config = manager.load_config()

        self.assertIsInstance(config, PipelineConfig)
        self.assertEqual(config.reversal_window_days, 7)
        self.assertEqual(config.similarity_threshold, 0.8)
        self.assertEqual(config.amount_sanity_ceiling, 1_000_000)
        self.assertTrue(config.normalize_signature_case)
        self.assertFalse(config.allow_date_fallback)
        self.assertEqual(config.bank_configs, [])
        self.assertEqual(manager.get_bank_configs(), [])

    def test_config_file_loading(self):
        """Test loading configuration from JSON file"""
        self.write_config({
            "reversal_window_days": 5,
            "similarity_threshold": 0.9,
            "allow_date_fallback": True,
            "state_directory": "state",
            "categorizer_rules": {"pak n save": "Groceries"},
        })

        config = ConfigManager(config_path=self.config_file).load_config()

        self.assertEqual(config.reversal_window_days, 5)
        self.assertEqual(config.similarity_threshold, 0.9)
        self.assertTrue(config.allow_date_fallback)
        self.assertEqual(config.state_directory, "state")
        self.assertEqual(config.categorizer_rules, {"pak n save": "Groceries"})

    def test_yaml_config_loading(self):
        """Test loading configuration from YAML file"""
        path = self.write_config({"output_directory": "out", "amount_tolerance": 0.05},
                                 os.path.join(self.temp_dir, 'config.yaml'))

        config = ConfigManager(config_path=path).load_config()

        self.assertEqual(config.output_directory, "out")
        self.assertEqual(config.amount_tolerance, 0.05)

    def test_bank_config_loading(self):
        """Test loading bank formats from configuration"""
        self.write_config({
            "bank_configs": [{
                "name": "Credit Union",
                "identifiers": {"file_patterns": ["creditunion"]},
                "columns": {"date": ["Posted"], "description": "Details", "amount": ["Value"]},
            }]
        })

        manager = ConfigManager(config_path=self.config_file)
        banks = manager.get_bank_configs()

        self.assertEqual(len(banks), 1)
        self.assertEqual(banks[0].name, "Credit Union")
        self.assertEqual(banks[0].file_patterns, ("creditunion",))
        self.assertEqual(banks[0].description, ("Details",))

    def test_config_validation(self):
        """Test configuration validation"""
        invalid_configs = [
            {"state_directory": ""},
            {"allow_date_fallback": "yes"},
            {"reversal_window_days": -1},
            {"similarity_threshold": 1.5},
            {"amount_tolerance": "small"},
            {"categorizer_rules": ["netflix"]},
            {"bank_configs": [{"name": "No Columns"}]},
        ]

        for invalid in invalid_configs:
            self.write_config(invalid)
            config = ConfigManager(config_path=self.config_file).load_config()
            # Falls back to defaults on validation error
            self.assertEqual(config, PipelineConfig(), f"Expected defaults for {invalid}")

    def test_malformed_file_uses_defaults(self):
        """Test that unreadable JSON falls back to defaults"""
        with open(self.config_file, 'w') as f:
            f.write("{not json")

        config = ConfigManager(config_path=self.config_file).load_config()
        self.assertEqual(config, PipelineConfig())

    def test_unknown_keys_are_ignored(self):
        """Test that unknown keys do not break loading"""
        self.write_config({"reversal_window_days": 3, "colour_scheme": "dark"})

        with self.assertLogs('kiwi_budget.utils.config_manager', level='WARNING') as logs:
            config = ConfigManager(config_path=self.config_file).load_config()

        self.assertEqual(config.reversal_window_days, 3)
        self.assertTrue(any("colour_scheme" in line for line in logs.output))

    def test_config_template_generation(self):
        """Test configuration template generation"""
        template_file = os.path.join(self.temp_dir, 'template.json')

        manager = ConfigManager()
        manager.save_config_template(template_file)

        with open(template_file, 'r') as f:
            template = json.load(f)

        self.assertIn('reversal_window_days', template)
        self.assertIn('categorizer_rules', template)
        self.assertEqual(template['bank_configs'][0]['name'], 'Credit Union')

        # A generated template must load cleanly
        config = ConfigManager(config_path=template_file).load_config()
        self.assertEqual(config.state_directory, ".kiwi_budget_state")
        self.assertEqual(len(ConfigManager(config_path=template_file).get_bank_configs()), 1)

    def test_yaml_template_generation(self):
        """Test YAML template generation"""
        template_file = os.path.join(self.temp_dir, 'nested', 'template.yaml')

        ConfigManager().save_config_template(template_file)

        with open(template_file, 'r') as f:
            template = yaml.safe_load(f)
        self.assertEqual(template['output_directory'], 'data')

    def test_config_caching(self):
        """Test configuration caching"""
        self.write_config({"output_directory": "cached_test"})

        manager = ConfigManager(config_path=self.config_file)
        config1 = manager.load_config()
        self.assertEqual(config1.output_directory, "cached_test")

        self.write_config({"output_directory": "modified_test"})

        config2 = manager.load_config()
        self.assertEqual(config2.output_directory, "cached_test")

        config3 = manager.load_config(force_reload=True)
        self.assertEqual(config3.output_directory, "modified_test")

    def test_update_and_reset(self):
        """Test runtime updates and cache reset"""
        self.write_config({"output_directory": "from_file"})
        manager = ConfigManager(config_path=self.config_file)

        manager.update_config({"output_directory": "updated", "not_a_key": 1})
        self.assertEqual(manager.load_config().output_directory, "updated")

        manager.reset_config()
        self.assertEqual(manager.load_config().output_directory, "from_file")


class TestBankConfigValidation(unittest.TestCase):
    """Test cases for bank format entries in configuration"""

    def test_valid_entries(self):
        banks = bank_configs_from_data([
            {"name": "A", "columns": {"date": "Date"}},
            {"name": "B", "identifiers": {"header_patterns": ["b bank"]}, "columns": {"date": ["When"]}},
        ])
        self.assertEqual([b.name for b in banks], ["A", "B"])
        self.assertEqual(banks[1].header_patterns, ("b bank",))

    def test_invalid_entries(self):
        invalid = [
            {"name": "A"},
            [{"columns": {"date": "Date"}}],
            ["not a dict"],
            [{"name": "A", "columns": {"date": "Date", "colour": "Red"}}],
            [{"name": "A", "columns": {"date": [1, 2]}}],
            [{"name": "A", "identifiers": "anz", "columns": {"date": "Date"}}],
            [{"name": "A", "columns": {"amount": "Amount"}}],
        ]
        for entries in invalid:
            with self.assertRaises(ConfigurationError, msg=f"Expected error for {entries}"):
                validate_bank_configs(entries)


if __name__ == '__main__':
    unittest.main()
