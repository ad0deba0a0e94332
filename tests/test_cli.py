"""Tests for the command-line interface."""

import json
import os
import shutil
import tempfile

from click.testing import CliRunner

from kiwi_budget.cli import cli


STATEMENT = """Date,Particulars,Amount
01/05/2024,SALARY ACME,5000.00
03/05/2024,Countdown,-150.00
10/05/2024,Online Purchase,-49.99
12/05/2024,Online Purchase Refund,49.99
15/05/2024,Transfer to savings,-1000.00
"""


class TestCLI:
    """Test cases for the kiwi-budget commands"""

    def setup_method(self):
        """Set up test fixtures"""
        self.temp_dir = tempfile.mkdtemp()
        self.runner = CliRunner()
        self.config_file = os.path.join(self.temp_dir, 'kiwi_budget.json')
        with open(self.config_file, 'w') as f:
            json.dump({
                'state_directory': os.path.join(self.temp_dir, 'state'),
                'output_directory': os.path.join(self.temp_dir, 'out'),
            }, f)
        self.statement = os.path.join(self.temp_dir, 'asb_may.csv')
        with open(self.statement, 'w') as f:
            f.write(STATEMENT)

    def teardown_method(self):
        """Clean up test fixtures"""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def invoke(self, *args):
        return self.runner.invoke(cli, ['--config', self.config_file] + list(args))

    def test_banks(self):
        result = self.invoke('banks')

        assert result.exit_code == 0
        assert "ANZ (files: anz, anzbank)" in result.output
        assert "Heartland Bank" in result.output

    def test_init_config(self):
        output_path = os.path.join(self.temp_dir, 'generated.json')
        result = self.invoke('init-config', output_path)

        assert result.exit_code == 0
        assert "✓ Configuration template generated" in result.output
        assert os.path.exists(output_path)

    def test_init_config_yaml(self):
        output_path = os.path.join(self.temp_dir, 'generated.json')
        result = self.invoke('init-config', output_path, '--format', 'yaml')

        assert result.exit_code == 0
        assert os.path.exists(os.path.join(self.temp_dir, 'generated.yaml'))

    def test_import_and_reimport(self):
        result = self.invoke('import', self.statement, '--user', 'alice')

        assert result.exit_code == 0, result.output
        assert "bank ASB, confidence high" in result.output
        assert "✓ Imported 5 transactions (0 duplicates skipped, 1 reversal pairs)" in result.output
        assert os.path.exists(os.path.join(self.temp_dir, 'out', 'asb', 'asb_may.csv.csv'))

        result = self.invoke('import', self.statement, '--user', 'alice', '--no-output')
        assert result.exit_code == 0
        assert "✓ Imported 0 transactions (5 duplicates skipped" in result.output

    def test_import_missing_file(self):
        result = self.invoke('import', os.path.join(self.temp_dir, 'missing.csv'))
        assert result.exit_code != 0

    def test_import_reports_row_warnings(self):
        with open(self.statement, 'a') as f:
            f.write("garbage,Broken,-1.00\n")

        result = self.invoke('import', self.statement, '--no-output')

        assert result.exit_code == 0
        assert "⚠ Row 6 [date]" in result.output

    def test_summary_from_stored_transactions(self):
        self.invoke('import', self.statement, '--user', 'alice', '--no-output')
        result = self.invoke('summary', '--month', '2024-05', '--user', 'alice')

        assert result.exit_code == 0, result.output
        assert "Budget for 2024-05" in result.output
        assert "Income:       5000.00" in result.output
        assert "Expenses:     150.00" in result.output
        assert "3 ignored" in result.output

    def test_summary_from_files(self):
        result = self.invoke('summary', self.statement, '--month', '2024-05')

        assert result.exit_code == 0, result.output
        assert "Groceries: 150.00 (100.0%)" in result.output

    def test_summary_invalid_month(self):
        result = self.invoke('summary', self.statement, '--month', 'May')

        assert result.exit_code == 1
        assert "✗ Error building summary" in result.output

    def test_recommend(self):
        result = self.invoke('recommend', self.statement, '--month', '2024-05')

        assert result.exit_code == 0, result.output
        assert "Emergency Fund" in result.output
        assert "Risk level: healthy" in result.output
        assert "Category limits for 2024-05:" in result.output

    def test_recommend_without_transactions(self):
        result = self.invoke('recommend', '--user', 'nobody')

        assert result.exit_code == 1
        assert "✗ No transactions to analyse" in result.output
