"""Tests for classified transaction CSV output."""

import csv
import os
import shutil
import tempfile
from datetime import date
from decimal import Decimal

from kiwi_budget.models.core import ClassifiedTransaction, TransactionCategory
from kiwi_budget.utils.csv_writer import CSVWriter


class TestCSVWriter:
    """Test cases for CSVWriter"""

    def setup_method(self):
        """Set up test fixtures"""
        self.temp_dir = tempfile.mkdtemp()
        self.writer = CSVWriter(self.temp_dir)

    def teardown_method(self):
        """Clean up test fixtures"""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def create_transactions(self):
        return [
            ClassifiedTransaction(
                date=date(2024, 5, 1), description="SALARY ACME", amount=Decimal('3000.00'),
                is_income=True, source_bank="Co-operative Bank",
                category=TransactionCategory.INCOME.value, subcategory="Salary",
                is_credit=True, confidence=0.85,
            ),
            ClassifiedTransaction(
                date=date(2024, 5, 3), description="Online Purchase Refund", amount=Decimal('49.99'),
                is_income=False, source_bank="Co-operative Bank",
                category=TransactionCategory.REVERSAL.value, is_reversal=True,
                is_credit=True, confidence=0.95, paired_with="2024-05-01|online purchase|49.99",
            ),
        ]

    def test_write_and_validate(self):
        output_path = os.path.join(self.temp_dir, 'out', 'may.csv')
        assert self.writer.write_transactions(self.create_transactions(), output_path)

        assert self.writer.validate_csv_output(output_path) == []
        with open(output_path, 'r', encoding='utf-8') as f:
            rows = list(csv.DictReader(f))

        assert rows[0]['direction'] == 'in'
        assert rows[0]['amount'] == '3000.00'
        assert rows[0]['subcategory'] == 'Salary'
        assert rows[1]['category'] == 'Reversal'
        assert rows[1]['direction'] == 'in'
        assert rows[1]['confidence'] == '0.95'
        assert rows[1]['paired_with'] == '2024-05-01|online purchase|49.99'

    def test_empty_write_returns_false(self):
        assert not self.writer.write_transactions([], os.path.join(self.temp_dir, 'x.csv'))

    def test_generate_output_path(self):
        path = self.writer.generate_output_path(self.create_transactions(), '/uploads/coop_may.csv')
        assert path == os.path.join(self.temp_dir, 'co_operative_bank', 'coop_may.csv.csv')

    def test_create_unique_filename(self):
        base = os.path.join(self.temp_dir, 'may.csv')
        assert self.writer.create_unique_filename(base) == base

        open(base, 'w').close()
        assert self.writer.create_unique_filename(base) == os.path.join(self.temp_dir, 'may_001.csv')

    def test_validate_reports_problems(self):
        path = os.path.join(self.temp_dir, 'bad.csv')
        with open(path, 'w', newline='', encoding='utf-8') as f:
            writer = csv.DictWriter(f, fieldnames=CSVWriter.STANDARD_HEADERS)
            writer.writeheader()
            writer.writerow({'date': '01/05/2024', 'amount': '-5', 'direction': 'sideways'})

        errors = self.writer.validate_csv_output(path)
        assert len(errors) == 3
        assert any('Invalid date format' in e for e in errors)
        assert any('Negative amount' in e for e in errors)
        assert any('Invalid direction' in e for e in errors)

    def test_validate_missing_file(self):
        errors = self.writer.validate_csv_output(os.path.join(self.temp_dir, 'missing.csv'))
        assert errors and 'does not exist' in errors[0]
