"""Tests for reading statement files from disk."""

import os
import shutil
import tempfile

import pytest

from kiwi_budget.parsers.file_reader import StatementReadError, read_statement


class TestReadStatement:
    """Test cases for read_statement"""

    def setup_method(self):
        """Set up test fixtures"""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test fixtures"""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def write_file(self, name, content):
        path = os.path.join(self.temp_dir, name)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(content)
        return path

    def test_reads_cells_as_text(self):
        path = self.write_file('asb_may.csv',
                               "Date, Particulars, Amount, Code\n"
                               "15/05/2024, Uber Eats, -22.40, 0012\n"
                               "16/05/2024, Countdown, -45.10,\n")
        headers, rows = read_statement(path)

        assert headers == ['Date', 'Particulars', 'Amount', 'Code']
        assert rows[0] == {'Date': '15/05/2024', 'Particulars': 'Uber Eats',
                           'Amount': '-22.40', 'Code': '0012'}
        assert rows[1]['Code'] == ''

    def test_empty_file(self):
        path = self.write_file('empty.csv', "")
        assert read_statement(path) == ([], [])

    def test_missing_file(self):
        with pytest.raises(StatementReadError):
            read_statement(os.path.join(self.temp_dir, 'missing.csv'))

    def test_unsupported_extension(self):
        path = self.write_file('statement.pdf', "not a csv")
        with pytest.raises(StatementReadError):
            read_statement(path)
