"""CSV output writer for classified transactions."""

import os
import csv
import logging
from datetime import datetime
from typing import List, Dict, Sequence

from ..models.core import ClassifiedTransaction

logger = logging.getLogger(__name__)


class CSVWriter:
    """Writes classified transactions in a standardized CSV layout"""

    STANDARD_HEADERS = [
        'date',
        'amount',
        'direction',
        'description',
        'merchant',
        'bank',
        'category',
        'subcategory',
        'confidence',
        'paired_with',
    ]

    def __init__(self, output_directory: str = "data"):
        self.output_directory = output_directory

    def write_transactions(self, transactions: Sequence[ClassifiedTransaction], output_path: str) -> bool:
        """
        Write transactions to CSV file with standardized format

        Args:
            transactions: Classified transactions to write
            output_path: Path where CSV file should be written

        Returns:
            True if successful, False otherwise
        """
        if not transactions:
            return False

        try:
            output_dir = os.path.dirname(output_path)
            if output_dir:
                os.makedirs(output_dir, exist_ok=True)

            with open(output_path, 'w', newline='', encoding='utf-8') as csvfile:
                writer = csv.DictWriter(csvfile, fieldnames=self.STANDARD_HEADERS)
                writer.writeheader()
                for transaction in transactions:
                    writer.writerow(self._transaction_to_dict(transaction))

            logger.info(f"Wrote {len(transactions)} transactions to {output_path}")
            return True

        except (OSError, csv.Error) as e:
            logger.error(f"Failed to write {output_path}: {e}")
            return False

    def generate_output_path(self, transactions: Sequence[ClassifiedTransaction], source_file_path: str) -> str:
        """
        Output path under a per-bank directory, keeping the source filename

        Args:
            transactions: Transactions from the source file
            source_file_path: Original statement path

        Returns:
            ``<output_directory>/<bank>/<source name>.csv``
        """
        bank = transactions[0].source_bank if transactions else 'unknown'
        bank_dir = bank.lower().replace(' ', '_').replace('-', '_')
        csv_filename = f"{os.path.basename(source_file_path)}.csv"
        return os.path.join(self.output_directory, bank_dir, csv_filename)

    def create_unique_filename(self, base_path: str) -> str:
        """
        Create unique filename if file already exists

        Args:
            base_path: Base file path

        Returns:
            Unique file path (may have suffix added)
        """
        if not os.path.exists(base_path):
            return base_path

        path_without_ext, ext = os.path.splitext(base_path)

        counter = 1
        while counter <= 999:
            new_path = f"{path_without_ext}_{counter:03d}{ext}"
            if not os.path.exists(new_path):
                return new_path
            counter += 1

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return f"{path_without_ext}_{timestamp}{ext}"

    def validate_csv_output(self, csv_path: str) -> List[str]:
        """
        Validate generated CSV file for data integrity

        Args:
            csv_path: Path to CSV file to validate

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not os.path.exists(csv_path):
            errors.append(f"CSV file does not exist: {csv_path}")
            return errors

        try:
            with open(csv_path, 'r', encoding='utf-8') as csvfile:
                reader = csv.DictReader(csvfile)

                if reader.fieldnames != self.STANDARD_HEADERS:
                    errors.append(f"Invalid headers. Expected: {self.STANDARD_HEADERS}, Got: {reader.fieldnames}")

                row_count = 0
                for row_num, row in enumerate(reader, start=2):
                    row_count += 1

                    if not row.get('date'):
                        errors.append(f"Row {row_num}: Missing date")
                    else:
                        try:
                            datetime.strptime(row['date'], '%Y-%m-%d')
                        except ValueError:
                            errors.append(f"Row {row_num}: Invalid date format: {row['date']}")

                    if not row.get('amount'):
                        errors.append(f"Row {row_num}: Missing amount")
                    else:
                        try:
                            if float(row['amount']) < 0:
                                errors.append(f"Row {row_num}: Negative amount: {row['amount']}")
                        except ValueError:
                            errors.append(f"Row {row_num}: Invalid amount format: {row['amount']}")

                    if row.get('direction') not in ('in', 'out'):
                        errors.append(f"Row {row_num}: Invalid direction: {row.get('direction')}")

                if row_count == 0:
                    errors.append("CSV file contains no data rows")

        except (csv.Error, UnicodeDecodeError) as e:
            errors.append(f"Error reading CSV file: {str(e)}")

        return errors

    def _transaction_to_dict(self, transaction: ClassifiedTransaction) -> Dict[str, str]:
        return {
            'date': transaction.date.strftime('%Y-%m-%d'),
            'amount': str(transaction.amount),
            'direction': 'in' if transaction.is_credit else 'out',
            'description': transaction.description or '',
            'merchant': transaction.merchant or '',
            'bank': transaction.source_bank or '',
            'category': transaction.category,
            'subcategory': transaction.subcategory or '',
            'confidence': f"{transaction.confidence:.2f}",
            'paired_with': transaction.paired_with or '',
        }
