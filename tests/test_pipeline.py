"""Tests for the pipeline facade."""

import threading
from decimal import Decimal

import pytest

from kiwi_budget import pipeline as pipeline_module
from kiwi_budget.models.core import BankConfig, ConfidenceTier
from kiwi_budget.pipeline import Pipeline
from kiwi_budget.utils.error_handler import ConfigurationError, PersistenceError
from kiwi_budget.utils.persistence import InMemoryPersistence


class BrokenPersistence(InMemoryPersistence):
    def existing_signatures(self, user_id, start=None, end=None):
        raise PersistenceError("store offline")


class TestPipeline:
    """Test cases for Pipeline"""

    def setup_method(self):
        """Set up test fixtures"""
        self.store = InMemoryPersistence()
        self.pipeline = Pipeline(persistence=self.store)

    def create_statement(self):
        return [
            {'Date': '01/05/2024', 'Particulars': 'SALARY ACME', 'Amount': '5000.00'},
            {'Date': '03/05/2024', 'Particulars': 'Countdown', 'Amount': '-150.00'},
            {'Date': '10/05/2024', 'Particulars': 'Online Purchase', 'Amount': '-49.99'},
            {'Date': '12/05/2024', 'Particulars': 'Online Purchase Refund', 'Amount': '49.99'},
            {'Date': '15/05/2024', 'Particulars': 'Transfer to savings', 'Amount': '-1000.00'},
        ]

    def test_ingest_accepts_and_stores(self):
        result = self.pipeline.ingest("alice", {'asb_may.csv': self.create_statement()})

        assert len(result.accepted) == 5
        assert result.duplicates_skipped == 0
        assert len(result.reversal_pairs) == 1
        assert result.parse_results['asb_may.csv'].confidence == ConfidenceTier.HIGH
        assert len(self.store.load("alice")) == 5

    def test_reimport_skips_duplicates(self):
        self.pipeline.ingest("alice", {'asb_may.csv': self.create_statement()})
        result = self.pipeline.ingest("alice", {'asb_may_again.csv': self.create_statement()})

        assert result.accepted == []
        assert result.duplicates_skipped == 5
        assert len(self.store.load("alice")) == 5

    def test_users_are_isolated(self):
        self.pipeline.ingest("alice", {'asb_may.csv': self.create_statement()})
        result = self.pipeline.ingest("bob", {'asb_may.csv': self.create_statement()})
        assert len(result.accepted) == 5

    def test_overlapping_files_in_one_batch(self):
        statement = self.create_statement()
        result = self.pipeline.ingest("alice", {
            'asb_may.csv': statement,
            'asb_may_copy.csv': statement[:2],
        })

        assert len(result.accepted) == 5
        assert result.duplicates_skipped == 2

    def test_concurrent_ingest_for_same_user(self):
        results = []

        def ingest(name):
            results.append(self.pipeline.ingest("alice", {name: self.create_statement()}))

        threads = [threading.Thread(target=ingest, args=(f"asb_{i}.csv",)) for i in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sum(len(r.accepted) for r in results) == 5
        assert len(self.store.load("alice")) == 5
        assert self.pipeline._user_locks == {}

    def test_warnings_are_prefixed_with_filename(self):
        rows = self.create_statement()
        rows.append({'Date': 'garbage', 'Particulars': 'Broken', 'Amount': '-1.00'})
        result = self.pipeline.ingest("alice", {'asb_may.csv': rows})

        assert len(result.warnings) == 1
        assert result.warnings[0].startswith('asb_may.csv: Row 6 [date]')

    def test_persistence_failure_propagates(self):
        pipeline = Pipeline(persistence=BrokenPersistence())
        with pytest.raises(PersistenceError):
            pipeline.ingest("alice", {'asb_may.csv': self.create_statement()})
        assert pipeline._user_locks == {}

    def test_end_to_end_budget_and_goals(self):
        result = self.pipeline.ingest("alice", {'asb_may.csv': self.create_statement()})
        budget = self.pipeline.aggregate(result.accepted, "2024-05")

        assert budget.total_income == Decimal('5000.00')
        assert budget.total_expenses == Decimal('150.00')
        assert budget.ignored_count == 3

        goals = self.pipeline.recommend([budget])
        assert goals[0].category == "Emergency Fund"

    def test_register_bank_config_from_mapping(self):
        self.pipeline.register_bank_config({
            'name': 'Credit Union',
            'identifiers': {'file_patterns': ['creditunion']},
            'columns': {'date': ['Posted'], 'description': ['Narration'], 'amount': ['Value']},
        })
        result = self.pipeline.parse('creditunion_may.csv',
                                     [{'Posted': '2024-05-01', 'Narration': 'Dividend', 'Value': '12.00'}])

        assert result.detected_bank == 'Credit Union'
        assert result.confidence == ConfidenceTier.HIGH

    def test_register_bank_config_rejects_bad_mapping(self):
        with pytest.raises(ConfigurationError):
            self.pipeline.register_bank_config({'name': 'Broken', 'columns': {}})

    def test_register_bank_config_is_idempotent(self):
        config = BankConfig(name='Credit Union', file_patterns=('creditunion',), date=('Posted',))
        self.pipeline.register_bank_config(config)
        self.pipeline.register_bank_config(config)
        assert self.pipeline.registry.names().count('Credit Union') == 1


class TestModuleFunctions:
    """Test cases for the module-level operations"""

    def test_default_pipeline_is_shared(self):
        assert pipeline_module.get_default_pipeline() is pipeline_module.get_default_pipeline()

    def test_parse_classify_deduplicate(self):
        rows = [
            {'Date': '15/05/2024', 'Particulars': 'Uber Eats', 'Amount': '-22.40'},
            {'Date': '15/05/2024', 'Particulars': 'Uber Eats', 'Amount': '-22.40'},
        ]
        parsed = pipeline_module.parse('asb_may.csv', rows)
        unique = pipeline_module.deduplicate(parsed.transactions, set())
        classified = pipeline_module.classify(unique)

        assert len(parsed.transactions) == 2
        assert len(unique) == 1
        assert classified[0].subcategory == 'Dining'

        budget = pipeline_module.aggregate(classified, '2024-05')
        assert budget.total_expenses == Decimal('22.40')
        assert pipeline_module.recommend([budget])[0].category == 'Budget Analysis'
