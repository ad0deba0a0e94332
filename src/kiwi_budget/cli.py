"""Command-line interface for the statement ingestion pipeline."""

import sys
import click
from typing import List, Optional, Sequence
import logging

from .models.core import ClassifiedTransaction, MonthlyBudget
from .parsers.file_reader import read_statement
from .pipeline import Pipeline
from .utils.budget_aggregator import find_budget
from .utils.config_manager import ConfigManager
from .utils.csv_writer import CSVWriter
from .utils.error_handler import KiwiBudgetError, setup_logging
from .utils.persistence import JsonFilePersistence
from .utils.recommendations import suggest_category_limits


logger = logging.getLogger(__name__)


class KiwiBudgetCLI:
    """Holds the configured pipeline and its collaborators for one invocation"""

    def __init__(self, config_path: Optional[str] = None):
        self.config_manager = ConfigManager(config_path)
        self.config = self.config_manager.load_config()
        self.persistence = JsonFilePersistence(
            self.config.state_directory, self.config.normalize_signature_case)
        self.pipeline = Pipeline.from_config_manager(self.config_manager, self.persistence)
        self.csv_writer = CSVWriter(self.config.output_directory)

    def read_files(self, file_paths: Sequence[str]):
        """Read statements from disk, keyed by path in the given order"""
        return {path: read_statement(path)[1] for path in file_paths}

    def load_transactions(self, file_paths: Sequence[str], user: str) -> List[ClassifiedTransaction]:
        """Classify the given files, or the user's stored transactions when none are given"""
        if not file_paths:
            return self.persistence.load(user)
        candidates = []
        for path, rows in self.read_files(file_paths).items():
            candidates.extend(self.pipeline.parse(path, rows).transactions)
        return self.pipeline.classify(candidates)


def _echo_budget(budget: MonthlyBudget) -> None:
    click.echo(f"Budget for {budget.month}")
    click.echo("=" * 40)
    click.echo(f"  Income:       {budget.total_income:.2f}")
    click.echo(f"  Expenses:     {budget.total_expenses:.2f}")
    click.echo(f"  Savings:      {budget.savings:.2f}")
    click.echo(f"  Savings rate: {budget.savings_rate:.1f}%")
    click.echo(f"  Transactions: {budget.transaction_count} counted, {budget.ignored_count} ignored")

    if budget.insights.top_expense_categories:
        click.echo()
        click.echo("Top expense categories:")
        for share in budget.insights.top_expense_categories:
            click.echo(f"  {share.name}: {share.amount:.2f} ({share.percentage:.1f}%)")

    change = budget.insights.month_over_month_change
    if change:
        click.echo()
        click.echo("Change from previous month:")
        click.echo(f"  Income {change.income_change:+.1f}%, expenses {change.expense_change:+.1f}%, "
                   f"savings {change.savings_change:+.1f}%")


@click.group()
@click.option('--config', '-c', help='Path to configuration file')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--log-dir', help='Also write JSON logs to this directory')
@click.pass_context
def cli(ctx, config, verbose, log_dir):
    """Kiwi Budget - Import NZ bank statements and derive budgets and goals"""
    setup_logging(verbose, log_dir)

    ctx.ensure_object(dict)
    ctx.obj['cli'] = KiwiBudgetCLI(config)


@cli.command(name='import')
@click.argument('files', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option('--user', '-u', default='default', help='User the transactions belong to')
@click.option('--no-output', is_flag=True, help='Do not write classified CSV files')
@click.pass_context
def import_files(ctx, files, user, no_output):
    """Import statement CSV files, skipping transactions already imported"""
    cli_instance = ctx.obj['cli']

    try:
        result = cli_instance.pipeline.ingest(user, cli_instance.read_files(files))
    except KiwiBudgetError as e:
        click.echo(f"✗ Import failed: {e}")
        sys.exit(1)

    for path, parse_result in result.parse_results.items():
        click.echo(f"{path}: {len(parse_result.transactions)} transactions, "
                   f"bank {parse_result.detected_bank}, confidence {parse_result.confidence.value}")
        for warning in parse_result.warnings:
            click.echo(f"  ⚠ {warning}")

    if not no_output and result.accepted:
        by_file = {}
        for path, parse_result in result.parse_results.items():
            signatures = {cli_instance.pipeline.duplicate_detector.signature(t)
                          for t in parse_result.transactions}
            accepted = [t for t in result.accepted
                        if cli_instance.pipeline.duplicate_detector.signature(t) in signatures]
            if accepted:
                by_file[path] = accepted
        for path, transactions in by_file.items():
            output_path = cli_instance.csv_writer.create_unique_filename(
                cli_instance.csv_writer.generate_output_path(transactions, path))
            if cli_instance.csv_writer.write_transactions(transactions, output_path):
                click.echo(f"  Output: {output_path}")

    click.echo(f"✓ Imported {len(result.accepted)} transactions "
               f"({result.duplicates_skipped} duplicates skipped, "
               f"{len(result.reversal_pairs)} reversal pairs)")


@cli.command()
@click.argument('files', nargs=-1, type=click.Path(exists=True, dir_okay=False))
@click.option('--month', '-m', required=True, help='Month to summarize (YYYY-MM)')
@click.option('--user', '-u', default='default', help='User whose stored transactions to use')
@click.pass_context
def summary(ctx, files, month, user):
    """Show the monthly budget from FILES, or from stored transactions"""
    cli_instance = ctx.obj['cli']

    try:
        transactions = cli_instance.load_transactions(files, user)
        budget = cli_instance.pipeline.aggregate(transactions, month)
    except (KiwiBudgetError, ValueError) as e:
        click.echo(f"✗ Error building summary: {e}")
        sys.exit(1)

    _echo_budget(budget)


@cli.command()
@click.argument('files', nargs=-1, type=click.Path(exists=True, dir_okay=False))
@click.option('--user', '-u', default='default', help='User whose stored transactions to use')
@click.option('--month', '-m', help='Also list category limits for this month (YYYY-MM)')
@click.pass_context
def recommend(ctx, files, user, month):
    """Propose SMART goals and budget limits from recent months"""
    cli_instance = ctx.obj['cli']
    pipeline = cli_instance.pipeline

    try:
        transactions = cli_instance.load_transactions(files, user)
        budgets = pipeline.aggregator.aggregate_all(transactions)
        if not budgets:
            click.echo("✗ No transactions to analyse")
            sys.exit(1)
        goals = pipeline.recommend(budgets)
        advice = pipeline.budget_recommendations(budgets)
    except (KiwiBudgetError, ValueError) as e:
        click.echo(f"✗ Error generating recommendations: {e}")
        sys.exit(1)

    click.echo("Goals")
    click.echo("=" * 40)
    for goal in goals:
        click.echo(f"[{goal.priority}] {goal.category}: {goal.description}")
        click.echo(f"    Target {goal.target_amount:.2f} over {goal.timeframe_months} months "
                   f"({goal.achievability.value})")
        click.echo(f"    {goal.rationale}")

    click.echo()
    click.echo(f"Risk level: {advice.risk_level.value}")
    click.echo(f"Emergency fund target: {advice.emergency_fund_target:.2f}")
    for group, amount in advice.allocation.items():
        click.echo(f"  {group.value}: {amount:.2f}")
    for limit in advice.category_limits:
        click.echo(f"  Limit {limit.category}: {limit.recommended_limit:.2f} "
                   f"(currently {limit.current_spending:.2f}, {limit.priority} priority)")
    for step in advice.actionable_steps:
        click.echo(f"  - {step}")

    if month:
        budget = find_budget(budgets, month)
        if budget is None:
            click.echo(f"✗ No transactions for {month}")
            sys.exit(1)
        click.echo()
        click.echo(f"Category limits for {month}:")
        for limit in suggest_category_limits(budget):
            click.echo(f"  {limit.category}: {limit.recommended_limit:.2f} - {limit.rationale}")


@cli.command()
@click.pass_context
def banks(ctx):
    """List the registered bank formats in detection order"""
    cli_instance = ctx.obj['cli']
    for config in cli_instance.pipeline.registry.snapshot():
        patterns = ', '.join(config.file_patterns) or '-'
        click.echo(f"{config.name} (files: {patterns})")


@cli.command()
@click.argument('output_path', default='kiwi_budget.json')
@click.option('--format', type=click.Choice(['json', 'yaml']), default='json', help='Configuration file format')
@click.pass_context
def init_config(ctx, output_path, format):
    """Generate a configuration file template"""
    cli_instance = ctx.obj['cli']

    if format == 'yaml' and not output_path.endswith(('.yml', '.yaml')):
        output_path = output_path.rsplit('.', 1)[0] + '.yaml'

    try:
        cli_instance.config_manager.save_config_template(output_path)
    except OSError as e:
        click.echo(f"✗ Error generating config template: {e}")
        sys.exit(1)

    click.echo(f"✓ Configuration template generated: {output_path}")
    click.echo("  Edit the file to add bank formats and categorizer rules")


if __name__ == '__main__':
    cli()
