"""Kiwi Budget - NZ bank statement ingestion, classification and budgeting"""

__version__ = "0.1.0"
