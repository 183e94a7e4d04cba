"""Voting ledger service: voter registry, elections, vote ledger and live results."""

__version__ = "1.0.0"
