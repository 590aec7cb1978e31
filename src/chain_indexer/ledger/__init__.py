"""Exact ledger arithmetic."""
