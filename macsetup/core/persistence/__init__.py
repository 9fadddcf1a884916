"""Persistence — progress ledger and run log."""
