"""Bonus ledger and reward wheel service."""
