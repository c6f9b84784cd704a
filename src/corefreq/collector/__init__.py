"""Polling, reconciliation and snapshot publication."""
