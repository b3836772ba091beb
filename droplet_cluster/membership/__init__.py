"""Membership state and the reconciliation engine that keeps it honest."""
