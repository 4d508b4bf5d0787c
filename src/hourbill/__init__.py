"""Billing aggregation and invoice document pipeline."""

__version__ = "0.1.0"
