"""Opportunity valuation and reconciliation engine for field-sales funnels."""

__version__ = "0.1.0"
