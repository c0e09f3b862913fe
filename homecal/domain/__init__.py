"""Expansion pipeline, month aggregation and the calendar service."""
