"""Observation-table loading and validation."""
