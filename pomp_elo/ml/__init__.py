"""Model evaluation utilities."""
