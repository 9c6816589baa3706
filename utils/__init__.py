"""Shared building blocks for the fetch pipeline."""
