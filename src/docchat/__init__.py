"""Retrieval-augmented document context pipeline."""
