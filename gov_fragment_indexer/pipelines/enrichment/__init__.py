"""Taxonomy classification of extracted fragments."""
