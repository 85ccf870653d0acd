"""Embedded recipe catalog with faceted search and catalog merging."""
