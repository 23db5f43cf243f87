"""Data models and utility functions.

This package contains:
- types: Dataclasses and TypedDicts shared across the core
- colour: Colour states and the success/failure templates
- utils: Utility functions (truncate_for_display, similarity_score, etc.)
"""
