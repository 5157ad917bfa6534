"""
legacy_modernizer - chunking, validation and self-repair for LLM-driven
legacy code modernization.
"""

__version__ = "0.1.0"
