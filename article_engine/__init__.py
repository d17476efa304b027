"""
Advanced article generation engine.

Generates SEO articles for a tenant through a fixed multi-stage LLM pipeline
and saves them as unpublished drafts.
"""
__version__ = "0.1.0"
