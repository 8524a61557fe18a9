"""Use-case / operations layer.

Low-level file actions used by the pipeline (atomic writes, renames).
"""
