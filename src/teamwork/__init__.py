"""
teamwork — package root

File: src/teamwork/__init__.py
Last updated: 2026-10-19

Purpose
- Package root for the file-based task coordination engine.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.3.0"

__all__ = ["__version__"]
