"""Folder governance — inheritance, sync transitions, and audit.

This package provides the primitives for:
- Resolution: the aggregate inheritance mode of a project
- Transitions: detach, re-sync, and project-level inheritance changes
- Audit: immutable before/after records of every transition
- Presentation: badge and confirmation metadata for the UI layer
"""
