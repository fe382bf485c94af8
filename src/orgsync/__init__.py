"""Bidirectional record synchronization core.

Reconciles records between the platform's local store and external API
sources, holding conflicts for manual review and keeping a version
history of every processed change.
"""

__version__ = "0.1.0"
