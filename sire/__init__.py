"""
SIRE package
============

This package contains the Storm Impact Ranking Engine (SIRE).

- The CLI entry point is in `sire/cli.py`.
- The reduction pipeline (filter, aggregate, threshold, relabel, rank) is in `sire/pipeline.py`.
- Dataset fetching and loading is in `sire/loader.py`.
"""

__version__ = '0.3.0'
