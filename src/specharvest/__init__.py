"""
SpecHarvest - Resumable phone specification harvester.

Collects structured specification records from a catalog site using a
rate-limited direct transport and a key-backed proxy transport, alternating
between them in fixed-size batches and tracking per-item completion.
"""

__version__ = "0.1.0"
__app_name__ = "specharvest"
