"""
PFS Engine - Source Package

The computational core of a personal-financial-statement (PFS) manager:
versioned financial entities, derived-field synchronization, portfolio
summaries, and point-in-time snapshots with staleness tracking and
comparison.

DESIGN PRINCIPLES:
1. Every entity carries a monotonic version and a one-level undo snapshot
2. Derived fields are only ever written by the sync engine
3. There is exactly one function that computes "the numbers"
4. Side effects on snapshots never fail the mutation that caused them
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "PFS Engine Team"
