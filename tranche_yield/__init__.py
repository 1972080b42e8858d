"""
Tranche Yield Platform
======================

Yield allocation for two-tranche (senior / junior) capital structures:
EMA-smoothed target-yield model, three-regime proportion solver and a
deterministic fee / tranche / residual waterfall.

Subpackages
-----------
engine : Allocation math, Distribution State and collaborator interfaces.
"""

__version__ = "1.0.0"
