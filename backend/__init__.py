"""
Lab Quality Backend

Quality control, compliance, equipment and lab order analytics for the
laboratory quality dashboard.
"""

__version__ = "1.0.0"
