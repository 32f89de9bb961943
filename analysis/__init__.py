"""
Analysis Engine Module

Evaluates stored quote series:
- Performance over a trailing calendar interval (days, months, years)
- Relative Strength Levy (RSL) from 27 weekly closes
- Batch aggregation across every series with skip accounting
"""

__version__ = "0.1.0"
