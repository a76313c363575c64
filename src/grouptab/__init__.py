"""grouptab - shared-expense tracking with pairwise balances and settlement plans."""

__version__ = "0.1.0"
