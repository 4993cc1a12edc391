"""
Edge Trader - Prediction Market Strategy Engine

Scans binary prediction markets for cross-market arbitrage, odds-referenced
value and price-deviation opportunities, sizes them with fractional Kelly,
gates them through portfolio risk limits and executes them through an
injected order executor.
"""

__version__ = "0.1.0"
