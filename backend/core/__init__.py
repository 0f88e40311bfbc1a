"""Core shared logic for indicators, signal generation, and risk checks.

This package contains pure business logic with no I/O dependencies
(no database, HTTP, or cache access). It is shared between the
backtesting system (backtest/) and the provider integrations (app/).
"""
