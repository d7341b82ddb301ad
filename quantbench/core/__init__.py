"""Core types, timeframe math and errors."""
