"""
Paper execution.
"""

from .paper_engine import AccountSnapshot, ExecutionResult, PaperAccount, PaperExecutionEngine

__all__ = ["AccountSnapshot", "ExecutionResult", "PaperAccount", "PaperExecutionEngine"]
