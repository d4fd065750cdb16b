"""
Lambda handlers package for AWS Lambda functions.
"""
from .evaluate import handler
from .period import handler as period_handler

__all__ = ["handler", "period_handler"]
