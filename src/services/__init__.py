"""
Reusable service functions for the email pipeline.

This package contains helpers for MIME parsing, S3 storage and prompt
management.
"""

__all__ = ['email', 's3', 'prompts']
