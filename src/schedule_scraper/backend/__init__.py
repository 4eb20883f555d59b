"""
Backend Package

HTTP client that forwards stored classes to the backend API.
"""

from .client import BackendClient, BatchResult, UploadResult

__all__ = ["BackendClient", "BatchResult", "UploadResult"]
