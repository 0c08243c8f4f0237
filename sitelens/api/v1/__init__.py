"""
Version 1 API routers.
"""

from sitelens.api.v1.query import router as query_router

__all__ = ["query_router"]
