from __future__ import annotations

from .request_context import RequestContextMiddleware

__all__ = ["RequestContextMiddleware"]
