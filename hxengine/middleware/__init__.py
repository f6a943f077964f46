"""Demo server middleware."""
from hxengine.middleware.hx import HxRequestMiddleware

__all__ = ["HxRequestMiddleware"]
