"""Demo server routes."""
from hxengine.routes.pages import router

__all__ = ["router"]
