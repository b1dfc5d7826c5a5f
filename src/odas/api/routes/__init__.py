"""API ルート

FastAPIルーターを機能別に分割。
"""

from .panels import router as panels_router
from .system import router as system_router

__all__ = [
    "panels_router",
    "system_router",
]
