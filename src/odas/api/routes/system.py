"""System エンドポイント

ヘルスチェックなどシステム系のエンドポイント。
"""

from fastapi import APIRouter

from ... import __version__
from ..dependencies import AppState
from ..models import HealthResponse

router = APIRouter(tags=["System"])


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """ヘルスチェック"""
    state = AppState.get_instance()
    return HealthResponse(
        status="healthy",
        version=__version__,
        loop_state=str(state.loop.state) if state.loop else None,
        ready=state.session.is_ready if state.session else False,
    )
