"""ODAS Control API

FastAPIベースのREST API。
起動時にセッションと評価ループを開始し、パネル表示モデルを提供する。
"""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..core import get_settings
from ..dashboard import GlobalPanelFeed
from ..loop import EvaluationLoop
from ..session import OdasSession
from .dependencies import AppState
from .routes import panels_router, system_router

logger = logging.getLogger(__name__)

# --- ライフサイクル ---


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """アプリケーションライフサイクル"""
    # 起動時
    settings = get_settings()
    state = AppState.get_instance()
    state.settings = settings

    session = OdasSession.from_settings(settings)
    await session.open()
    state.session = session

    feed = GlobalPanelFeed(
        user_id=session.user_id,
        config=settings.dashboard,
        critical_alert_count=settings.health.critical_alert_count,
    )
    state.feed = feed
    state.feed_task = asyncio.create_task(feed.follow(session.watch()))
    # 初回の全件配信を反映してから受け付ける
    await asyncio.wait_for(feed.updated.wait(), timeout=5)

    loop = EvaluationLoop.from_settings(settings, session, readiness=session)
    state.loop = loop
    await loop.start()

    yield

    # シャットダウン時
    await loop.stop()
    await session.close()
    if state.feed_task:
        try:
            await asyncio.wait_for(state.feed_task, timeout=5)
        except TimeoutError:
            logger.warning("介入ログ購読の終了待ちがタイムアウト")
            state.feed_task.cancel()
    AppState.reset()


# --- FastAPIアプリケーション ---

app = FastAPI(
    title="ODAS Control API",
    description="ODAS 評価コアのパネル・介入ログAPI",
    version=__version__,
    lifespan=lifespan,
)

# CORS設定（設定ファイルから読み込み）
cors_config = get_settings().server.cors
if cors_config.enabled:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_config.allow_origins,
        allow_credentials=cors_config.allow_credentials,
        allow_methods=cors_config.allow_methods,
        allow_headers=cors_config.allow_headers,
    )

app.include_router(system_router)
app.include_router(panels_router)
