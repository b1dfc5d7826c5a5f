"""API 依存性注入

FastAPIの依存性注入パターンでセッション・評価ループを管理。
テスト時にモックへの差し替えが容易になります。
"""

from __future__ import annotations

import asyncio

from fastapi import HTTPException, status

from ..core.config import OdasSettings
from ..dashboard import GlobalPanelFeed
from ..loop import EvaluationLoop
from ..session import OdasSession


class AppState:
    """アプリケーション状態

    シングルトンパターンで状態を管理。
    テスト時は reset() でリセット可能。
    """

    _instance: AppState | None = None

    def __init__(self) -> None:
        self.settings: OdasSettings | None = None
        self.session: OdasSession | None = None
        self.loop: EvaluationLoop | None = None
        self.feed: GlobalPanelFeed | None = None
        self.feed_task: asyncio.Task | None = None

    @classmethod
    def get_instance(cls) -> AppState:
        """シングルトンインスタンスを取得"""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """インスタンスをリセット（テスト用）"""
        cls._instance = None

    @property
    def started(self) -> bool:
        return self.session is not None and self.loop is not None


def get_app_state() -> AppState:
    """起動済みのアプリケーション状態を取得

    Raises:
        HTTPException: セッションが未起動の場合 503
    """
    state = AppState.get_instance()
    if not state.started:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="ODAS session is not ready",
        )
    return state
