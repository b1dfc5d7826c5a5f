"""ODAS セッション

ユーザー識別とストレージ（介入ログ）の準備を明示的に行うセッション。
準備完了シグナルを評価ループへ、介入ログをシンク/ソースとして公開する。
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import AsyncIterator, Callable
from datetime import datetime
from pathlib import Path

from ulid import ULID

from .core.config import OdasSettings
from .core.models import InterventionRecord
from .store import InterventionLog, SinkUnavailableError

logger = logging.getLogger(__name__)

_UID_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,128}")


class ReadinessTimeoutError(TimeoutError):
    """セッションの準備完了を待ちきれなかった"""

    pass


class OdasSession:
    """ユーザー識別 + 介入ログのセッション

    open() でサインインと介入ログの準備を行い、準備完了シグナルを立てる。
    close() で介入ログを閉じ、準備完了シグナルを下ろす。

    Attributes:
        vault_path: Vaultのベースパス
        app_id: アプリケーションID
        user_id: サインイン後のユーザーID（open前はNone）
    """

    def __init__(
        self,
        vault_path: Path | str,
        *,
        app_id: str = "default-app-id",
        initial_auth_token: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Args:
            vault_path: Vaultのベースパス
            app_id: アプリケーションID
            initial_auth_token: カスタムトークン（"uid:<id>" または "<id>"）
            clock: 介入ログの記録時刻を返す関数
        """
        self.vault_path = Path(vault_path)
        self.app_id = app_id
        self.user_id: str | None = None
        self._initial_auth_token = initial_auth_token
        self._clock = clock
        self._log: InterventionLog | None = None
        self._ready = asyncio.Event()

    @classmethod
    def from_settings(cls, settings: OdasSettings) -> OdasSession:
        """設定からセッションを構築"""
        return cls(
            settings.get_vault_path(),
            app_id=settings.app.app_id,
            initial_auth_token=settings.auth.initial_auth_token,
        )

    # ------------------------------------------------------------------
    # ライフサイクル
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """サインインして介入ログを準備する"""
        if self._ready.is_set():
            return

        self.user_id = self._sign_in()
        self._log = InterventionLog(
            self.vault_path,
            app_id=self.app_id,
            user_id=self.user_id,
            clock=self._clock,
        )
        self._ready.set()
        logger.info(f"ODASセッション開始: user_id={self.user_id} ({self._log.count()}件の介入)")

    async def close(self) -> None:
        """介入ログを閉じてセッションを終了する"""
        self._ready.clear()
        if self._log is not None:
            self._log.close()
            self._log = None
        logger.info(f"ODASセッション終了: user_id={self.user_id}")

    def _sign_in(self) -> str:
        """カスタムトークンでサインインし、失敗時は匿名サインインにフォールバック"""
        token = self._initial_auth_token
        if token:
            try:
                return self.uid_from_custom_token(token)
            except ValueError as e:
                logger.warning(f"カスタムトークンでのサインインに失敗、匿名にフォールバック: {e}")
        return self._sign_in_anonymously()

    @staticmethod
    def uid_from_custom_token(token: str) -> str:
        """カスタムトークン（"uid:<id>" または "<id>"）からユーザーIDを取り出す"""
        uid = token.removeprefix("uid:").strip()
        if not _UID_PATTERN.fullmatch(uid):
            raise ValueError("custom token does not carry a valid uid")
        return uid

    @staticmethod
    def _sign_in_anonymously() -> str:
        return f"anon-{ULID()}"

    # ------------------------------------------------------------------
    # 準備完了シグナル
    # ------------------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    async def wait_ready(self, timeout: float | None = None) -> bool:
        """準備完了を待つ

        Args:
            timeout: 最大待機秒数（Noneで無期限）

        Returns:
            準備完了ならTrue、タイムアウトならFalse
        """
        try:
            await asyncio.wait_for(self._ready.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return True

    async def require_ready(self, timeout: float | None = None) -> InterventionLog:
        """準備完了を待って介入ログを取得

        Raises:
            ReadinessTimeoutError: タイムアウトまでに準備が整わなかった場合
        """
        if not await self.wait_ready(timeout):
            raise ReadinessTimeoutError(f"ODAS session not ready after {timeout}s")
        if self._log is None:
            raise SinkUnavailableError("ODAS session was closed while waiting")
        return self._log

    @property
    def log(self) -> InterventionLog | None:
        return self._log

    # ------------------------------------------------------------------
    # シンク / ソース
    # ------------------------------------------------------------------

    async def append(self, record: InterventionRecord) -> InterventionRecord:
        """介入ログへ追記（シンク）"""
        if self._log is None:
            raise SinkUnavailableError("ODAS session is not open")
        return await self._log.append(record)

    async def watch(self) -> AsyncIterator[list[InterventionRecord]]:
        """介入ログのライブ購読（ソース）"""
        log = await self.require_ready()
        async for records in log.watch():
            yield records
