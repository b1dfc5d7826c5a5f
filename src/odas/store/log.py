"""Intervention Log - JSONL永続化

評価ループが生成した介入記録を追記専用のJSONLファイルに保存する。
記録IDと記録時刻はログ側で付与し、クライアント側の時刻は信用しない。
内容が変わるたびに全記録を購読者へ配信する。
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

import portalocker
from ulid import ULID

from ..core.models import InterventionRecord, Severity
from ..core.status import count_by_severity, newest_first

logger = logging.getLogger(__name__)

COLLECTION_NAME = "odas_interventions"


class SinkUnavailableError(Exception):
    """介入ログへの書き込み失敗"""

    pass


class InterventionSink(Protocol):
    """介入記録の追記先"""

    async def append(self, record: InterventionRecord) -> InterventionRecord: ...


class InterventionSource(Protocol):
    """介入記録の全件をライブ配信する読み取り口"""

    def watch(self) -> AsyncIterator[list[InterventionRecord]]: ...


class InterventionLog:
    """介入記録の追記専用ストレージ

    {base_path}/artifacts/{app_id}/users/{user_id}/odas_interventions.jsonl
    に追記形式で保存し、起動時にJSONLからメモリキャッシュを復元する。
    ファイルロックで同時書き込みを防止。
    """

    def __init__(
        self,
        base_path: Path | str,
        *,
        app_id: str,
        user_id: str,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Args:
            base_path: Vaultのベースパス
            app_id: アプリケーションID
            user_id: セッションのユーザーID
            clock: 記録時刻を返す関数（テスト用に差し替え可能）
        """
        self.app_id = app_id
        self.user_id = user_id
        self.base_path = Path(base_path) / "artifacts" / app_id / "users" / user_id
        self.base_path.mkdir(parents=True, exist_ok=True)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._records: list[InterventionRecord] = []
        self._subscribers: list[asyncio.Queue[list[InterventionRecord] | None]] = []
        self._closed = False
        self._replay()

    @property
    def path(self) -> Path:
        return self.base_path / f"{COLLECTION_NAME}.jsonl"

    @property
    def closed(self) -> bool:
        return self._closed

    # =========================================================================
    # 書き込み
    # =========================================================================

    async def append(self, record: InterventionRecord) -> InterventionRecord:
        """介入記録を追記

        Args:
            record: 評価器が生成した介入記録

        Returns:
            event_id と logged_at が付与された記録

        Raises:
            SinkUnavailableError: ログが閉じている、または書き込みに失敗した場合
        """
        if self._closed:
            raise SinkUnavailableError("Intervention log is closed")

        stored = record.model_copy(
            update={"event_id": str(ULID()), "logged_at": self._clock()}
        )
        try:
            await asyncio.to_thread(self._append_jsonl, stored)
        except (OSError, portalocker.LockException) as e:
            raise SinkUnavailableError(f"Failed to append intervention: {e}") from e

        self._records.append(stored)
        self._publish()
        return stored

    def close(self) -> None:
        """ログを閉じ、全購読を終了する"""
        self._closed = True
        for queue in self._subscribers:
            # 未配信の最新状態は残す（配信後に watch 側で終了する）
            if not queue.full():
                queue.put_nowait(None)

    # =========================================================================
    # 読み取り
    # =========================================================================

    def list_records(self) -> list[InterventionRecord]:
        """全記録を追記順で取得"""
        return list(self._records)

    def recent(self, limit: int | None = None) -> list[InterventionRecord]:
        """記録時刻の新しい順で取得"""
        return newest_first(self._records, limit)

    def count(self) -> int:
        return len(self._records)

    def count_by_severity(self) -> dict[Severity, int]:
        return count_by_severity(self._records)

    async def watch(self) -> AsyncIterator[list[InterventionRecord]]:
        """全記録のライブ購読

        購読開始時に現在の全記録を返し、以降は変更のたびに全記録を返す。
        呼び出すたびに新しい購読になる。ログが閉じられると終了する。

        Yields:
            その時点の全介入記録（追記順）
        """
        queue: asyncio.Queue[list[InterventionRecord] | None] = asyncio.Queue(maxsize=1)
        self._subscribers.append(queue)
        try:
            if self._closed:
                return
            yield self.list_records()
            while True:
                if self._closed and queue.empty():
                    return
                records = await queue.get()
                if records is None:
                    return
                yield records
        finally:
            self._subscribers = [q for q in self._subscribers if q is not queue]

    # =========================================================================
    # 配信
    # =========================================================================

    def _publish(self) -> None:
        snapshot = self.list_records()
        for queue in self._subscribers:
            self._offer(queue, snapshot)

    @staticmethod
    def _offer(
        queue: asyncio.Queue[list[InterventionRecord] | None],
        item: list[InterventionRecord],
    ) -> None:
        """最新状態だけを残してキューに投入"""
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(item)

    # =========================================================================
    # 永続化
    # =========================================================================

    def _append_jsonl(self, record: InterventionRecord) -> None:
        """JSONLファイルにレコードを追記"""
        data = record.model_dump(mode="json")
        line = json.dumps(data, ensure_ascii=False, sort_keys=True)
        with portalocker.Lock(self.path, mode="a+b", timeout=10) as f:
            f.seek(0, 2)
            f.write((line + "\n").encode("utf-8"))

    def _replay(self) -> None:
        """JSONLファイルからメモリキャッシュを復元"""
        if not self.path.exists():
            return
        with portalocker.Lock(self.path, mode="rb", timeout=10) as f:
            for raw in f:
                try:
                    stripped = raw.decode("utf-8").strip()
                    if not stripped:
                        continue
                    self._records.append(InterventionRecord.model_validate_json(stripped))
                except ValueError as e:
                    # UnicodeDecodeError / ValidationError とも ValueError
                    logger.warning(f"Intervention読み込みエラー: {e}")
        logger.debug(f"介入ログを復元: {len(self._records)}件 ({self.path})")
