"""ODAS 評価ループ

一定間隔でスナップショットを取得・評価し、介入をログへ追記する。

状態遷移:
- IDLE -> RUNNING (準備完了シグナル受信時)
- IDLE/RUNNING -> STOPPED (stop呼び出し時、終端)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

from .core.config import OdasSettings
from .core.evaluator import MalformedSnapshotError, coerce_snapshot, evaluate
from .core.models import InterventionRecord, MetricSnapshot
from .core.sampler import MetricSource, RandomWalkSampler, initial_snapshot
from .core.status import (
    STATUS_EVALUATION_ERROR,
    STATUS_INITIALIZING,
    STATUS_LOADING,
    STATUS_ONLINE,
    STATUS_STOPPED,
    tick_status,
)
from .core.thresholds import DEFAULT_THRESHOLDS, ThresholdTable
from .store import InterventionSink, SinkUnavailableError

logger = logging.getLogger(__name__)


class LoopState(StrEnum):
    """評価ループの状態"""

    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class LoopStateError(Exception):
    """不正な状態での操作"""

    pass


class ReadinessSignal(Protocol):
    """ストレージ/識別の準備完了シグナル"""

    async def wait_ready(self, timeout: float | None = None) -> bool: ...


@dataclass
class TickResult:
    """スキャン1回分の結果"""

    snapshot: MetricSnapshot | None
    interventions: list[InterventionRecord] = field(default_factory=list)
    persisted: list[InterventionRecord] = field(default_factory=list)
    failures: list[InterventionRecord] = field(default_factory=list)
    status: str = ""


TickCallback = Callable[[TickResult], Awaitable[None]]


class EvaluationLoop:
    """サンプリング → 評価 → 追記 を周期実行するドライバー

    スキャンは重ならない: 前回のスキャンが実行中なら次の周期はスキップする。
    追記の失敗はログに残して記録を破棄し、ループは継続する（リトライなし）。

    Attributes:
        status: 現在のステータス文字列
        snapshot: 直近のスナップショット
        tick_count: 完了したスキャン数
        skipped_ticks: 実行中のためスキップした周期数
    """

    def __init__(
        self,
        sink: InterventionSink,
        *,
        source: MetricSource | None = None,
        thresholds: ThresholdTable = DEFAULT_THRESHOLDS,
        initial: MetricSnapshot | None = None,
        interval_seconds: float = 5.0,
        readiness: ReadinessSignal | None = None,
        readiness_timeout: float | None = None,
        on_tick: TickCallback | None = None,
    ):
        """
        Args:
            sink: 介入記録の追記先
            source: スナップショット供給元（未指定時はランダムウォーク）
            thresholds: しきい値テーブル
            initial: 初期スナップショット
            interval_seconds: スキャン間隔秒
            readiness: 準備完了シグナル（未指定時は即時準備完了とみなす）
            readiness_timeout: 準備完了待ちの最大秒数（Noneで無期限）
            on_tick: スキャン完了時のコールバック
        """
        self._sink = sink
        self._source = source or RandomWalkSampler()
        self.thresholds = thresholds
        self.snapshot = initial or initial_snapshot()
        self.interval_seconds = interval_seconds
        self._readiness = readiness
        self.readiness_timeout = readiness_timeout
        self._on_tick = on_tick

        self._state = LoopState.IDLE
        self._scheduler: asyncio.Task | None = None
        self._in_flight: asyncio.Task | None = None
        self.status = STATUS_INITIALIZING
        self.last_result: TickResult | None = None
        self.tick_count = 0
        self.skipped_ticks = 0

    @classmethod
    def from_settings(
        cls,
        settings: OdasSettings,
        sink: InterventionSink,
        *,
        readiness: ReadinessSignal | None = None,
        **kwargs,
    ) -> EvaluationLoop:
        """設定から評価ループを構築"""
        kwargs.setdefault("source", RandomWalkSampler.from_config(settings.sampler))
        kwargs.setdefault("initial", initial_snapshot(settings.sampler.initial))
        return cls(
            sink,
            thresholds=ThresholdTable.from_config(settings.thresholds),
            interval_seconds=settings.loop.interval_seconds,
            readiness=readiness,
            readiness_timeout=settings.loop.readiness_timeout_seconds,
            **kwargs,
        )

    @property
    def state(self) -> LoopState:
        return self._state

    # ------------------------------------------------------------------
    # ライフサイクル
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """準備完了を待って周期スキャンを開始

        Returns:
            RUNNINGに遷移したらTrue。準備完了がタイムアウトした場合は
            IDLEのままFalse（再度startを呼べる）

        Raises:
            LoopStateError: IDLE以外の状態で呼ばれた場合
        """
        if not await self._await_readiness():
            return False
        self._scheduler = asyncio.create_task(self._schedule())
        return True

    async def stop(self) -> None:
        """ループを停止

        以降のスキャンは発火しない。実行中のスキャンの追記は完了まで待つ。
        """
        if self._state == LoopState.STOPPED:
            return
        self._state = LoopState.STOPPED

        if self._scheduler:
            self._scheduler.cancel()
            try:
                await self._scheduler
            except asyncio.CancelledError:
                pass
            self._scheduler = None

        if self._in_flight and not self._in_flight.done():
            await asyncio.wait([self._in_flight])
        self.status = STATUS_STOPPED
        logger.info(f"評価ループ停止: {self.tick_count}回スキャン, {self.skipped_ticks}回スキップ")

    async def run(self, ticks: int) -> list[TickResult]:
        """タイマーを使わずにスキャンをticks回連続実行

        シード固定のサンプラーと組み合わせると再現可能なシミュレーションになる。
        start() で周期実行中のループには使えない。

        Returns:
            各スキャンの結果。準備完了がタイムアウトした場合は空リスト

        Raises:
            LoopStateError: 周期実行中、または停止済みの場合
        """
        if self._scheduler is not None:
            raise LoopStateError("Cannot run ticks while the scheduler is active")
        if self._state == LoopState.IDLE and not await self._await_readiness():
            return []
        return [await self.tick() for _ in range(ticks)]

    async def _await_readiness(self) -> bool:
        """準備完了シグナルを待ってRUNNINGへ遷移"""
        if self._state != LoopState.IDLE:
            raise LoopStateError(f"Cannot start evaluation loop in state {self._state}")

        self.status = STATUS_LOADING
        if self._readiness is not None:
            ready = await self._readiness.wait_ready(self.readiness_timeout)
            if not ready:
                logger.warning(
                    f"準備完了シグナルが{self.readiness_timeout}秒以内に届かず、IDLEのまま待機"
                )
                return False

        # 待機中にstopされた場合
        if self._state != LoopState.IDLE:
            return False

        self._state = LoopState.RUNNING
        self.status = STATUS_ONLINE
        logger.info(f"評価ループ開始: interval={self.interval_seconds}s")
        return True

    async def _schedule(self) -> None:
        """スキャン間隔ごとにスキャンを起動（実行中ならスキップ）"""
        while self._state == LoopState.RUNNING:
            await asyncio.sleep(self.interval_seconds)

            if self._state != LoopState.RUNNING:
                break

            if self._in_flight is not None and not self._in_flight.done():
                self.skipped_ticks += 1
                logger.warning("前回のスキャンが実行中のため今回の周期をスキップ")
                continue

            self._in_flight = asyncio.create_task(self._scheduled_tick())
            self._in_flight.add_done_callback(self._on_tick_done)

    async def _scheduled_tick(self) -> TickResult | None:
        # 起動待ちの間にstopされた場合は実行しない
        if self._state != LoopState.RUNNING:
            return None
        return await self.tick()

    @staticmethod
    def _on_tick_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"スキャン中に予期しないエラー: {exc!r}", exc_info=exc)

    # ------------------------------------------------------------------
    # スキャン
    # ------------------------------------------------------------------

    async def tick(self) -> TickResult:
        """スキャンを1回実行

        sample → evaluate → 介入を評価順に1件ずつ追記 → ステータス更新。

        Raises:
            LoopStateError: RUNNING以外の状態で呼ばれた場合
        """
        if self._state != LoopState.RUNNING:
            raise LoopStateError(f"Cannot tick evaluation loop in state {self._state}")

        try:
            snapshot = coerce_snapshot(self._source.next_snapshot(self.snapshot))
            interventions = evaluate(snapshot, self.thresholds)
        except MalformedSnapshotError as e:
            logger.error(f"スナップショットが不正なためスキャンをスキップ: {e}")
            self.status = STATUS_EVALUATION_ERROR
            result = TickResult(snapshot=None, status=self.status)
            self.last_result = result
            return result

        self.snapshot = snapshot
        self.status = tick_status(interventions)
        result = TickResult(snapshot=snapshot, interventions=interventions, status=self.status)

        for record in interventions:
            try:
                result.persisted.append(await self._sink.append(record))
            except (SinkUnavailableError, OSError) as e:
                # 書き込み済みの記録は残し、この記録だけ破棄する
                logger.error(f"介入の記録に失敗したため破棄: [{record.path}] {e}")
                result.failures.append(record)
            except Exception:
                logger.exception(f"シンクの予期しないエラーのため介入を破棄: [{record.path}]")
                result.failures.append(record)

        self.tick_count += 1
        self.last_result = result

        if self._on_tick:
            try:
                await self._on_tick(result)
            except Exception:
                logger.exception("スキャンコールバックエラー")

        return result
