"""ダッシュボード投影

評価ループと介入ログから2つのパネル表示モデルを組み立てる:
- ControlPanelView: メトリクスカード・マスターステータス・介入ログ全件
- GlobalPanelView: 累計介入数・システムヘルス・最新介入
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from pydantic import BaseModel, Field

from .core.config import DashboardConfig
from .core.evaluator import breached_metrics
from .core.models import InterventionRecord, MetricSnapshot, Severity, SystemHealth
from .core.status import (
    DEFAULT_CRITICAL_ALERT_COUNT,
    STATUS_DB_ERROR,
    STATUS_LOADING,
    STATUS_ONLINE,
    newest_first,
    system_health,
)
from .core.thresholds import DEFAULT_THRESHOLDS, ThresholdTable

logger = logging.getLogger(__name__)

# メトリクス名 -> (表示タイトル, 単位)
METRIC_CARDS: dict[str, tuple[str, str]] = {
    "asset_volatility": ("Asset Volatility", "%"),
    "market_liquidity": ("Market Liquidity", "$"),
    "system_latency": ("System Latency", "ms"),
    "public_sentiment": ("Public Sentiment", "%"),
    "anomaly_score": ("Anomaly Score", "%"),
}


def format_metric(value: float, unit: str) -> str:
    """カード表示用に値を整形"""
    if unit == "$":
        return f"${value:.0f}"
    if unit == "%":
        return f"{value * 100:.1f}%"
    return f"{value:.0f}{unit}"


class MetricCard(BaseModel):
    """メトリクスカード"""

    metric: str
    title: str
    value: float
    display: str
    is_critical: bool


class ControlPanelView(BaseModel):
    """ODAS Control Panel の表示モデル"""

    status: str
    user_id: str | None = None
    snapshot: MetricSnapshot | None = None
    cards: list[MetricCard] = Field(default_factory=list)
    is_critical: bool = False
    intervention_count: int = 0
    interventions: list[InterventionRecord] = Field(default_factory=list)


class GlobalPanelView(BaseModel):
    """Global Control Panel の表示モデル"""

    user_id: str | None = None
    total_assets: int = 0
    persona_rating: float = 0.0
    total_interventions: int = 0
    system_health: SystemHealth = SystemHealth.OFFLINE
    recent_interventions: list[InterventionRecord] = Field(default_factory=list)


def build_cards(
    snapshot: MetricSnapshot,
    thresholds: ThresholdTable = DEFAULT_THRESHOLDS,
) -> list[MetricCard]:
    """スナップショットからメトリクスカードを生成"""
    flags = breached_metrics(snapshot, thresholds)
    cards = []
    for metric, (title, unit) in METRIC_CARDS.items():
        value = getattr(snapshot, metric)
        cards.append(
            MetricCard(
                metric=metric,
                title=title,
                value=value,
                display=format_metric(value, unit),
                is_critical=flags.get(metric, False),
            )
        )
    return cards


def build_control_panel(
    *,
    status: str,
    records: list[InterventionRecord],
    snapshot: MetricSnapshot | None = None,
    user_id: str | None = None,
    thresholds: ThresholdTable = DEFAULT_THRESHOLDS,
) -> ControlPanelView:
    """ODAS Control Panel を組み立てる"""
    return ControlPanelView(
        status=status,
        user_id=user_id,
        snapshot=snapshot,
        cards=build_cards(snapshot, thresholds) if snapshot else [],
        is_critical=any(r.severity == Severity.CRITICAL for r in records),
        intervention_count=len(records),
        interventions=newest_first(records),
    )


def build_global_panel(
    records: list[InterventionRecord],
    *,
    user_id: str | None = None,
    config: DashboardConfig | None = None,
    critical_alert_count: int = DEFAULT_CRITICAL_ALERT_COUNT,
) -> GlobalPanelView:
    """Global Control Panel を組み立てる"""
    config = config or DashboardConfig()
    return GlobalPanelView(
        user_id=user_id,
        total_assets=config.total_assets,
        persona_rating=config.persona_rating,
        total_interventions=len(records),
        system_health=system_health(records, critical_alert_count),
        recent_interventions=newest_first(records, config.recent_limit),
    )


class GlobalPanelFeed:
    """介入ログの購読から Global Control Panel を最新に保つ

    follow() に InterventionSource.watch() のストリームを渡すと、
    更新のたびに view を差し替える。最初の配信までは Offline、
    購読が失敗すると Offline に戻し status を DB Error にする。
    """

    def __init__(
        self,
        *,
        user_id: str | None = None,
        config: DashboardConfig | None = None,
        critical_alert_count: int = DEFAULT_CRITICAL_ALERT_COUNT,
    ):
        self.user_id = user_id
        self.config = config or DashboardConfig()
        self.critical_alert_count = critical_alert_count
        self.view = GlobalPanelView(
            user_id=user_id,
            total_assets=self.config.total_assets,
            persona_rating=self.config.persona_rating,
        )
        self.status = STATUS_LOADING
        self.updated = asyncio.Event()

    @property
    def failed(self) -> bool:
        return self.status == STATUS_DB_ERROR

    def apply(self, records: list[InterventionRecord]) -> GlobalPanelView:
        """全記録から表示モデルを再計算"""
        previous = self.view.system_health
        self.view = build_global_panel(
            records,
            user_id=self.user_id,
            config=self.config,
            critical_alert_count=self.critical_alert_count,
        )
        self.status = STATUS_ONLINE
        if self.view.system_health != previous:
            logger.info(f"システムヘルス変化: {previous} -> {self.view.system_health}")
        self.updated.set()
        return self.view

    async def follow(self, stream: AsyncIterator[list[InterventionRecord]]) -> None:
        """ストリームが終わるまで表示モデルを更新し続ける

        ストリームの例外は送出せず、エラー状態に切り替えて終了する。
        """
        try:
            async for records in stream:
                self.apply(records)
        except Exception:
            logger.exception("介入ログの購読に失敗")
            self.status = STATUS_DB_ERROR
            self.view = self.view.model_copy(update={"system_health": SystemHealth.OFFLINE})
            self.updated.set()
