"""ODAS データモデル

メトリクススナップショットと介入記録のPydanticモデル。
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class InterventionPath(StrEnum):
    """監視対象の経路"""

    FINANCIAL = "Financial"
    INFRASTRUCTURE = "Infrastructure"
    PERSONA = "Persona"
    SENSOR = "Sensor"


class Severity(StrEnum):
    """介入の重要度"""

    CRITICAL = "Critical"
    WARNING = "Warning"


class SystemHealth(StrEnum):
    """累積介入履歴から導出されるシステムヘルス"""

    OPTIMAL = "Optimal"
    WARNING = "Warning"
    CRITICAL = "Critical/high-alert"
    OFFLINE = "Offline"  # 介入ログ未受信


# スナップショットの必須メトリクス（評価順）
METRIC_FIELDS: tuple[str, ...] = (
    "asset_volatility",
    "market_liquidity",
    "system_latency",
    "public_sentiment",
    "anomaly_score",
)


class MetricSnapshot(BaseModel):
    """ある時点の全メトリクスの読み取り値"""

    model_config = ConfigDict(frozen=True)

    asset_volatility: float = Field(..., ge=0.0, description="資産ボラティリティ (割合)")
    market_liquidity: float = Field(..., ge=0.0, description="市場流動性 (通貨額)")
    system_latency: float = Field(..., ge=0.0, description="システムレイテンシ (ms)")
    public_sentiment: float = Field(..., ge=0.0, description="世論感情 (割合)")
    anomaly_score: float = Field(..., ge=0.0, description="異常スコア (割合)")
    captured_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="取得時刻"
    )


class InterventionRecord(BaseModel):
    """しきい値違反から生成される介入記録

    評価直後は event_id / logged_at が未設定。
    ログへの追記時にシンク側が値を割り当てたコピーを返す。
    """

    model_config = ConfigDict(frozen=True)

    path: InterventionPath = Field(..., description="違反した経路")
    description: str = Field(..., description="違反値を含む説明文")
    severity: Severity = Field(..., description="重要度")
    logged_at: datetime | None = Field(default=None, description="記録時刻 (シンクが付与)")
    event_id: str | None = Field(default=None, description="記録ID (シンクが付与)")

    @property
    def is_persisted(self) -> bool:
        """ログに記録済みか"""
        return self.event_id is not None
