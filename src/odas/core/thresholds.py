"""介入しきい値テーブル

各メトリクスに上限または下限を1つずつ割り当てる静的設定。
ルールの並び順がそのまま評価順になる。
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from .config import ThresholdConfig
from .models import InterventionPath, Severity


class BoundKind(StrEnum):
    """しきい値の向き"""

    UPPER = "upper"  # value > bound で発火
    LOWER = "lower"  # value < bound で発火


@dataclass(frozen=True)
class ThresholdRule:
    """1メトリクス分のしきい値ルール

    Attributes:
        metric: MetricSnapshotのフィールド名
        path: 違反時の経路
        kind: 上限/下限
        bound: しきい値
        severity: 違反時の重要度（値の大きさには依存しない）
        template: 説明文テンプレート。{value} に違反値が入る
    """

    metric: str
    path: InterventionPath
    kind: BoundKind
    bound: float
    severity: Severity
    template: str

    def is_breached(self, value: float) -> bool:
        """しきい値違反か判定（境界値ちょうどは違反としない）"""
        if self.kind == BoundKind.UPPER:
            return value > self.bound
        return value < self.bound

    def describe(self, value: float) -> str:
        """違反値を埋め込んだ説明文を生成"""
        return self.template.format(value=value)


@dataclass(frozen=True)
class ThresholdTable:
    """評価順に並んだしきい値ルールの集合"""

    rules: tuple[ThresholdRule, ...]

    @classmethod
    def from_config(cls, config: ThresholdConfig) -> ThresholdTable:
        """設定からしきい値テーブルを構築

        Args:
            config: しきい値設定

        Returns:
            評価順 (Financial-volatility, Financial-liquidity,
            Infrastructure, Persona, Sensor) のテーブル
        """
        return cls(
            rules=(
                ThresholdRule(
                    metric="asset_volatility",
                    path=InterventionPath.FINANCIAL,
                    kind=BoundKind.UPPER,
                    bound=config.max_volatility,
                    severity=Severity.CRITICAL,
                    template=(
                        "Critical asset volatility ({value:.1%}). "
                        "Requires Chronos Executor (CE) lock."
                    ),
                ),
                ThresholdRule(
                    metric="market_liquidity",
                    path=InterventionPath.FINANCIAL,
                    kind=BoundKind.LOWER,
                    bound=config.min_liquidity,
                    severity=Severity.WARNING,
                    template="Low liquidity: ${value:.0f}. Requires fund injection/stabilization.",
                ),
                ThresholdRule(
                    metric="system_latency",
                    path=InterventionPath.INFRASTRUCTURE,
                    kind=BoundKind.UPPER,
                    bound=config.max_latency,
                    severity=Severity.CRITICAL,
                    template=(
                        "Critical system latency ({value:.0f}ms). "
                        "Requires I/O resource reallocation."
                    ),
                ),
                ThresholdRule(
                    metric="public_sentiment",
                    path=InterventionPath.PERSONA,
                    kind=BoundKind.LOWER,
                    bound=config.min_sentiment,
                    severity=Severity.WARNING,
                    template=(
                        "Low public sentiment ({value:.1%}). "
                        "Requires automatic narrative frame shift."
                    ),
                ),
                ThresholdRule(
                    metric="anomaly_score",
                    path=InterventionPath.SENSOR,
                    kind=BoundKind.UPPER,
                    bound=config.max_anomaly_score,
                    severity=Severity.CRITICAL,
                    template=(
                        "Massive data anomaly detected ({value:.1%}). "
                        "Requires Recursive Resonance Alert (RRA)."
                    ),
                ),
            )
        )

    def rule_for(self, metric: str) -> ThresholdRule | None:
        """メトリクス名からルールを取得"""
        for rule in self.rules:
            if rule.metric == metric:
                return rule
        return None


DEFAULT_THRESHOLDS = ThresholdTable.from_config(ThresholdConfig())
