"""メトリクスサンプラー

現在のスナップショットから次のスナップショットを生成する。
実データソースに差し替えられるよう MetricSource プロトコルで抽象化し、
既定実装として有界ランダムウォークのシミュレーションを提供する。
"""

from __future__ import annotations

import random
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Protocol

from .config import InitialSnapshotConfig, SamplerConfig
from .models import MetricSnapshot

# フィールドごとの値域 (下限, 上限)。上限Noneは無制限
FIELD_BOUNDS: dict[str, tuple[float, float | None]] = {
    "asset_volatility": (0.0, 0.5),
    "market_liquidity": (0.0, None),
    "system_latency": (0.0, 300.0),
    "public_sentiment": (0.0, 1.0),
    "anomaly_score": (0.0, 1.0),
}


class MetricSource(Protocol):
    """次のスナップショットを供給する戦略"""

    def next_snapshot(self, current: MetricSnapshot) -> MetricSnapshot: ...


def clamp(value: float, low: float, high: float | None) -> float:
    """値を [low, high] に収める"""
    if high is not None:
        value = min(high, value)
    return max(low, value)


def initial_snapshot(
    config: InitialSnapshotConfig | None = None,
    captured_at: datetime | None = None,
) -> MetricSnapshot:
    """シミュレーション開始時のスナップショット"""
    config = config or InitialSnapshotConfig()
    return MetricSnapshot(
        **config.model_dump(),
        captured_at=captured_at or datetime.now(UTC),
    )


class RandomWalkSampler:
    """有界ランダムウォークによるメトリクスシミュレーター

    各フィールドに一様乱数の変動を独立に加え、値域にクランプする。
    変動はFIELD_BOUNDSの順に引くため、同じシードなら同じ系列になる。

    Attributes:
        deltas: フィールド名 -> (変動下限, 変動上限)
    """

    def __init__(
        self,
        deltas: dict[str, tuple[float, float]] | None = None,
        *,
        seed: int | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Args:
            deltas: フィールドごとの変動幅。未指定時はSamplerConfigの既定値
            seed: 乱数シード（rng未指定時のみ使用）
            rng: 乱数生成器
            clock: 取得時刻を返す関数（テスト用に差し替え可能）
        """
        if deltas is None:
            deltas = self._deltas_from_config(SamplerConfig())
        unknown = set(deltas) - set(FIELD_BOUNDS)
        if unknown:
            raise ValueError(f"Unknown metric fields: {sorted(unknown)}")
        self.deltas = deltas
        self._rng = rng or random.Random(seed)
        self._clock = clock or (lambda: datetime.now(UTC))

    @classmethod
    def from_config(cls, config: SamplerConfig, **kwargs) -> RandomWalkSampler:
        """設定からサンプラーを構築"""
        kwargs.setdefault("seed", config.seed)
        return cls(cls._deltas_from_config(config), **kwargs)

    @staticmethod
    def _deltas_from_config(config: SamplerConfig) -> dict[str, tuple[float, float]]:
        return {
            name: (getattr(config, name).low, getattr(config, name).high) for name in FIELD_BOUNDS
        }

    def next_snapshot(self, current: MetricSnapshot) -> MetricSnapshot:
        """次のスナップショットを生成（入力は変更しない）"""
        values: dict[str, float] = {}
        for name, (low, high) in FIELD_BOUNDS.items():
            delta_low, delta_high = self.deltas.get(name, (0.0, 0.0))
            delta = self._rng.uniform(delta_low, delta_high)
            values[name] = clamp(getattr(current, name) + delta, low, high)

        # 時刻は単調非減少を保証する
        captured_at = max(self._clock(), current.captured_at)
        return MetricSnapshot(**values, captured_at=captured_at)
