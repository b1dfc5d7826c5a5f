"""ODAS Core モジュール

評価コアのロジックを提供:
- Config: 設定管理
- Models: スナップショット・介入記録
- Thresholds / Evaluator: しきい値評価
- Sampler: メトリクスシミュレーション
- Status: ステータス・システムヘルス集計
"""

from .config import OdasSettings, get_settings, reload_settings
from .evaluator import MalformedSnapshotError, breached_metrics, evaluate
from .models import (
    InterventionPath,
    InterventionRecord,
    MetricSnapshot,
    Severity,
    SystemHealth,
)
from .sampler import MetricSource, RandomWalkSampler, initial_snapshot
from .status import system_health, tick_status
from .thresholds import DEFAULT_THRESHOLDS, BoundKind, ThresholdRule, ThresholdTable

__all__ = [
    # Config
    "get_settings",
    "reload_settings",
    "OdasSettings",
    # Models
    "InterventionPath",
    "InterventionRecord",
    "MetricSnapshot",
    "Severity",
    "SystemHealth",
    # Evaluation
    "BoundKind",
    "DEFAULT_THRESHOLDS",
    "MalformedSnapshotError",
    "ThresholdRule",
    "ThresholdTable",
    "breached_metrics",
    "evaluate",
    # Sampler
    "MetricSource",
    "RandomWalkSampler",
    "initial_snapshot",
    # Status
    "system_health",
    "tick_status",
]
