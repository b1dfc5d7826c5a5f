"""ODAS 評価コア

メトリクススナップショットをしきい値テーブルと比較し、
違反ごとに介入記録を生成する純粋関数群。
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from .models import METRIC_FIELDS, InterventionRecord, MetricSnapshot
from .thresholds import DEFAULT_THRESHOLDS, ThresholdTable


class MalformedSnapshotError(ValueError):
    """必須フィールドの欠落・不正なスナップショット"""

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(message)
        self.missing = missing or []


def coerce_snapshot(data: MetricSnapshot | Mapping[str, Any]) -> MetricSnapshot:
    """入力をMetricSnapshotに正規化

    Args:
        data: MetricSnapshot または生のドキュメント（辞書）

    Returns:
        検証済みのMetricSnapshot

    Raises:
        MalformedSnapshotError: 必須フィールドの欠落、または値が不正な場合
    """
    if isinstance(data, MetricSnapshot):
        return data
    if not isinstance(data, Mapping):
        raise MalformedSnapshotError(f"Unsupported snapshot type: {type(data).__name__}")

    missing = [name for name in METRIC_FIELDS if data.get(name) is None]
    if missing:
        raise MalformedSnapshotError(
            f"Snapshot is missing required fields: {', '.join(missing)}",
            missing=missing,
        )

    try:
        return MetricSnapshot.model_validate(dict(data))
    except ValidationError as e:
        raise MalformedSnapshotError(f"Invalid snapshot: {e}") from e


def evaluate(
    snapshot: MetricSnapshot | Mapping[str, Any],
    thresholds: ThresholdTable = DEFAULT_THRESHOLDS,
) -> list[InterventionRecord]:
    """スナップショットを評価して介入記録を生成

    違反したしきい値ごとに1件、テーブルの評価順で返す。
    最初の違反で打ち切らず、全ルールを評価する。

    Args:
        snapshot: 評価対象のスナップショット
        thresholds: しきい値テーブル

    Returns:
        介入記録のリスト（空の場合は全経路が正常範囲）

    Raises:
        MalformedSnapshotError: スナップショットが不正な場合
    """
    checked = coerce_snapshot(snapshot)
    records: list[InterventionRecord] = []

    for rule in thresholds.rules:
        value = getattr(checked, rule.metric)
        if rule.is_breached(value):
            records.append(
                InterventionRecord(
                    path=rule.path,
                    description=rule.describe(value),
                    severity=rule.severity,
                )
            )

    return records


def breached_metrics(
    snapshot: MetricSnapshot | Mapping[str, Any],
    thresholds: ThresholdTable = DEFAULT_THRESHOLDS,
) -> dict[str, bool]:
    """メトリクスごとのしきい値違反フラグ

    ダッシュボードのメトリクスカード強調表示に使う。
    """
    checked = coerce_snapshot(snapshot)
    return {rule.metric: rule.is_breached(getattr(checked, rule.metric)) for rule in thresholds.rules}
