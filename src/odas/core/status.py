"""ステータス集計

1回のスキャン結果からのステータス文字列と、
累積介入ログからのシステムヘルスを導出する。
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from datetime import UTC, datetime

from .models import InterventionRecord, Severity, SystemHealth

STATUS_INITIALIZING = "Initializing..."
STATUS_LOADING = "Loading ODAS database..."
STATUS_ONLINE = "ODAS online"
STATUS_NORMAL = "Operationally normal"
STATUS_EVALUATION_ERROR = "Evaluation error"
STATUS_STOPPED = "ODAS stopped"
STATUS_DB_ERROR = "DB Error"

DEFAULT_CRITICAL_ALERT_COUNT = 5


def tick_status(records: list[InterventionRecord]) -> str:
    """スキャン1回分のステータス文字列"""
    if records:
        return f"{len(records)} interventions"
    return STATUS_NORMAL


def count_by_severity(records: Iterable[InterventionRecord]) -> dict[Severity, int]:
    """重要度ごとの件数を集計"""
    counts: Counter[Severity] = Counter(r.severity for r in records)
    return {severity: counts.get(severity, 0) for severity in Severity}


def system_health(
    records: Iterable[InterventionRecord],
    critical_alert_count: int = DEFAULT_CRITICAL_ALERT_COUNT,
) -> SystemHealth:
    """累積ログからシステムヘルスを判定

    Args:
        records: これまでに記録された全介入
        critical_alert_count: この件数を「超える」Critical記録で高警戒とする

    Returns:
        Critical記録が critical_alert_count 超なら CRITICAL、
        1件以上なら WARNING、0件なら OPTIMAL
    """
    critical = count_by_severity(records)[Severity.CRITICAL]
    if critical > critical_alert_count:
        return SystemHealth.CRITICAL
    if critical > 0:
        return SystemHealth.WARNING
    return SystemHealth.OPTIMAL


def newest_first(
    records: Iterable[InterventionRecord], limit: int | None = None
) -> list[InterventionRecord]:
    """記録時刻の新しい順に並べる（同時刻は後から追記された方が先）"""
    ordered = sorted(
        reversed(list(records)),
        key=lambda r: r.logged_at or datetime.min.replace(tzinfo=UTC),
        reverse=True,
    )
    if limit is not None:
        return ordered[:limit]
    return ordered
