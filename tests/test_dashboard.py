"""ダッシュボード投影のテスト"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from odas.core.config import DashboardConfig
from odas.core.models import InterventionPath, InterventionRecord, Severity, SystemHealth
from odas.core.status import STATUS_DB_ERROR, STATUS_LOADING
from odas.dashboard import (
    GlobalPanelFeed,
    build_cards,
    build_control_panel,
    build_global_panel,
    format_metric,
)
from odas.store import InterventionLog


def _logged(severity: Severity, seconds: int) -> InterventionRecord:
    return InterventionRecord(
        path=InterventionPath.FINANCIAL,
        description=f"record {seconds}",
        severity=severity,
        logged_at=datetime(2025, 11, 8, tzinfo=UTC) + timedelta(seconds=seconds),
        event_id=f"evt-{seconds}",
    )


class TestFormatMetric:
    """カード表示の整形"""

    @pytest.mark.parametrize(
        "value,unit,expected",
        [
            (0.2, "%", "20.0%"),
            (0.355, "%", "35.5%"),
            (95000.4, "$", "$95000"),
            (180.4, "ms", "180ms"),
        ],
    )
    def test_format(self, value, unit, expected):
        assert format_metric(value, unit) == expected


class TestControlPanel:
    """ODAS Control Panel"""

    def test_cards_flag_breached_metrics(self, all_breached_snapshot, calm_snapshot):
        """違反メトリクスのカードだけ is_critical"""
        # Act
        breached = build_cards(all_breached_snapshot)
        calm = build_cards(calm_snapshot)

        # Assert
        assert [c.title for c in breached] == [
            "Asset Volatility",
            "Market Liquidity",
            "System Latency",
            "Public Sentiment",
            "Anomaly Score",
        ]
        assert all(c.is_critical for c in breached)
        assert not any(c.is_critical for c in calm)
        assert breached[1].display == "$95000"

    def test_control_panel_lists_newest_first(self, calm_snapshot):
        """介入ログ全件を新しい順に表示"""
        # Arrange
        records = [_logged(Severity.WARNING, i) for i in range(8)]

        # Act
        view = build_control_panel(
            status="ODAS online", records=records, snapshot=calm_snapshot, user_id="u1"
        )

        # Assert
        assert view.intervention_count == 8
        assert [r.event_id for r in view.interventions][:2] == ["evt-7", "evt-6"]
        assert len(view.interventions) == 8
        assert view.is_critical is False
        assert len(view.cards) == 5

    def test_control_panel_critical_flag(self):
        """Criticalが1件でもあれば is_critical"""
        # Act
        view = build_control_panel(
            status="1 interventions", records=[_logged(Severity.CRITICAL, 0)]
        )

        # Assert
        assert view.is_critical is True
        assert view.cards == []


class TestGlobalPanel:
    """Global Control Panel"""

    def test_global_panel_aggregates(self):
        """累計数・ヘルス・最新5件"""
        # Arrange
        records = [_logged(Severity.CRITICAL, i) for i in range(6)] + [
            _logged(Severity.WARNING, 10)
        ]

        # Act
        view = build_global_panel(records, user_id="u1")

        # Assert
        assert view.total_interventions == 7
        assert view.system_health == SystemHealth.CRITICAL
        assert [r.event_id for r in view.recent_interventions] == [
            "evt-10",
            "evt-5",
            "evt-4",
            "evt-3",
            "evt-2",
        ]
        assert view.total_assets == 3
        assert view.persona_rating == 92.5

    def test_global_panel_empty(self):
        """記録なしは Optimal"""
        # Act
        view = build_global_panel([], config=DashboardConfig(recent_limit=2))

        # Assert
        assert view.total_interventions == 0
        assert view.system_health == SystemHealth.OPTIMAL
        assert view.recent_interventions == []


class TestGlobalPanelFeed:
    """介入ログ購読による更新"""

    def test_apply_updates_view(self):
        """apply で表示モデルが差し替わる"""
        # Arrange
        feed = GlobalPanelFeed(user_id="u1")

        # Act
        view = feed.apply([_logged(Severity.CRITICAL, 1)])

        # Assert
        assert feed.view is view
        assert view.system_health == SystemHealth.WARNING
        assert feed.updated.is_set()
        assert feed.status == "ODAS online"

    @pytest.mark.asyncio
    async def test_follow_log_watch(self, tmp_path):
        """介入ログのライブ購読に追従する"""
        # Arrange
        log = InterventionLog(tmp_path, app_id="app", user_id="u1")
        feed = GlobalPanelFeed(user_id="u1", critical_alert_count=1)
        task = asyncio.create_task(feed.follow(log.watch()))
        await asyncio.wait_for(feed.updated.wait(), timeout=1)
        feed.updated.clear()

        # Act
        for _ in range(2):
            await log.append(
                InterventionRecord(
                    path=InterventionPath.SENSOR,
                    description="Massive data anomaly detected (90.0%).",
                    severity=Severity.CRITICAL,
                )
            )
        log.close()
        await asyncio.wait_for(task, timeout=1)

        # Assert
        assert feed.view.total_interventions == 2
        assert feed.view.system_health == SystemHealth.CRITICAL

    def test_offline_until_first_update(self):
        """最初の配信までは Offline"""
        # Act
        feed = GlobalPanelFeed(user_id="u1")

        # Assert
        assert feed.view.system_health == SystemHealth.OFFLINE
        assert feed.status == STATUS_LOADING
        assert feed.updated.is_set() is False

    @pytest.mark.asyncio
    async def test_stream_error_sets_db_error(self):
        """購読が失敗すると DB Error / Offline になり、例外は送出しない"""
        # Arrange
        feed = GlobalPanelFeed(user_id="u1")

        async def broken_stream():
            yield [_logged(Severity.CRITICAL, 1)]
            raise OSError("storage unavailable")

        # Act
        await feed.follow(broken_stream())

        # Assert
        assert feed.failed is True
        assert feed.status == STATUS_DB_ERROR
        assert feed.view.system_health == SystemHealth.OFFLINE
        assert feed.view.total_interventions == 1
        assert feed.updated.is_set()
