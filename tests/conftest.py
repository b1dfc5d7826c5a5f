"""ODAS テスト設定"""

from datetime import UTC, datetime, timedelta

import pytest

from odas.core.models import InterventionRecord, MetricSnapshot
from odas.store import SinkUnavailableError


@pytest.fixture(autouse=True)
def reset_settings():
    """テストごとに設定シングルトンをリセット"""
    import odas.core.config as config

    config._settings = None
    yield
    config._settings = None


@pytest.fixture
def fixed_clock():
    """呼ぶたびに1秒進む固定時計"""
    start = datetime(2025, 11, 8, 9, 30, 0, tzinfo=UTC)
    state = {"n": 0}

    def clock() -> datetime:
        value = start + timedelta(seconds=state["n"])
        state["n"] += 1
        return value

    return clock


@pytest.fixture
def calm_snapshot():
    """全メトリクスが正常範囲のスナップショット"""
    return MetricSnapshot(
        asset_volatility=0.05,
        market_liquidity=500000,
        system_latency=50,
        public_sentiment=0.80,
        anomaly_score=0.30,
        captured_at=datetime(2025, 11, 8, 9, 30, 0, tzinfo=UTC),
    )


@pytest.fixture
def all_breached_snapshot():
    """全しきい値に違反するスナップショット"""
    return MetricSnapshot(
        asset_volatility=0.20,
        market_liquidity=95000,
        system_latency=180,
        public_sentiment=0.35,
        anomaly_score=0.90,
        captured_at=datetime(2025, 11, 8, 9, 30, 0, tzinfo=UTC),
    )


class RecordingSink:
    """テスト用の介入シンク

    fail_on で指定した呼び出し番号（1始まり）で SinkUnavailableError を送出する。
    """

    def __init__(self, fail_on: set[int] | None = None):
        self.records: list[InterventionRecord] = []
        self.fail_on = fail_on or set()
        self.calls = 0

    async def append(self, record: InterventionRecord) -> InterventionRecord:
        self.calls += 1
        if self.calls in self.fail_on:
            raise SinkUnavailableError("sink down")
        stored = record.model_copy(
            update={"event_id": f"evt-{self.calls}", "logged_at": datetime.now(UTC)}
        )
        self.records.append(stored)
        return stored


class ScriptedSource:
    """決められた順にスナップショットを返すソース（最後の要素を繰り返す）"""

    def __init__(self, snapshots):
        self.snapshots = list(snapshots)
        self.calls = 0

    def next_snapshot(self, current):
        index = min(self.calls, len(self.snapshots) - 1)
        self.calls += 1
        return self.snapshots[index]


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def sink_factory():
    """RecordingSink のファクトリ"""
    return RecordingSink


@pytest.fixture
def scripted_source():
    """ScriptedSource のファクトリ"""
    return ScriptedSource
