"""API レスポンスモデル"""

from __future__ import annotations

from pydantic import BaseModel

from ..core.models import InterventionRecord, MetricSnapshot, Severity


class HealthResponse(BaseModel):
    """ヘルスチェックレスポンス"""

    status: str
    version: str
    loop_state: str | None = None
    ready: bool = False


class InterventionListResponse(BaseModel):
    """介入一覧レスポンス"""

    interventions: list[InterventionRecord]
    count: int
    by_severity: dict[Severity, int]


class SnapshotResponse(BaseModel):
    """現在のスナップショット"""

    snapshot: MetricSnapshot
    status: str
