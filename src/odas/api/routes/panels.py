"""Panel エンドポイント

ODAS Control Panel / Global Control Panel の表示モデルと
介入ログ・現在のスナップショットを提供する。
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ...core.status import STATUS_DB_ERROR
from ...dashboard import (
    ControlPanelView,
    GlobalPanelView,
    build_control_panel,
)
from ..dependencies import AppState, get_app_state
from ..models import InterventionListResponse, SnapshotResponse

router = APIRouter(tags=["Panels"])


@router.get("/panel", response_model=ControlPanelView)
async def get_control_panel(state: AppState = Depends(get_app_state)) -> ControlPanelView:
    """ODAS Control Panel

    マスターステータス、メトリクスカード、介入ログ全件（新しい順）。
    """
    log = state.session.log
    return build_control_panel(
        status=STATUS_DB_ERROR if state.feed and state.feed.failed else state.loop.status,
        records=log.list_records() if log else [],
        snapshot=state.loop.snapshot,
        user_id=state.session.user_id,
        thresholds=state.loop.thresholds,
    )


@router.get("/global", response_model=GlobalPanelView)
async def get_global_panel(state: AppState = Depends(get_app_state)) -> GlobalPanelView:
    """Global Control Panel

    介入ログの購読から維持している累計値とシステムヘルス。
    """
    return state.feed.view


@router.get("/interventions", response_model=InterventionListResponse)
async def list_interventions(
    limit: int | None = Query(default=None, ge=1, le=1000, description="最大件数"),
    state: AppState = Depends(get_app_state),
) -> InterventionListResponse:
    """介入一覧を取得（新しい順）"""
    log = state.session.log
    if log is None:
        return InterventionListResponse(interventions=[], count=0, by_severity={})
    return InterventionListResponse(
        interventions=log.recent(limit),
        count=log.count(),
        by_severity=log.count_by_severity(),
    )


@router.get("/snapshot", response_model=SnapshotResponse)
async def get_snapshot(state: AppState = Depends(get_app_state)) -> SnapshotResponse:
    """現在のメトリクススナップショット"""
    return SnapshotResponse(snapshot=state.loop.snapshot, status=state.loop.status)
