"""ODAS CLI

コマンドラインインターフェース。
"""

import argparse
import logging
import sys


def main():
    """メインエントリーポイント"""
    parser = argparse.ArgumentParser(
        description="ODAS - Omnidirectional Digital Asset Steward",
        prog="odas",
    )
    parser.add_argument("--config", default=None, help="設定ファイルパス (odas.config.yaml)")

    subparsers = parser.add_subparsers(dest="command", help="利用可能なコマンド")

    # server コマンド
    server_parser = subparsers.add_parser("server", help="APIサーバーと評価ループを起動")
    server_parser.add_argument("--host", default=None, help="バインドするホスト")
    server_parser.add_argument("--port", type=int, default=None, help="ポート番号")

    # init コマンド
    subparsers.add_parser("init", help="Vaultを初期化")

    # simulate コマンド
    simulate_parser = subparsers.add_parser(
        "simulate", help="タイマーなしで評価ループをN回実行"
    )
    simulate_parser.add_argument("--ticks", type=int, default=10, help="スキャン回数")
    simulate_parser.add_argument("--seed", type=int, default=None, help="乱数シード")
    simulate_parser.add_argument("--vault", default=None, help="Vaultパス（設定を上書き）")

    # status コマンド
    status_parser = subparsers.add_parser("status", help="介入ログの集計を表示")
    status_parser.add_argument("--user-id", default=None, help="ユーザーID")

    args = parser.parse_args()

    if args.command == "server":
        run_server(args)
    elif args.command == "init":
        run_init(args)
    elif args.command == "simulate":
        run_simulate(args)
    elif args.command == "status":
        run_status(args)
    else:
        parser.print_help()
        sys.exit(1)


def _load_settings(args):
    """設定を読み込み、ロギングを構成する"""
    from .core import reload_settings

    settings = reload_settings(getattr(args, "config", None))
    logging.basicConfig(
        level=settings.logging.level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return settings


def run_server(args):
    """APIサーバーを起動"""
    import uvicorn

    settings = _load_settings(args)
    uvicorn.run(
        "odas.api:app",
        host=args.host or settings.server.host,
        port=args.port or settings.server.port,
    )


def run_init(args):
    """Vaultを初期化"""
    settings = _load_settings(args)
    vault_path = settings.get_vault_path()
    vault_path.mkdir(parents=True, exist_ok=True)

    print(f"✓ Vault ディレクトリを作成しました: {vault_path}")
    print(f"✓ App ID: {settings.app.app_id}")
    print(f"✓ スキャン間隔: {settings.loop.interval_seconds}秒")
    print("\n次のステップ:")
    print("  1. odas simulate --ticks 20   # オフラインでシミュレーション")
    print("  2. odas server                # APIサーバーを起動")


def run_simulate(args):
    """シード固定で評価ループをN回実行"""
    import asyncio

    from .core.status import system_health
    from .loop import EvaluationLoop
    from .session import OdasSession

    settings = _load_settings(args)
    if args.seed is not None:
        settings.sampler.seed = args.seed
    if args.vault:
        settings.app.vault_path = args.vault

    async def _simulate():
        session = OdasSession.from_settings(settings)
        await session.open()
        loop = EvaluationLoop.from_settings(settings, session, readiness=session)

        print(f"🛰  ODAS シミュレーション: {args.ticks}回スキャン (seed={settings.sampler.seed})")
        print(f"📁 user_id: {session.user_id}")
        print("-" * 50)
        try:
            results = await loop.run(args.ticks)
            for i, result in enumerate(results, start=1):
                print(f"[{i:>3}] {result.status}")
                for record in result.persisted:
                    print(f"      [{record.path}] {record.severity}: {record.description}")
                for record in result.failures:
                    print(f"      ✗ 記録失敗 [{record.path}] {record.description}")
        finally:
            await loop.stop()
            records = session.log.list_records() if session.log else []
            await session.close()

        health = system_health(records, settings.health.critical_alert_count)
        print("-" * 50)
        print(f"累計介入: {len(records)}件")
        print(f"システムヘルス: {health}")

    asyncio.run(_simulate())


def run_status(args):
    """介入ログの集計を表示"""
    from .core.status import newest_first, system_health
    from .session import OdasSession
    from .store import InterventionLog
    from .store.log import COLLECTION_NAME

    settings = _load_settings(args)
    user_id = args.user_id
    if user_id is None and settings.auth.initial_auth_token:
        try:
            user_id = OdasSession.uid_from_custom_token(settings.auth.initial_auth_token)
        except ValueError:
            user_id = None

    users_dir = settings.get_vault_path() / "artifacts" / settings.app.app_id / "users"
    if user_id is None:
        print("ユーザーIDを --user-id で指定してください。", file=sys.stderr)
        if users_dir.exists():
            for d in sorted(users_dir.iterdir()):
                if d.is_dir():
                    print(f"  - {d.name}", file=sys.stderr)
        sys.exit(1)

    try:
        user_id = OdasSession.uid_from_custom_token(user_id)
    except ValueError:
        print(f"不正なユーザーIDです: {user_id}", file=sys.stderr)
        sys.exit(1)

    log_path = users_dir / user_id / f"{COLLECTION_NAME}.jsonl"
    if not log_path.exists():
        print("介入記録が見つかりません。")
        return

    log = InterventionLog(settings.get_vault_path(), app_id=settings.app.app_id, user_id=user_id)
    records = log.list_records()
    if not records:
        print("介入記録が見つかりません。")
        return

    by_severity = log.count_by_severity()
    print(f"\n=== ODAS: {user_id} ===")
    print(f"累計介入: {len(records)}件")
    for severity, count in by_severity.items():
        print(f"  {severity}: {count}")
    print(f"システムヘルス: {system_health(records, settings.health.critical_alert_count)}")
    print("\n最新の介入:")
    for record in newest_first(records, settings.dashboard.recent_limit):
        logged_at = record.logged_at.isoformat() if record.logged_at else "N/A"
        print(f"  [{record.path}] {record.severity} {logged_at}")
        print(f"    {record.description}")


if __name__ == "__main__":  # pragma: no cover
    main()
