"""ODAS 設定管理モジュール

Pydantic Settingsを使用した型安全な設定管理。
odas.config.yaml と環境変数から設定を読み込む。
"""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseModel):
    """アプリケーション基本設定"""

    app_id: str = Field(default="default-app-id", description="アプリケーションID")
    vault_path: str = Field(default="./Vault", description="介入ログの保存先")


class AuthConfig(BaseModel):
    """セッション認証設定"""

    initial_auth_token: str | None = Field(
        default=None, description="カスタムトークン（未設定時は匿名サインイン）"
    )


class ThresholdConfig(BaseModel):
    """介入しきい値設定"""

    max_volatility: float = Field(default=0.15, ge=0.0, description="資産ボラティリティ上限")
    min_liquidity: float = Field(default=100000, ge=0.0, description="市場流動性下限")
    max_latency: float = Field(default=150, ge=0.0, description="システムレイテンシ上限 (ms)")
    min_sentiment: float = Field(default=0.40, ge=0.0, le=1.0, description="世論感情下限")
    max_anomaly_score: float = Field(
        default=0.85, ge=0.0, le=1.0, description="異常スコア上限"
    )


class DeltaRange(BaseModel):
    """1ステップあたりの変動幅"""

    low: float
    high: float


class InitialSnapshotConfig(BaseModel):
    """シミュレーション開始時のメトリクス"""

    asset_volatility: float = Field(default=0.05, ge=0.0, le=0.5)
    market_liquidity: float = Field(default=500000, ge=0.0)
    system_latency: float = Field(default=50, ge=0.0, le=300)
    public_sentiment: float = Field(default=0.80, ge=0.0, le=1.0)
    anomaly_score: float = Field(default=0.30, ge=0.0, le=1.0)


class SamplerConfig(BaseModel):
    """メトリクスサンプラー設定"""

    seed: int | None = Field(default=None, description="乱数シード（再現実行用）")
    initial: InitialSnapshotConfig = Field(default_factory=InitialSnapshotConfig)
    asset_volatility: DeltaRange = Field(default_factory=lambda: DeltaRange(low=-0.05, high=0.05))
    market_liquidity: DeltaRange = Field(
        default_factory=lambda: DeltaRange(low=-30000, high=20000)
    )
    system_latency: DeltaRange = Field(default_factory=lambda: DeltaRange(low=-20, high=20))
    public_sentiment: DeltaRange = Field(default_factory=lambda: DeltaRange(low=-0.1, high=0.1))
    anomaly_score: DeltaRange = Field(default_factory=lambda: DeltaRange(low=-0.1, high=0.2))


class LoopConfig(BaseModel):
    """評価ループ設定"""

    interval_seconds: float = Field(default=5.0, gt=0.0, description="スキャン間隔秒")
    readiness_timeout_seconds: float | None = Field(
        default=30.0, gt=0.0, description="準備完了待ちタイムアウト秒（None=無期限）"
    )


class HealthConfig(BaseModel):
    """システムヘルス判定設定"""

    critical_alert_count: int = Field(
        default=5, ge=0, description="この件数を超えるCritical記録で高警戒"
    )


class DashboardConfig(BaseModel):
    """ダッシュボード表示設定"""

    recent_limit: int = Field(default=5, ge=1, le=100, description="最新介入の表示件数")
    total_assets: int = Field(default=3, ge=0, description="管理資産数（暫定値）")
    persona_rating: float = Field(default=92.5, ge=0.0, le=100.0, description="PersonaFrameスコア")


class CORSConfig(BaseModel):
    """CORS設定"""

    enabled: bool = Field(default=True, description="CORSを有効にするか")
    allow_origins: list[str] = Field(
        default=["*"],
        description="許可するオリジン（本番では具体的なオリジンを指定）",
    )
    allow_credentials: bool = Field(default=True)
    allow_methods: list[str] = Field(default=["*"])
    allow_headers: list[str] = Field(default=["*"])


class ServerConfig(BaseModel):
    """サーバー設定"""

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1, le=65535)
    cors: CORSConfig = Field(default_factory=CORSConfig)


class LoggingConfig(BaseModel):
    """ロギング設定"""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")


class OdasSettings(BaseSettings):
    """ODAS全体設定

    設定の優先順位:
    1. 環境変数
    2. odas.config.yaml
    3. デフォルト値
    """

    model_config = SettingsConfigDict(
        env_prefix="ODAS_",
        env_nested_delimiter="__",
    )

    app: AppConfig = Field(default_factory=AppConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    thresholds: ThresholdConfig = Field(default_factory=ThresholdConfig)
    sampler: SamplerConfig = Field(default_factory=SamplerConfig)
    loop: LoopConfig = Field(default_factory=LoopConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    dashboard: DashboardConfig = Field(default_factory=DashboardConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, config_path: Path | str | None = None) -> "OdasSettings":
        """YAMLファイルから設定を読み込む

        Args:
            config_path: 設定ファイルパス。Noneの場合はデフォルトパスを探索

        Returns:
            OdasSettings インスタンス
        """
        if config_path is None:
            search_paths = [
                Path.cwd() / "odas.config.yaml",
                Path.cwd() / "odas.config.yml",
                Path.home() / ".odas" / "config.yaml",
            ]
            for path in search_paths:
                if path.exists():
                    config_path = path
                    break

        if config_path and Path(config_path).exists():
            with open(config_path, encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f) or {}
            return cls.model_validate(yaml_config)

        return cls()

    def get_vault_path(self) -> Path:
        """Vaultパスを絶対パスで取得"""
        vault = Path(self.app.vault_path)
        if not vault.is_absolute():
            vault = Path.cwd() / vault
        return vault.resolve()


# グローバル設定インスタンス（遅延初期化）
_settings: OdasSettings | None = None


def get_settings() -> OdasSettings:
    """設定シングルトンを取得"""
    global _settings
    if _settings is None:
        _settings = OdasSettings.from_yaml()
    return _settings


def reload_settings(config_path: Path | str | None = None) -> OdasSettings:
    """設定を再読み込み"""
    global _settings
    _settings = OdasSettings.from_yaml(config_path)
    return _settings
