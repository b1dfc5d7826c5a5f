"""ODAS セッションのテスト"""

import asyncio

import pytest

from odas.core.config import AppConfig, AuthConfig, OdasSettings
from odas.core.models import InterventionPath, InterventionRecord, Severity
from odas.session import OdasSession, ReadinessTimeoutError
from odas.store import SinkUnavailableError


def _record() -> InterventionRecord:
    return InterventionRecord(
        path=InterventionPath.SENSOR,
        description="Massive data anomaly detected (90.0%).",
        severity=Severity.CRITICAL,
    )


class TestSignIn:
    """サインイン"""

    @pytest.mark.asyncio
    async def test_custom_token_sets_user_id(self, tmp_path):
        """カスタムトークンのuidがユーザーIDになる"""
        # Arrange
        session = OdasSession(tmp_path, initial_auth_token="uid:operator-01")

        # Act
        await session.open()

        # Assert
        assert session.user_id == "operator-01"
        assert session.log.user_id == "operator-01"
        await session.close()

    @pytest.mark.asyncio
    async def test_no_token_signs_in_anonymously(self, tmp_path):
        """トークンなしは匿名ユーザー"""
        # Arrange
        session = OdasSession(tmp_path)

        # Act
        await session.open()

        # Assert
        assert session.user_id.startswith("anon-")
        await session.close()

    @pytest.mark.asyncio
    async def test_invalid_token_falls_back_to_anonymous(self, tmp_path):
        """不正なトークンは匿名にフォールバック"""
        # Arrange
        session = OdasSession(tmp_path, initial_auth_token="uid:../../etc")

        # Act
        await session.open()

        # Assert
        assert session.user_id.startswith("anon-")
        await session.close()

    @pytest.mark.parametrize(
        "token,expected",
        [("uid:abc", "abc"), ("abc_123", "abc_123"), ("uid: spaced ", "spaced")],
    )
    def test_uid_from_custom_token(self, token, expected):
        """トークンからユーザーIDを取り出す"""
        assert OdasSession.uid_from_custom_token(token) == expected

    @pytest.mark.parametrize("token", ["uid:", "a/b", "uid:has space"])
    def test_uid_from_invalid_token(self, token):
        """不正なトークンはValueError"""
        with pytest.raises(ValueError):
            OdasSession.uid_from_custom_token(token)

    def test_from_settings(self, tmp_path):
        """設定から構築"""
        # Arrange
        settings = OdasSettings(
            app=AppConfig(app_id="my-app", vault_path=str(tmp_path)),
            auth=AuthConfig(initial_auth_token="uid:me"),
        )

        # Act
        session = OdasSession.from_settings(settings)

        # Assert
        assert session.app_id == "my-app"
        assert session.vault_path == tmp_path.resolve()


class TestReadiness:
    """準備完了シグナル"""

    @pytest.mark.asyncio
    async def test_wait_ready_times_out(self, tmp_path):
        """open前はタイムアウトでFalse"""
        # Arrange
        session = OdasSession(tmp_path)

        # Act
        ready = await session.wait_ready(timeout=0.01)

        # Assert
        assert ready is False
        assert session.is_ready is False

    @pytest.mark.asyncio
    async def test_require_ready_raises_on_timeout(self, tmp_path):
        """require_ready はタイムアウトで ReadinessTimeoutError"""
        # Arrange
        session = OdasSession(tmp_path)

        # Act & Assert
        with pytest.raises(ReadinessTimeoutError):
            await session.require_ready(timeout=0.01)

    @pytest.mark.asyncio
    async def test_wait_ready_released_by_open(self, tmp_path):
        """待機中にopenされると準備完了になる"""
        # Arrange
        session = OdasSession(tmp_path, initial_auth_token="uid:late")
        waiter = asyncio.create_task(session.wait_ready(timeout=5))
        await asyncio.sleep(0)

        # Act
        await session.open()

        # Assert
        assert await waiter is True
        log = await session.require_ready(timeout=1)
        assert log is session.log
        await session.close()

    @pytest.mark.asyncio
    async def test_require_ready_after_close_raises(self, tmp_path):
        """待機中に開いてすぐ閉じられた場合は SinkUnavailableError"""
        # Arrange
        session = OdasSession(tmp_path, initial_auth_token="uid:brief")
        waiter = asyncio.create_task(session.require_ready(timeout=1))
        await asyncio.sleep(0)

        # Act
        await session.open()
        await session.close()

        # Assert
        with pytest.raises(SinkUnavailableError):
            await waiter

    @pytest.mark.asyncio
    async def test_close_clears_readiness(self, tmp_path):
        """close後は準備完了でなくなる"""
        # Arrange
        session = OdasSession(tmp_path)
        await session.open()

        # Act
        await session.close()

        # Assert
        assert session.is_ready is False
        assert session.log is None


class TestSinkAndSource:
    """シンク / ソースとしての振る舞い"""

    @pytest.mark.asyncio
    async def test_append_before_open_raises(self, tmp_path):
        """open前の追記は SinkUnavailableError"""
        # Arrange
        session = OdasSession(tmp_path)

        # Act & Assert
        with pytest.raises(SinkUnavailableError):
            await session.append(_record())

    @pytest.mark.asyncio
    async def test_append_delegates_to_log(self, tmp_path, fixed_clock):
        """追記は介入ログに委譲される"""
        # Arrange
        session = OdasSession(tmp_path, initial_auth_token="uid:writer", clock=fixed_clock)
        await session.open()

        # Act
        stored = await session.append(_record())

        # Assert
        assert stored.event_id is not None
        assert session.log.list_records() == [stored]
        await session.close()

    @pytest.mark.asyncio
    async def test_watch_ends_on_close(self, tmp_path):
        """close でライブ購読が終了する"""
        # Arrange
        session = OdasSession(tmp_path, initial_auth_token="uid:watcher")
        await session.open()
        stream = session.watch()
        assert await anext(stream) == []

        # Act
        await session.append(_record())
        update = await anext(stream)
        await session.close()

        # Assert
        assert len(update) == 1
        with pytest.raises(StopAsyncIteration):
            await anext(stream)
