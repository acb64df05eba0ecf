# =============================================================================
# tests/unit/test_connection_manager.py
# Unit Tests for the Connectivity Flag
# =============================================================================

import socket
from unittest.mock import MagicMock

import pytest

from dma_core.offline.connection_manager import ConnectionManager, ConnectionStatus
from dma_core.state import AppContext


class TestConnectivityFlag:
    """Flag toggled by platform signals"""

    def test_default_online(self):
        manager = ConnectionManager()

        assert manager.is_online
        assert manager.status == ConnectionStatus.ONLINE

    def test_start_offline(self):
        manager = ConnectionManager(online=False)

        assert manager.is_offline
        assert manager.state.last_online is None

    def test_toggle(self):
        manager = ConnectionManager()

        manager.set_offline()
        assert manager.is_offline
        manager.set_online()
        assert manager.is_online
        assert manager.state.last_change is not None

    def test_status_display(self):
        manager = ConnectionManager()
        manager.set_offline()

        display = manager.get_status_display()

        assert display["status"] == "offline"
        assert display["is_online"] is False


class TestCallbacks:
    """Change notifications"""

    def test_callback_on_change_only(self):
        manager = ConnectionManager()
        callback = MagicMock()
        manager.register_callback(callback)

        manager.set_online()            # no change
        manager.set_offline()

        callback.assert_called_once()
        assert callback.call_args[0][0].status == ConnectionStatus.OFFLINE

    def test_failing_callback_does_not_propagate(self):
        manager = ConnectionManager()
        good = MagicMock()
        manager.register_callback(MagicMock(side_effect=RuntimeError("ui gone")))
        manager.register_callback(good)

        manager.set_offline()

        good.assert_called_once()

    def test_unregister(self):
        manager = ConnectionManager()
        callback = MagicMock()
        manager.register_callback(callback)
        manager.unregister_callback(callback)

        manager.set_offline()

        callback.assert_not_called()


class TestProbe:
    """Explicit Supabase host probe"""

    def test_probe_failure_goes_offline(self, monkeypatch):
        def refuse(address, timeout=None):
            raise OSError("connection refused")

        monkeypatch.setattr(socket, "create_connection", refuse)
        manager = ConnectionManager()

        state = manager.check_connection("https://example.supabase.co")

        assert state.status == ConnectionStatus.OFFLINE
        assert "refused" in state.error_message

    def test_probe_success_goes_online(self, monkeypatch):
        probe = MagicMock()
        monkeypatch.setattr(socket, "create_connection", probe)
        manager = ConnectionManager(online=False)

        manager.check_connection("https://example.supabase.co")

        assert manager.is_online
        probe.assert_called_once_with(("example.supabase.co", 443), timeout=ConnectionManager.CONNECTION_TIMEOUT)

    def test_no_url_leaves_flag(self, monkeypatch):
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        manager = ConnectionManager(online=False)

        manager.check_connection()

        assert manager.is_offline


class TestAppContext:
    """Per-operation context"""

    def test_samples_flag_once(self, encoder):
        manager = ConnectionManager()
        ctx = AppContext.from_connection(encoder, manager)

        manager.set_offline()

        assert ctx.is_online

    @pytest.mark.parametrize("role,allowed", [
        ("admin", True),
        ("encoder", True),
        ("viewer", False),
    ])
    def test_can_record_status(self, role, allowed):
        from dma_core.data.models import User

        ctx = AppContext(user=User(id="u", role=role))

        assert ctx.can_record_status is allowed

    def test_anonymous_cannot_record(self):
        assert not AppContext().can_record_status

    def test_knows_municipality(self):
        ctx = AppContext(location_data={"Daraga": ["Busay", "Tagas"]})

        assert ctx.knows_municipality("Daraga")
        assert not ctx.knows_municipality("Atlantis")
        assert AppContext().knows_municipality("Anywhere")
