import asyncio
import time
from unittest.mock import MagicMock, patch

import pytest

from vmomi_exporter.config import Settings
from vmomi_exporter.session import Session, SessionError, call_with_deadline, login, open_session


@pytest.mark.asyncio
async def test_call_returns_result():
    assert await call_with_deadline(1, max, 1, 5) == 5


@pytest.mark.asyncio
async def test_call_deadline():
    with pytest.raises(SessionError, match="sleep did not complete within 0.05s"):
        await call_with_deadline(0.05, time.sleep, 0.5)


@pytest.mark.asyncio
async def test_remote_fault_propagates():
    def fault():
        raise ValueError("InvalidLogin")

    with pytest.raises(ValueError):
        await call_with_deadline(1, fault)


@pytest.mark.asyncio
async def test_login_parses_url():
    service_instance = MagicMock()

    with patch("vmomi_exporter.session.SmartConnect", return_value=service_instance) as connect:
        session = await login("https://vcenter.example.com:8443/sdk", "admin", "secret", no_verify_ssl=True, timeout=7)

    connect.assert_called_once_with(protocol="https",
                                    host="vcenter.example.com",
                                    port=8443,
                                    path="/sdk",
                                    user="admin",
                                    pwd="secret",
                                    disableSslCertValidation=True,
                                    httpConnectionTimeout=7)
    assert session.content is service_instance.RetrieveContent.return_value
    assert session.timeout == 7


@pytest.mark.asyncio
async def test_login_defaults():
    with patch("vmomi_exporter.session.SmartConnect") as connect:
        await login("https://10.0.0.1", "admin", "secret")

    kwargs = connect.call_args.kwargs
    assert kwargs["port"] == 443
    assert kwargs["path"] == "/sdk"
    assert kwargs["disableSslCertValidation"] is False


@pytest.mark.asyncio
async def test_login_logs_out_when_content_fails():
    service_instance = MagicMock()
    service_instance.RetrieveContent.side_effect = RuntimeError("boom")

    with patch("vmomi_exporter.session.SmartConnect", return_value=service_instance), \
            patch("vmomi_exporter.session.Disconnect") as disconnect:
        with pytest.raises(RuntimeError):
            await login("https://10.0.0.1/sdk", "admin", "secret")

    disconnect.assert_called_once_with(service_instance)


@pytest.mark.asyncio
async def test_late_login_is_logged_out():
    service_instance = MagicMock()

    def slow_connect(**kwargs):
        time.sleep(0.3)
        return service_instance

    with patch("vmomi_exporter.session.SmartConnect", side_effect=slow_connect), \
            patch("vmomi_exporter.session.Disconnect") as disconnect:
        with pytest.raises(SessionError, match="SmartConnect did not complete within 0.05s"):
            await login("https://10.0.0.1/sdk", "admin", "secret", timeout=0.05)

        disconnect.assert_not_called()
        await asyncio.sleep(0.5)

    disconnect.assert_called_once_with(service_instance)


@pytest.mark.asyncio
async def test_failed_late_login_is_ignored():
    def slow_fault(**kwargs):
        time.sleep(0.2)
        raise ValueError("InvalidLogin")

    with patch("vmomi_exporter.session.SmartConnect", side_effect=slow_fault), \
            patch("vmomi_exporter.session.Disconnect") as disconnect:
        with pytest.raises(SessionError):
            await login("https://10.0.0.1/sdk", "admin", "secret", timeout=0.05)

        await asyncio.sleep(0.4)

    disconnect.assert_not_called()


@pytest.mark.asyncio
async def test_open_session_logs_out_on_error():
    settings = Settings(target_url="https://10.0.0.1/sdk", target_user="admin", target_password="secret")

    with patch("vmomi_exporter.session.SmartConnect"), patch("vmomi_exporter.session.Disconnect") as disconnect:
        with pytest.raises(KeyError):
            async with open_session(settings):
                raise KeyError("perfManager")

    disconnect.assert_called_once()


@pytest.mark.asyncio
async def test_logout_failure_is_logged(caplog):
    settings = Settings(target_url="https://10.0.0.1/sdk", target_user="admin", target_password="secret")

    with patch("vmomi_exporter.session.SmartConnect"), \
            patch("vmomi_exporter.session.Disconnect", side_effect=OSError("reset")):
        async with open_session(settings) as session:
            assert isinstance(session, Session)

    assert "Logout failed: reset" in caplog.text


def test_managed_object(host):
    service_instance = MagicMock()
    service_instance._stub = None

    obj = Session(service_instance, MagicMock()).managed_object(host)

    assert obj._moId == "host-1"
    assert obj._wsdlName == "HostSystem"
