import asyncio
import logging
import threading
from contextlib import asynccontextmanager
from urllib.parse import urlsplit

from pyVim.connect import Disconnect, SmartConnect

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10
DEFAULT_PATH = "/sdk"
DEFAULT_PORT = 443


class SessionError(Exception):
    pass


async def call_with_deadline(timeout, fn, *args, **kwargs):
    name = getattr(fn, "__name__", repr(fn))
    try:
        return await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), timeout)
    except asyncio.TimeoutError:
        raise SessionError(f"{name} did not complete within {timeout}s") from None


class Session:
    """A logged in vSphere API connection, valid for one scrape.

    Every remote operation goes through ``call`` so that it runs outside the
    event loop and is bounded by the per-call timeout.
    """

    def __init__(self, service_instance, content, timeout=DEFAULT_TIMEOUT):
        self.service_instance = service_instance
        self.content = content
        self.timeout = timeout

    async def call(self, fn, *args, **kwargs):
        return await call_with_deadline(self.timeout, fn, *args, **kwargs)

    async def current_time(self):
        return await self.call(self.service_instance.CurrentTime)

    def managed_object(self, entity):
        return entity.type.vim_type(entity.id, self.service_instance._stub)


def _disconnect_late(future):
    """Logs out of a session whose login finished after its deadline."""
    if future.cancelled() or future.exception() is not None:
        return

    def disconnect():
        try:
            Disconnect(future.result())
        except Exception as e:
            log.warning(f"Logout of late session failed: {e}")

    threading.Thread(target=disconnect, daemon=True).start()


async def login(url, user, password, no_verify_ssl=False, timeout=DEFAULT_TIMEOUT):
    target = urlsplit(url)

    log.debug(f"Logging in to {target.hostname} as {user}")
    # The worker thread outlives a timeout, so its result is kept to be released.
    connecting = asyncio.ensure_future(asyncio.to_thread(SmartConnect,
                                                         protocol=target.scheme or "https",
                                                         host=target.hostname,
                                                         port=target.port or DEFAULT_PORT,
                                                         path=target.path or DEFAULT_PATH,
                                                         user=user,
                                                         pwd=password,
                                                         disableSslCertValidation=no_verify_ssl,
                                                         httpConnectionTimeout=timeout))
    try:
        service_instance = await asyncio.wait_for(asyncio.shield(connecting), timeout)
    except asyncio.TimeoutError:
        connecting.add_done_callback(_disconnect_late)
        raise SessionError(f"SmartConnect did not complete within {timeout}s") from None

    session = Session(service_instance, None, timeout)
    try:
        session.content = await session.call(service_instance.RetrieveContent)
    except Exception:
        await release(session)
        raise

    return session


async def logout(session):
    await session.call(Disconnect, session.service_instance)


async def release(session):
    try:
        await logout(session)
    except Exception as e:
        log.warning(f"Logout failed: {e}")


@asynccontextmanager
async def open_session(settings):
    session = await login(settings.target_url,
                          settings.target_user,
                          settings.target_password,
                          no_verify_ssl=settings.no_verify_ssl,
                          timeout=settings.timeout)
    try:
        yield session
    finally:
        await release(session)
