import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from bridge.errors import PluginError

logger = logging.getLogger(__name__)


class PluginCall:
    """A pending call from the host bridge.

    ``resolve`` and ``reject`` settle the caller's promise and must run on
    the host loop. Work finishing on other threads hands its completion to
    ``dispatch``, which schedules it there.
    """

    def __init__(self, method_name: str, options: Optional[Dict[str, Any]], loop: asyncio.AbstractEventLoop):
        self.method_name = method_name
        self.options = options or {}
        self.loop = loop
        self.promise: asyncio.Future = loop.create_future()

    def get_string(self, key: str) -> Optional[str]:
        value = self.options.get(key)
        return value if isinstance(value, str) else None

    def get_object(self, key: str) -> Optional[Dict[str, Any]]:
        value = self.options.get(key)
        return value if isinstance(value, dict) else None

    def dispatch(self, fn: Callable[[], None]):
        self.loop.call_soon_threadsafe(fn)

    def resolve(self, data: Optional[Dict[str, Any]] = None):
        if self.promise.done():
            logger.warning("Call %s already settled; dropping resolve", self.method_name)
            return
        self.promise.set_result(data or {})

    def reject(self, error: PluginError):
        if self.promise.done():
            logger.warning("Call %s already settled; dropping reject: %s", self.method_name, error.message)
            return
        logger.info("Call %s rejected: %s", self.method_name, error.message)
        self.promise.set_exception(error)


async def invoke_plugin(plugin, method_name: str, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Run one plugin method and wait for it to settle.

    Raises the ``PluginError`` the call was rejected with.
    """
    call = PluginCall(method_name, options, asyncio.get_running_loop())
    plugin.invoke(call)
    return await call.promise
