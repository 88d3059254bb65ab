from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, HTTPException

from bridge.call import invoke_plugin
from bridge.config import configure_logging, load_settings
from bridge.database import CloudDatabase
from bridge.errors import PluginError
from bridge.plugin import RecordStorePlugin


def create_app(*plugins) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        for plugin in plugins:
            plugin.close()

    app = FastAPI(lifespan=lifespan)
    registry = {plugin.js_name: plugin for plugin in plugins}

    @app.get("/plugins")
    def list_plugins():
        return {
            name: {
                "identifier": plugin.identifier,
                "methods": [
                    {"name": method.name, "returnType": method.return_type}
                    for method in plugin.plugin_methods
                ],
            }
            for name, plugin in registry.items()
        }

    @app.post("/plugins/{plugin_name}/{method}")
    async def call_plugin(plugin_name: str, method: str, options: Optional[Dict[str, Any]] = Body(None)):
        plugin = registry.get(plugin_name)
        if plugin is None:
            raise HTTPException(status_code=404, detail="Plugin not found")

        try:
            return await invoke_plugin(plugin, method, options)
        except PluginError as exc:
            raise HTTPException(status_code=exc.status_code, detail=exc.message)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


settings = load_settings()
configure_logging(settings.log_level)

database = CloudDatabase(settings.store_url, scope=settings.database, max_workers=settings.max_workers)
app = create_app(RecordStorePlugin(database))
