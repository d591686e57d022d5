from fastapi import FastAPI

from kf_relay.config import get_settings
from kf_relay.dependencies import get_kv_store
from kf_relay.logging_config import get_logger, setup_logging
from kf_relay.routers import admin, callback

setup_logging(get_settings().log_level)

logger = get_logger("main")

app = FastAPI(
    title="kf relay",
    description="Relay between a WeCom customer-service inbox and an OpenAI-compatible chat model",
    version="0.1.0",
)

app.include_router(callback.router)
app.include_router(admin.router)


@app.on_event("shutdown")
async def close_kv_store() -> None:
    if get_kv_store.cache_info().currsize == 0:
        return
    await get_kv_store().close()
    get_kv_store.cache_clear()
    logger.info("Key-value store connection closed")


@app.get("/health")
async def health():
    return {"status": "ok"}
