"""
FastAPI 应用入口点。
"""

import sys

from loguru import logger
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.certreq.config import Config
from src.certreq.request.router import router as certificate_request_router
from src.certreq.request.versions import default_registry

config = Config()

logger.remove()
logger.add(sys.stderr, level=config.log_level.upper())

app = FastAPI(title="Certificate Request Builder")
app.state.config = config
app.state.registry = default_registry()
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(certificate_request_router, prefix="/v1")

logger.info(f"config: {config.model_dump_json(indent=4)}")
logger.info(f"支持的 Certificate 版本: {app.state.registry.api_versions()}")


@app.get("/healthz")
async def healthz() -> dict:
    return {"status": "ok"}
