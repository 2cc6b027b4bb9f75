#!/usr/bin/env python
import uvicorn
import os
from dotenv import load_dotenv
from pathlib import Path

from loguru import logger

if __name__ == "__main__":
    logger.info("Certificate Request Builder, start running!")
    load_dotenv(Path.cwd() / ".env")
    logger.info(f"当前应用环境：{os.getenv('APP_ENV')}")
    log_level = os.getenv("CERTREQ_LOG_LEVEL", "INFO").lower()

    uvicorn.run(
        "src.certreq.main:app",
        host=os.getenv("CERTREQ_HOST", "0.0.0.0"),
        port=int(os.getenv("CERTREQ_PORT", "8000")),
        reload=os.getenv("APP_ENV", "dev") == "dev",
        log_level=log_level,
    )
