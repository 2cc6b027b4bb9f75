"""
配置加载模块：支持 .env、环境变量、工作目录 config.json（或 CONFIG_FILE 指定）多来源合并。
公开接口：
- Config: 读取配置的设置类（由调用方显式构造并传递，不提供全局单例）
- ConfigFileSource: JSON 配置文件来源
内部方法：
- Config.settings_customise_sources: 自定义配置来源顺序
- Config.check_rsa_bounds: 校验 RSA 密钥长度范围
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Tuple

from loguru import logger
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, PydanticBaseSettingsSource


def config_file_path() -> Path:
    """CONFIG_FILE 指定的路径，默认工作目录下的 config.json。"""
    return Path(os.environ.get("CONFIG_FILE") or Path.cwd() / "config.json")


class ConfigFileSource(PydanticBaseSettingsSource):
    """
    JSON 配置文件来源。文件缺失或损坏时视为空配置，
    只保留 Config 声明过的字段，其余键记录告警后丢弃。
    """

    def __init__(self, settings_cls: type[BaseSettings], path: Path) -> None:
        super().__init__(settings_cls)
        self.path = path
        self.values = self._read()

    def _read(self) -> Dict[str, Any]:
        if not self.path.is_file():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"读取配置文件 {self.path} 失败，已忽略: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"配置文件 {self.path} 顶层不是对象，已忽略")
            return {}
        unknown = sorted(set(data) - set(self.settings_cls.model_fields))
        if unknown:
            logger.warning(f"配置文件 {self.path} 含未知字段: {', '.join(unknown)}")
        return {k: v for k, v in data.items() if k in self.settings_cls.model_fields}

    def get_field_value(self, field, field_name):  # type: ignore[override]
        return self.values.get(field_name), field_name, False

    def __call__(self) -> Dict[str, Any]:
        return dict(self.values)


class Config(BaseSettings):
    default_namespace: str = "default"

    min_rsa_key_size: int = 2048
    max_rsa_key_size: int = 8192
    default_rsa_key_size: int = 2048
    default_ecdsa_key_size: int = 256

    # 名称 = 52 字符前缀 + "-" + 摘要，默认总长不超过 63（DNS label 上限）
    request_name_hash_length: int = 10

    private_key_annotation_key: str = "cert-manager.io/private-key-secret-name"
    certificate_name_annotation_key: str = "cert-manager.io/certificate-name"

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="CERTREQ_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    @field_validator("request_name_hash_length")
    @classmethod
    def check_hash_length(cls, value: int) -> int:
        """摘要截取长度需落在 SHA-256 十六进制长度之内。"""
        if not 4 <= value <= 64:
            raise ValueError("request_name_hash_length 需在 4 到 64 之间")
        return value

    @model_validator(mode="after")
    def check_rsa_bounds(self) -> "Config":
        if self.min_rsa_key_size > self.max_rsa_key_size:
            raise ValueError("min_rsa_key_size 不能大于 max_rsa_key_size")
        if not self.min_rsa_key_size <= self.default_rsa_key_size <= self.max_rsa_key_size:
            raise ValueError("default_rsa_key_size 不在允许范围内")
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """自定义配置来源顺序：入参 > 环境变量 > .env > config.json > secrets。"""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            ConfigFileSource(settings_cls, config_file_path()),
            file_secret_settings,
        )
