"""
测试 config.py 模块：多来源配置合并。
"""

import json

import pytest
from pydantic import ValidationError

from src.certreq.config import Config, ConfigFileSource, config_file_path


def test_defaults(monkeypatch, tmp_path):
    """测试默认配置"""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("CONFIG_FILE", raising=False)
    config = Config(_env_file=None)
    assert config.default_rsa_key_size == 2048
    assert config.request_name_hash_length == 10
    assert config.private_key_annotation_key == "cert-manager.io/private-key-secret-name"


def test_env_overrides_json_file(monkeypatch, tmp_path):
    """测试环境变量优先于 config.json"""
    cfg = tmp_path / "settings.json"
    cfg.write_text(json.dumps({"default_namespace": "from-file", "request_name_hash_length": 12}), encoding="utf-8")
    monkeypatch.setenv("CONFIG_FILE", str(cfg))
    monkeypatch.setenv("CERTREQ_DEFAULT_NAMESPACE", "from-env")

    config = Config(_env_file=None)
    assert config.default_namespace == "from-env"
    assert config.request_name_hash_length == 12


def test_invalid_json_file_is_ignored(monkeypatch, tmp_path):
    """测试损坏的配置文件被忽略"""
    cfg = tmp_path / "config.json"
    cfg.write_text("{not json", encoding="utf-8")
    monkeypatch.setenv("CONFIG_FILE", str(cfg))
    assert Config(_env_file=None).default_namespace == "default"


def test_invalid_bounds():
    """测试非法的 RSA 长度范围与摘要长度"""
    with pytest.raises(ValidationError):
        Config(_env_file=None, min_rsa_key_size=4096, max_rsa_key_size=2048)
    with pytest.raises(ValidationError):
        Config(_env_file=None, default_rsa_key_size=1024)
    with pytest.raises(ValidationError):
        Config(_env_file=None, request_name_hash_length=100)


def test_unknown_json_keys_are_dropped(monkeypatch, tmp_path):
    """测试配置文件中的未知字段被丢弃"""
    cfg = tmp_path / "config.json"
    cfg.write_text(json.dumps({"log_level": "DEBUG", "ca_dir": "/tmp/ca"}), encoding="utf-8")
    monkeypatch.setenv("CONFIG_FILE", str(cfg))
    monkeypatch.delenv("CERTREQ_LOG_LEVEL", raising=False)

    source = ConfigFileSource(Config, config_file_path())
    assert source() == {"log_level": "DEBUG"}
    assert Config(_env_file=None).log_level == "DEBUG"
