"""
证书请求名称的确定性计算。

名称 = DNS 安全的证书名（最多 52 个字符）+ "-" + 规格摘要前缀。
摘要输入为签发相关字段的规范化 JSON（键排序、紧凑分隔符、UTF-8），
哈希算法为 SHA-256。name / namespace / labels / annotations 不参与计算。
调整字段集合或编码方式会改变所有已有名称。
"""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any, Dict

from loguru import logger

from src.certreq.config import Config
from .errors import HashingFailure
from .keys import resolve_key_parameters
from .schemas import CertificateSpec

MAX_NAME_PREFIX_LENGTH = 52

_NON_ALNUM_TAIL = re.compile(r"[^a-zA-Z0-9]+$")


def dns_safe_shorten(name: str, length: int = MAX_NAME_PREFIX_LENGTH) -> str:
    """截断到 length 个字符，并去掉结尾的非字母数字字符。"""
    if len(name) <= length:
        return name
    return _NON_ALNUM_TAIL.sub("", name[:length])


def canonical_spec_payload(spec: CertificateSpec, config: Config) -> Dict[str, Any]:
    """
    抽取参与名称计算的签发相关字段。
    密钥长度使用解析后的值，使 "未指定" 与 "显式指定默认值" 得到相同名称。
    """
    algorithm, size = resolve_key_parameters(spec, config)
    return {
        "common_name": spec.common_name,
        "subject": spec.subject.model_dump(mode="json"),
        "dns_names": list(spec.dns_names),
        "ip_addresses": list(spec.ip_addresses),
        "uri_sans": list(spec.uri_sans),
        "email_sans": list(spec.email_sans),
        "duration": spec.duration.total_seconds() if spec.duration is not None else None,
        "issuer_ref": spec.issuer_ref.model_dump(mode="json"),
        "is_ca": spec.is_ca,
        "usages": sorted({u.value for u in spec.usages}),
        "key_algorithm": algorithm.value,
        "key_size": size,
        "key_encoding": spec.key_encoding,
        "secret_name": spec.secret_name,
    }


def spec_digest(spec: CertificateSpec, config: Config) -> str:
    """
    规格摘要（SHA-256 十六进制）。
    :raises HashingFailure: 规范化编码失败。
    """
    payload = canonical_spec_payload(spec, config)
    try:
        data = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as e:
        logger.error(f"规范化证书规格失败: {e}")
        raise HashingFailure(f"内部错误：无法对证书规格进行哈希: {e}") from e
    return hashlib.sha256(data).hexdigest()


def compute_request_name(spec: CertificateSpec, config: Config) -> str:
    """
    计算证书请求的确定性名称。
    :param spec: 证书规格。
    :param config: 配置，提供摘要截取长度。
    :return: 例如 "web-3f2a9c01b7"。
    :raises HashingFailure: 规范化编码失败。
    :raises UnsupportedAlgorithm: 密钥参数不受支持。
    """
    digest = spec_digest(spec, config)
    return f"{dns_safe_shorten(spec.name)}-{digest[:config.request_name_hash_length]}"
