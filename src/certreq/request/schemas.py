"""
证书请求流水线的数据模型定义。

公开接口：
- KeyAlgorithm / KeyEncoding / KeyUsage: 支持的算法、编码与用途
- IssuerRef / X509Subject / CertificateSpec: 流水线输入
- IssuanceRequestRecord: 流水线产出
- CertificateRequestCreate / CertificateRequestResponse / RequestNameResponse: HTTP 接口模型
- parse_duration / format_duration: Go 风格时长字符串的解析与输出
"""

from __future__ import annotations

import base64
import re
from datetime import timedelta
from enum import Enum
from types import MappingProxyType
from typing import Annotated, Any, Dict, Mapping, Tuple

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer, field_validator

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|us|µs|d|h|m|s)")
_DURATION_UNITS = {
    "d": 86400.0,
    "h": 3600.0,
    "m": 60.0,
    "s": 1.0,
    "ms": 0.001,
    "us": 0.000001,
    "µs": 0.000001,
}


def parse_duration(value: str) -> timedelta:
    """
    解析 Go 风格的时长字符串，额外支持天单位。
    :param value: 例如 "2160h"、"1h30m"、"90d"。
    :return: 对应的 timedelta。
    :raises ValueError: 格式无效时。
    """
    text = value.strip()
    if not text:
        raise ValueError("时长不能为空")
    pos = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            raise ValueError(f"无效的时长: {value}")
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise ValueError(f"无效的时长: {value}")
    return timedelta(seconds=seconds)


def _fraction(value: int, width: int) -> str:
    """小数部分，去掉末尾的 0。"""
    digits = f"{value:0{width}d}".rstrip("0")
    return f".{digits}" if digits else ""


def format_duration(value: timedelta) -> str:
    """以 Go time.Duration 的格式输出时长，例如 2160h0m0s、1.5s、90ms。"""
    micros = value // timedelta(microseconds=1)
    if micros == 0:
        return "0s"
    if micros < 1000:
        return f"{micros}µs"
    if micros < 1_000_000:
        millis, rest = divmod(micros, 1000)
        return f"{millis}{_fraction(rest, 3)}ms"
    total, rest = divmod(micros, 1_000_000)
    seconds = f"{total % 60}{_fraction(rest, 6)}s"
    hours, minutes = divmod(total // 60, 60)
    if hours:
        return f"{hours}h{minutes}m{seconds}"
    if minutes:
        return f"{minutes}m{seconds}"
    return seconds


def _freeze_mapping(value: Mapping[str, str]) -> Mapping[str, str]:
    return MappingProxyType(dict(value))


def _thaw_mapping(value: Mapping[str, str]) -> Dict[str, str]:
    return dict(value)


# 构造后只读的字符串映射，序列化时还原为普通 dict
FrozenStrMap = Annotated[
    Dict[str, str],
    AfterValidator(_freeze_mapping),
    PlainSerializer(_thaw_mapping),
]


class KeyAlgorithm(str, Enum):
    RSA = "rsa"
    ECDSA = "ecdsa"


class KeyEncoding(str, Enum):
    PKCS1 = "pkcs1"
    PKCS8 = "pkcs8"


class KeyUsage(str, Enum):
    """
    证书用途，取值与 cert-manager 保持一致。
    也接受 "ServerAuth" 这类驼峰写法。
    """

    SIGNING = "signing"
    DIGITAL_SIGNATURE = "digital signature"
    CONTENT_COMMITMENT = "content commitment"
    KEY_ENCIPHERMENT = "key encipherment"
    KEY_AGREEMENT = "key agreement"
    DATA_ENCIPHERMENT = "data encipherment"
    CERT_SIGN = "cert sign"
    CRL_SIGN = "crl sign"
    ENCIPHER_ONLY = "encipher only"
    DECIPHER_ONLY = "decipher only"
    ANY = "any"
    SERVER_AUTH = "server auth"
    CLIENT_AUTH = "client auth"
    CODE_SIGNING = "code signing"
    EMAIL_PROTECTION = "email protection"
    SMIME = "s/mime"
    IPSEC_END_SYSTEM = "ipsec end system"
    IPSEC_TUNNEL = "ipsec tunnel"
    IPSEC_USER = "ipsec user"
    TIMESTAMPING = "timestamping"
    OCSP_SIGNING = "ocsp signing"
    MICROSOFT_SGC = "microsoft sgc"
    NETSCAPE_SGC = "netscape sgc"

    @classmethod
    def _missing_(cls, value: object):
        if not isinstance(value, str):
            return None
        text = re.sub(r"(?<=[a-z])(?=[A-Z])", " ", value.strip()).lower()
        text = re.sub(r"[\s_-]+", " ", text)
        for member in cls:
            if member.value == text:
                return member
        return None


class IssuerRef(BaseModel):
    """签发者引用。"""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    kind: str = "Issuer"
    group: str = "cert-manager.io"


class X509Subject(BaseModel):
    """证书主题中除 CN 以外的字段。"""

    model_config = ConfigDict(frozen=True)

    organizations: Tuple[str, ...] = ()
    countries: Tuple[str, ...] = ()
    organizational_units: Tuple[str, ...] = ()
    localities: Tuple[str, ...] = ()
    provinces: Tuple[str, ...] = ()
    street_addresses: Tuple[str, ...] = ()
    postal_codes: Tuple[str, ...] = ()
    serial_number: str = ""


class CertificateSpec(BaseModel):
    """
    流水线输入：已完成版本转换、命名空间合并的证书规格。
    key_algorithm / key_encoding 保留原始字符串，由密钥生成与编码环节判定是否支持。
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    namespace: str | None = None
    labels: FrozenStrMap = Field(default_factory=dict, validate_default=True)
    annotations: FrozenStrMap = Field(default_factory=dict, validate_default=True)

    secret_name: str = ""
    common_name: str = ""
    subject: X509Subject = Field(default_factory=X509Subject)
    dns_names: Tuple[str, ...] = ()
    ip_addresses: Tuple[str, ...] = ()
    uri_sans: Tuple[str, ...] = ()
    email_sans: Tuple[str, ...] = ()

    duration: timedelta | None = None
    issuer_ref: IssuerRef
    is_ca: bool = False
    usages: Tuple[KeyUsage, ...] = ()

    key_algorithm: str = KeyAlgorithm.RSA.value
    key_size: int | None = None
    key_encoding: str = KeyEncoding.PKCS1.value

    @field_validator("duration", mode="before")
    @classmethod
    def parse_duration_text(cls, value: Any) -> Any:
        """支持 "2160h" / "90d" 形式的时长。"""
        if isinstance(value, str):
            return parse_duration(value)
        return value

    @field_validator("usages", mode="before")
    @classmethod
    def parse_usages(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return [KeyUsage(v) if isinstance(v, str) else v for v in value]
        return value

    @field_validator("key_algorithm", "key_encoding", mode="before")
    @classmethod
    def normalize_choice(cls, value: Any) -> Any:
        if isinstance(value, Enum):
            value = value.value
        if isinstance(value, str):
            return value.strip().lower()
        return value


class IssuanceRequestRecord(BaseModel):
    """
    流水线最终产出：可直接提交给签发方的证书请求记录。
    """

    model_config = ConfigDict(frozen=True)

    name: str
    generate_name: str
    namespace: str | None = None
    annotations: FrozenStrMap = Field(default_factory=dict, validate_default=True)
    labels: FrozenStrMap = Field(default_factory=dict, validate_default=True)
    csr_pem: bytes
    duration: timedelta | None = None
    issuer_ref: IssuerRef
    is_ca: bool = False
    usages: Tuple[KeyUsage, ...] = ()

    def to_manifest(self, api_version: str = "cert-manager.io/v1alpha2") -> Dict[str, Any]:
        """
        渲染为 CertificateRequest 资源文档（JSON 结构）。
        csr 字段与 Kubernetes 对 []byte 的约定一致，使用 Base64 编码。
        """
        metadata: Dict[str, Any] = {
            "generateName": self.generate_name,
            "annotations": dict(self.annotations),
        }
        if self.namespace:
            metadata["namespace"] = self.namespace
        if self.labels:
            metadata["labels"] = dict(self.labels)

        spec: Dict[str, Any] = {
            "csr": base64.b64encode(self.csr_pem).decode("utf-8"),
            "issuerRef": self.issuer_ref.model_dump(),
            "isCA": self.is_ca,
        }
        if self.duration is not None:
            spec["duration"] = format_duration(self.duration)
        if self.usages:
            spec["usages"] = [u.value for u in self.usages]

        return {
            "apiVersion": api_version,
            "kind": "CertificateRequest",
            "metadata": metadata,
            "spec": spec,
        }


class CertificateRequestCreate(BaseModel):
    """
    客户端提交证书文档的数据模型。
    """
    manifest: Dict[str, Any]


class CertificateRequestResponse(BaseModel):
    """
    服务端返回证书请求的数据模型。
    """
    name: str
    csr_pem: str
    certificate_request: Dict[str, Any]


class RequestNameResponse(BaseModel):
    """
    服务端返回请求名称的数据模型。
    """
    name: str
