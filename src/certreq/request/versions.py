"""
Certificate 资源文档的版本模型与显式转换。

每个受支持的 apiVersion 对应一个文档模型，并提供 to_spec() 将其转换为
与版本无关的 CertificateSpec。ConversionRegistry 由调用方显式构造并传递。

公开接口：
- CertificateV1Alpha2 / CertificateV1Alpha3 / CertificateV1: 各版本文档模型
- ConversionRegistry: apiVersion -> 文档模型 的注册表
- default_registry: 构造包含全部受支持版本的注册表
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, List, Type

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidSpec
from .schemas import CertificateSpec, IssuerRef, X509Subject

CERTIFICATE_KIND = "Certificate"
LIST_KIND = "List"


class _Document(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ObjectMeta(_Document):
    name: str = Field(min_length=1)
    namespace: str | None = None
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)


class SubjectV1Alpha2(_Document):
    countries: List[str] = Field(default_factory=list)
    organizational_units: List[str] = Field(default_factory=list, alias="organizationalUnits")
    localities: List[str] = Field(default_factory=list)
    provinces: List[str] = Field(default_factory=list)
    street_addresses: List[str] = Field(default_factory=list, alias="streetAddresses")
    postal_codes: List[str] = Field(default_factory=list, alias="postalCodes")
    serial_number: str = Field(default="", alias="serialNumber")

    def to_subject(self, organizations: List[str]) -> X509Subject:
        return X509Subject(
            organizations=organizations,
            countries=self.countries,
            organizational_units=self.organizational_units,
            localities=self.localities,
            provinces=self.provinces,
            street_addresses=self.street_addresses,
            postal_codes=self.postal_codes,
            serial_number=self.serial_number,
        )


class Subject(SubjectV1Alpha2):
    organizations: List[str] = Field(default_factory=list)


class _CommonSpec(_Document):
    secret_name: str = Field(alias="secretName")
    common_name: str = Field(default="", alias="commonName")
    dns_names: List[str] = Field(default_factory=list, alias="dnsNames")
    ip_addresses: List[str] = Field(default_factory=list, alias="ipAddresses")
    duration: str | None = None
    issuer_ref: IssuerRef = Field(alias="issuerRef")
    is_ca: bool = Field(default=False, alias="isCA")
    usages: List[str] = Field(default_factory=list)


class _AlphaSpec(_CommonSpec):
    uri_sans: List[str] = Field(default_factory=list, alias="uriSANs")
    email_sans: List[str] = Field(default_factory=list, alias="emailSANs")
    key_size: int | None = Field(default=None, alias="keySize")
    key_algorithm: str = Field(default="rsa", alias="keyAlgorithm")
    key_encoding: str = Field(default="pkcs1", alias="keyEncoding")


class CertificateSpecV1Alpha2(_AlphaSpec):
    organization: List[str] = Field(default_factory=list)
    subject: SubjectV1Alpha2 = Field(default_factory=SubjectV1Alpha2)


class CertificateSpecV1Alpha3(_AlphaSpec):
    subject: Subject = Field(default_factory=Subject)


class PrivateKeySettings(_Document):
    algorithm: str = "RSA"
    encoding: str = "PKCS1"
    size: int | None = None


class CertificateSpecV1(_CommonSpec):
    subject: Subject = Field(default_factory=Subject)
    uris: List[str] = Field(default_factory=list)
    email_addresses: List[str] = Field(default_factory=list, alias="emailAddresses")
    private_key: PrivateKeySettings = Field(default_factory=PrivateKeySettings, alias="privateKey")


class CertificateDocument(_Document, ABC):
    """Certificate 文档基类，子类声明 API_VERSION 并实现 to_spec()。"""

    API_VERSION: ClassVar[str] = ""

    api_version: str = Field(alias="apiVersion")
    kind: str
    metadata: ObjectMeta

    def _base_fields(self, default_namespace: str) -> Dict[str, Any]:
        spec = self.spec  # type: ignore[attr-defined]
        return {
            "name": self.metadata.name,
            "namespace": self.metadata.namespace or default_namespace,
            "labels": self.metadata.labels,
            "annotations": self.metadata.annotations,
            "secret_name": spec.secret_name,
            "common_name": spec.common_name,
            "dns_names": spec.dns_names,
            "ip_addresses": spec.ip_addresses,
            "duration": spec.duration,
            "issuer_ref": spec.issuer_ref,
            "is_ca": spec.is_ca,
            "usages": spec.usages,
        }

    @abstractmethod
    def to_spec(self, default_namespace: str) -> CertificateSpec:
        """转换为与版本无关的 CertificateSpec。"""


class CertificateV1Alpha2(CertificateDocument):
    API_VERSION: ClassVar[str] = "cert-manager.io/v1alpha2"

    spec: CertificateSpecV1Alpha2

    def to_spec(self, default_namespace: str) -> CertificateSpec:
        """v1alpha2 的组织名位于 spec.organization。"""
        return CertificateSpec(
            **self._base_fields(default_namespace),
            subject=self.spec.subject.to_subject(self.spec.organization),
            uri_sans=self.spec.uri_sans,
            email_sans=self.spec.email_sans,
            key_algorithm=self.spec.key_algorithm,
            key_size=self.spec.key_size,
            key_encoding=self.spec.key_encoding,
        )


class CertificateV1Alpha3(CertificateDocument):
    API_VERSION: ClassVar[str] = "cert-manager.io/v1alpha3"

    spec: CertificateSpecV1Alpha3

    def to_spec(self, default_namespace: str) -> CertificateSpec:
        subject = self.spec.subject
        return CertificateSpec(
            **self._base_fields(default_namespace),
            subject=subject.to_subject(subject.organizations),
            uri_sans=self.spec.uri_sans,
            email_sans=self.spec.email_sans,
            key_algorithm=self.spec.key_algorithm,
            key_size=self.spec.key_size,
            key_encoding=self.spec.key_encoding,
        )


class CertificateV1(CertificateDocument):
    API_VERSION: ClassVar[str] = "cert-manager.io/v1"

    spec: CertificateSpecV1

    def to_spec(self, default_namespace: str) -> CertificateSpec:
        """v1 的密钥参数集中在 spec.privateKey，SAN 字段名为 uris / emailAddresses。"""
        subject = self.spec.subject
        private_key = self.spec.private_key
        return CertificateSpec(
            **self._base_fields(default_namespace),
            subject=subject.to_subject(subject.organizations),
            uri_sans=self.spec.uris,
            email_sans=self.spec.email_addresses,
            key_algorithm=private_key.algorithm,
            key_size=private_key.size,
            key_encoding=private_key.encoding,
        )


class ConversionRegistry:
    """apiVersion 到文档模型的显式映射。"""

    def __init__(self) -> None:
        self._documents: Dict[str, Type[CertificateDocument]] = {}

    def register(self, document_cls: Type[CertificateDocument]) -> None:
        if not document_cls.API_VERSION:
            raise ValueError(f"{document_cls.__name__} 未声明 API_VERSION")
        self._documents[document_cls.API_VERSION] = document_cls

    def api_versions(self) -> List[str]:
        return sorted(self._documents)

    def parse(self, manifest: Dict[str, Any]) -> CertificateDocument:
        """
        将资源文档解析为对应版本的模型。
        kind 为 List 时必须恰好包含一个对象。
        :raises InvalidSpec: 文档为空、多于一个对象、kind / apiVersion 不受支持或字段无效。
        """
        if not isinstance(manifest, dict):
            raise InvalidSpec("资源文档必须是对象")

        if manifest.get("kind") == LIST_KIND:
            items = manifest.get("items") or []
            if len(items) == 0:
                raise InvalidSpec("未提供任何 Certificate 对象")
            if len(items) > 1:
                raise InvalidSpec("提供了多个对象，每次只能创建一个证书请求")
            manifest = items[0]
            if not isinstance(manifest, dict):
                raise InvalidSpec("资源文档必须是对象")

        kind = manifest.get("kind")
        if kind != CERTIFICATE_KIND:
            raise InvalidSpec(f"不支持的资源类型: {kind!r}，需要 {CERTIFICATE_KIND}")

        api_version = manifest.get("apiVersion")
        document_cls = self._documents.get(api_version) if isinstance(api_version, str) else None
        if document_cls is None:
            raise InvalidSpec(
                f"不支持的 apiVersion: {api_version!r}，可选值: {', '.join(self.api_versions())}"
            )

        try:
            return document_cls.model_validate(manifest)
        except ValidationError as e:
            raise InvalidSpec(f"Certificate 文档无效: {e}") from e

    def convert(self, manifest: Dict[str, Any], default_namespace: str) -> CertificateSpec:
        """
        解析资源文档并转换为 CertificateSpec。
        :param manifest: Certificate 资源文档（或只含一个对象的 List）。
        :param default_namespace: 文档未指定命名空间时使用的命名空间。
        :raises InvalidSpec: 文档无效。
        """
        document = self.parse(manifest)
        try:
            spec = document.to_spec(default_namespace)
        except ValidationError as e:
            raise InvalidSpec(f"证书规格无效: {e}") from e
        logger.debug(f"已将 {document.api_version} Certificate {spec.name} 转换为内部规格")
        return spec


def default_registry() -> ConversionRegistry:
    """构造包含全部受支持版本的注册表。"""
    registry = ConversionRegistry()
    for document_cls in (CertificateV1Alpha2, CertificateV1Alpha3, CertificateV1):
        registry.register(document_cls)
    return registry
