"""
证书签名请求 (CSR) 的构造与签名。

公开接口：
- CSRTemplate: 未签名的 CSR 结构（主题 + 扩展 + 声明的密钥参数）
- SignedCSR: 签名后的 CSR（DER 与 PEM）
- build_csr: 由证书规格构造 CSRTemplate
- sign_csr: 用私钥签名 CSRTemplate
- signature_hash_for_key: 依据私钥选择签名摘要算法
- decode_csr_pem: 去掉 PEM 封装，返回 DER
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from functools import cached_property
from typing import Any, Callable, Dict, List, Sequence, Tuple
from urllib.parse import urlparse

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509 import ObjectIdentifier
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID
from loguru import logger

from src.certreq.config import Config
from .errors import IncompatibleKeyAlgorithm, InvalidCSR, InvalidSpec
from .keys import PrivateKey, public_key_der, resolve_key_parameters
from .schemas import CertificateSpec, KeyAlgorithm, KeyUsage

PEM_BLOCK_TYPE = "CERTIFICATE REQUEST"

DEFAULT_KEY_USAGES = (KeyUsage.DIGITAL_SIGNATURE, KeyUsage.KEY_ENCIPHERMENT)

# KeyUsage 用途 -> x509.KeyUsage 构造参数名
KEY_USAGE_FLAGS: Dict[KeyUsage, str] = {
    KeyUsage.SIGNING: "digital_signature",
    KeyUsage.DIGITAL_SIGNATURE: "digital_signature",
    KeyUsage.CONTENT_COMMITMENT: "content_commitment",
    KeyUsage.KEY_ENCIPHERMENT: "key_encipherment",
    KeyUsage.KEY_AGREEMENT: "key_agreement",
    KeyUsage.DATA_ENCIPHERMENT: "data_encipherment",
    KeyUsage.CERT_SIGN: "key_cert_sign",
    KeyUsage.CRL_SIGN: "crl_sign",
    KeyUsage.ENCIPHER_ONLY: "encipher_only",
    KeyUsage.DECIPHER_ONLY: "decipher_only",
}

EXT_KEY_USAGE_OIDS: Dict[KeyUsage, ObjectIdentifier] = {
    KeyUsage.ANY: ExtendedKeyUsageOID.ANY_EXTENDED_KEY_USAGE,
    KeyUsage.SERVER_AUTH: ExtendedKeyUsageOID.SERVER_AUTH,
    KeyUsage.CLIENT_AUTH: ExtendedKeyUsageOID.CLIENT_AUTH,
    KeyUsage.CODE_SIGNING: ExtendedKeyUsageOID.CODE_SIGNING,
    KeyUsage.EMAIL_PROTECTION: ExtendedKeyUsageOID.EMAIL_PROTECTION,
    KeyUsage.SMIME: ExtendedKeyUsageOID.EMAIL_PROTECTION,
    KeyUsage.IPSEC_END_SYSTEM: ObjectIdentifier("1.3.6.1.5.5.7.3.5"),
    KeyUsage.IPSEC_TUNNEL: ObjectIdentifier("1.3.6.1.5.5.7.3.6"),
    KeyUsage.IPSEC_USER: ObjectIdentifier("1.3.6.1.5.5.7.3.7"),
    KeyUsage.TIMESTAMPING: ExtendedKeyUsageOID.TIME_STAMPING,
    KeyUsage.OCSP_SIGNING: ExtendedKeyUsageOID.OCSP_SIGNING,
    KeyUsage.MICROSOFT_SGC: ObjectIdentifier("1.3.6.1.4.1.311.10.3.3"),
    KeyUsage.NETSCAPE_SGC: ObjectIdentifier("2.16.840.1.113730.4.1"),
}

EC_CURVE_HASHES = {
    "secp256r1": hashes.SHA256,
    "secp384r1": hashes.SHA384,
    "secp521r1": hashes.SHA512,
}


@dataclass(frozen=True)
class CSRTemplate:
    """未签名的 CSR：主题、请求的扩展 (扩展, 是否关键) 以及规格声明的密钥参数。"""

    subject: x509.Name
    extensions: Tuple[Tuple[x509.ExtensionType, bool], ...]
    key_algorithm: KeyAlgorithm
    key_size: int


@dataclass(frozen=True)
class SignedCSR:
    """已签名的 CSR。pem 为 "CERTIFICATE REQUEST" 封装的 der。"""

    der: bytes
    pem: bytes

    @cached_property
    def csr(self) -> x509.CertificateSigningRequest:
        return x509.load_der_x509_csr(self.der)


def build_csr(spec: CertificateSpec, config: Config) -> CSRTemplate:
    """
    由证书规格构造未签名的 CSR，不涉及任何网络或存储访问。
    :param spec: 证书规格。
    :param config: 配置，用于解析默认密钥长度。
    :return: CSRTemplate。
    :raises InvalidSpec: 无 CN 且无 SAN，或主题 / SAN / 用途字段不合法。
    :raises UnsupportedAlgorithm: 密钥参数不受支持。
    """
    sans = _build_sans(spec)
    if not spec.common_name and not sans:
        raise InvalidSpec("证书规格必须至少包含 common name 或一个 subject alt name")

    algorithm, size = resolve_key_parameters(spec, config)

    extensions: List[Tuple[x509.ExtensionType, bool]] = []
    if sans:
        extensions.append((x509.SubjectAlternativeName(sans), False))
    extensions.extend(_build_usage_extensions(spec.usages, spec.is_ca))
    if spec.is_ca:
        extensions.append((x509.BasicConstraints(ca=True, path_length=None), True))

    return CSRTemplate(
        subject=_build_subject(spec),
        extensions=tuple(extensions),
        key_algorithm=algorithm,
        key_size=size,
    )


def _build_subject(spec: CertificateSpec) -> x509.Name:
    subject = spec.subject
    fields: List[Tuple[ObjectIdentifier, str, Sequence[str]]] = [
        (NameOID.COMMON_NAME, "common_name", [spec.common_name] if spec.common_name else []),
        (NameOID.ORGANIZATION_NAME, "organizations", subject.organizations),
        (NameOID.ORGANIZATIONAL_UNIT_NAME, "organizational_units", subject.organizational_units),
        (NameOID.COUNTRY_NAME, "countries", subject.countries),
        (NameOID.STATE_OR_PROVINCE_NAME, "provinces", subject.provinces),
        (NameOID.LOCALITY_NAME, "localities", subject.localities),
        (NameOID.STREET_ADDRESS, "street_addresses", subject.street_addresses),
        (NameOID.POSTAL_CODE, "postal_codes", subject.postal_codes),
        (NameOID.SERIAL_NUMBER, "serial_number", [subject.serial_number] if subject.serial_number else []),
    ]

    attributes: List[x509.NameAttribute] = []
    for oid, field_name, values in fields:
        for value in values:
            if not value:
                raise InvalidSpec(f"主题字段 {field_name} 包含空值")
            try:
                attributes.append(x509.NameAttribute(oid, value))
            except ValueError as e:
                raise InvalidSpec(f"主题字段 {field_name} 无效: {e}") from e
    return x509.Name(attributes)


def _general_name(factory: Callable[[Any], x509.GeneralName], value: Any, label: str) -> x509.GeneralName:
    try:
        return factory(value)
    except ValueError as e:
        raise InvalidSpec(f"无效的{label}: {value!r}: {e}") from e


def _build_sans(spec: CertificateSpec) -> List[x509.GeneralName]:
    sans: List[x509.GeneralName] = []
    for dns_name in spec.dns_names:
        if not dns_name:
            raise InvalidSpec("dns_names 包含空值")
        sans.append(_general_name(x509.DNSName, dns_name, " DNS 名称"))
    for ip in spec.ip_addresses:
        try:
            address = ipaddress.ip_address(ip)
        except ValueError as e:
            raise InvalidSpec(f"无效的 IP 地址: {ip!r}") from e
        sans.append(x509.IPAddress(address))
    for uri in spec.uri_sans:
        if not urlparse(uri).scheme:
            raise InvalidSpec(f"无效的 URI: {uri!r}")
        sans.append(_general_name(x509.UniformResourceIdentifier, uri, " URI"))
    for email in spec.email_sans:
        if "@" not in email:
            raise InvalidSpec(f"无效的电子邮件地址: {email!r}")
        sans.append(_general_name(x509.RFC822Name, email, "电子邮件地址"))

    # 去重但保持顺序
    unique: List[x509.GeneralName] = []
    for name in sans:
        if name not in unique:
            unique.append(name)
    return unique


def _build_usage_extensions(
    usages: Sequence[KeyUsage], is_ca: bool
) -> List[Tuple[x509.ExtensionType, bool]]:
    """
    将用途列表拆分为 KeyUsage（关键）与 ExtendedKeyUsage（非关键）扩展。
    用途为空时使用 digital signature + key encipherment；CA 额外带上 cert sign。
    """
    requested = list(usages) or list(DEFAULT_KEY_USAGES)
    if is_ca:
        requested.append(KeyUsage.CERT_SIGN)

    flags = {flag: False for flag in set(KEY_USAGE_FLAGS.values())}
    ext_oids: List[ObjectIdentifier] = []
    for usage in requested:
        if usage in KEY_USAGE_FLAGS:
            flags[KEY_USAGE_FLAGS[usage]] = True
        elif EXT_KEY_USAGE_OIDS[usage] not in ext_oids:
            ext_oids.append(EXT_KEY_USAGE_OIDS[usage])

    if (flags["encipher_only"] or flags["decipher_only"]) and not flags["key_agreement"]:
        raise InvalidSpec("encipher only / decipher only 需要同时请求 key agreement")

    extensions: List[Tuple[x509.ExtensionType, bool]] = []
    if any(flags.values()):
        extensions.append((x509.KeyUsage(**flags), True))
    if ext_oids:
        extensions.append((x509.ExtendedKeyUsage(ext_oids), False))
    return extensions


def signature_hash_for_key(key: PrivateKey) -> hashes.HashAlgorithm:
    """
    依据私钥类型与长度选择签名摘要：
    RSA <3072 用 SHA-256，<4096 用 SHA-384，其余 SHA-512；ECDSA 按曲线对应。
    :raises IncompatibleKeyAlgorithm: 不支持的密钥类型或曲线。
    """
    if isinstance(key, rsa.RSAPrivateKey):
        if key.key_size >= 4096:
            return hashes.SHA512()
        if key.key_size >= 3072:
            return hashes.SHA384()
        return hashes.SHA256()
    if isinstance(key, ec.EllipticCurvePrivateKey):
        hash_cls = EC_CURVE_HASHES.get(key.curve.name)
        if hash_cls is None:
            raise IncompatibleKeyAlgorithm(f"不支持的 ECDSA 曲线: {key.curve.name}")
        return hash_cls()
    raise IncompatibleKeyAlgorithm(f"不支持的私钥类型: {type(key).__name__}")


def sign_csr(template: CSRTemplate, key: PrivateKey) -> SignedCSR:
    """
    用私钥签名 CSR，并输出 DER 与 PEM。
    :param template: 未签名的 CSR。
    :param key: 签名私钥，必须与 CSR 声明的算法和长度一致。
    :return: SignedCSR。
    :raises IncompatibleKeyAlgorithm: 私钥与声明不一致，或签名结果自检失败。
    """
    expected_type = rsa.RSAPrivateKey if template.key_algorithm is KeyAlgorithm.RSA else ec.EllipticCurvePrivateKey
    if not isinstance(key, expected_type):
        raise IncompatibleKeyAlgorithm(
            f"CSR 声明的密钥算法为 {template.key_algorithm.value}，但签名私钥为 {type(key).__name__}"
        )
    if key.key_size != template.key_size:
        raise IncompatibleKeyAlgorithm(
            f"CSR 声明的密钥长度为 {template.key_size}，但签名私钥长度为 {key.key_size}"
        )

    algorithm = signature_hash_for_key(key)

    builder = x509.CertificateSigningRequestBuilder().subject_name(template.subject)
    for extension, critical in template.extensions:
        builder = builder.add_extension(extension, critical=critical)

    try:
        csr = builder.sign(key, algorithm)
    except (ValueError, TypeError) as e:
        logger.error(f"CSR 签名失败: {e}")
        raise IncompatibleKeyAlgorithm(f"CSR 签名失败: {e}") from e

    if public_key_der(csr.public_key()) != public_key_der(key.public_key()):
        raise IncompatibleKeyAlgorithm("CSR 中的公钥与签名私钥不匹配")
    if not csr.is_signature_valid:
        raise IncompatibleKeyAlgorithm("CSR 签名校验失败")

    return SignedCSR(
        der=csr.public_bytes(serialization.Encoding.DER),
        pem=csr.public_bytes(serialization.Encoding.PEM),
    )


def decode_csr_pem(pem: bytes) -> bytes:
    """
    去掉 "CERTIFICATE REQUEST" PEM 封装，返回其中的 DER。
    :raises InvalidCSR: 不是合法的 CSR PEM。
    """
    if f"-----BEGIN {PEM_BLOCK_TYPE}-----".encode() not in pem:
        raise InvalidCSR(f"缺少 {PEM_BLOCK_TYPE} PEM 头")
    try:
        csr = x509.load_pem_x509_csr(pem)
    except ValueError as e:
        raise InvalidCSR(f"无效的 CSR 格式: {e}") from e
    return csr.public_bytes(serialization.Encoding.DER)
