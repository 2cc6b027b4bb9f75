"""
私钥的生成与编解码。

公开接口：
- KeySource / SystemKeySource: 密钥随机源（可注入，测试中可替换为固定密钥）
- resolve_key_parameters: 解析规格中的算法与密钥长度
- generate_private_key: 按证书规格生成私钥
- encode_private_key / decode_private_key: PKCS#1 / PKCS#8 PEM 编解码
- public_key_der / public_keys_match: 公钥比较
"""

from __future__ import annotations

from typing import Protocol, Tuple, Union

from cryptography.exceptions import UnsupportedAlgorithm as CryptographyUnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.asymmetric.types import PublicKeyTypes
from loguru import logger

from src.certreq.config import Config
from .errors import GenerationFailure, MalformedKeyData, UnsupportedAlgorithm, UnsupportedEncoding
from .schemas import CertificateSpec, KeyAlgorithm, KeyEncoding

PrivateKey = Union[rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey]

RSA_PUBLIC_EXPONENT = 65537

ECDSA_CURVES = {
    256: ec.SECP256R1,
    384: ec.SECP384R1,
    521: ec.SECP521R1,
}


class KeySource(Protocol):
    """生成密钥对所用的随机源。"""

    def generate_rsa(self, key_size: int) -> rsa.RSAPrivateKey: ...

    def generate_ec(self, curve: ec.EllipticCurve) -> ec.EllipticCurvePrivateKey: ...


class SystemKeySource:
    """默认随机源：cryptography 底层的操作系统 CSPRNG。"""

    def generate_rsa(self, key_size: int) -> rsa.RSAPrivateKey:
        return rsa.generate_private_key(public_exponent=RSA_PUBLIC_EXPONENT, key_size=key_size)

    def generate_ec(self, curve: ec.EllipticCurve) -> ec.EllipticCurvePrivateKey:
        return ec.generate_private_key(curve)


def resolve_key_parameters(spec: CertificateSpec, config: Config) -> Tuple[KeyAlgorithm, int]:
    """
    解析规格中的密钥算法与长度，未指定长度时使用算法默认值。
    :param spec: 证书规格。
    :param config: 配置，提供 RSA 长度范围与默认值。
    :return: (算法, 密钥长度)。
    :raises UnsupportedAlgorithm: 算法或长度不受支持（包括显式指定的 0）。
    """
    try:
        algorithm = KeyAlgorithm(spec.key_algorithm.lower())
    except ValueError:
        raise UnsupportedAlgorithm(f"不支持的密钥算法: {spec.key_algorithm!r}")

    if algorithm is KeyAlgorithm.RSA:
        size = config.default_rsa_key_size if spec.key_size is None else spec.key_size
        if not config.min_rsa_key_size <= size <= config.max_rsa_key_size:
            raise UnsupportedAlgorithm(
                f"RSA 密钥长度 {size} 不在允许范围 "
                f"[{config.min_rsa_key_size}, {config.max_rsa_key_size}] 内"
            )
        return algorithm, size

    size = config.default_ecdsa_key_size if spec.key_size is None else spec.key_size
    if size not in ECDSA_CURVES:
        raise UnsupportedAlgorithm(
            f"ECDSA 密钥长度 {size} 不受支持，可选值: {sorted(ECDSA_CURVES)}"
        )
    return algorithm, size


def generate_private_key(
    spec: CertificateSpec, config: Config, source: KeySource | None = None
) -> PrivateKey:
    """
    按证书规格生成一把新的私钥。
    :param spec: 证书规格。
    :param config: 配置。
    :param source: 随机源，默认为 SystemKeySource。
    :return: RSA 或 EC 私钥。
    :raises UnsupportedAlgorithm: 算法或长度不受支持。
    :raises GenerationFailure: 随机源生成失败。
    """
    algorithm, size = resolve_key_parameters(spec, config)
    source = source or SystemKeySource()

    try:
        if algorithm is KeyAlgorithm.RSA:
            key = source.generate_rsa(size)
        else:
            key = source.generate_ec(ECDSA_CURVES[size]())
    except Exception as e:
        logger.error(f"生成 {algorithm.value}-{size} 私钥失败: {e}")
        raise GenerationFailure(f"生成私钥失败: {e}") from e

    expected_type = rsa.RSAPrivateKey if algorithm is KeyAlgorithm.RSA else ec.EllipticCurvePrivateKey
    if not isinstance(key, expected_type) or key.key_size != size:
        raise GenerationFailure(f"随机源返回的密钥与请求的 {algorithm.value}-{size} 不符")

    logger.debug(f"已生成 {algorithm.value}-{size} 私钥")
    return key


def encode_private_key(key: PrivateKey, encoding: KeyEncoding | str) -> bytes:
    """
    将私钥编码为 PEM。
    PKCS#1 下 RSA 输出 "RSA PRIVATE KEY"，EC 输出 SEC1 的 "EC PRIVATE KEY"；
    PKCS#8 统一输出 "PRIVATE KEY"。
    :raises UnsupportedEncoding: 编码格式不受支持。
    """
    try:
        choice = KeyEncoding(encoding.lower() if isinstance(encoding, str) else encoding)
    except ValueError:
        raise UnsupportedEncoding(f"不支持的私钥编码: {encoding!r}")

    if choice is KeyEncoding.PKCS8:
        private_format = serialization.PrivateFormat.PKCS8
    else:
        private_format = serialization.PrivateFormat.TraditionalOpenSSL

    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=private_format,
        encryption_algorithm=serialization.NoEncryption(),
    )


def decode_private_key(data: bytes) -> PrivateKey:
    """
    从 PEM 数据解码私钥。
    :raises MalformedKeyData: 数据损坏、被加密或不是 RSA/EC 私钥。
    """
    try:
        key = serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError, CryptographyUnsupportedAlgorithm) as e:
        raise MalformedKeyData(f"无法解码私钥数据: {e}") from e

    if not isinstance(key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)):
        raise MalformedKeyData(f"不支持的私钥类型: {type(key).__name__}")
    return key


def public_key_der(public_key: PublicKeyTypes) -> bytes:
    """公钥的 SubjectPublicKeyInfo DER 编码。"""
    return public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def public_keys_match(a: PrivateKey, b: PrivateKey) -> bool:
    """比较两把私钥对应的公钥。"""
    return public_key_der(a.public_key()) == public_key_der(b.public_key())
