"""
证书请求流水线的核心逻辑实现。
包括组装证书请求记录、按状态机依次执行命名、生成私钥、编码、构造与签名 CSR。
"""

from __future__ import annotations

from enum import Enum

from loguru import logger

from src.certreq.config import Config
from . import csr as csr_builder
from . import keys, naming
from .errors import MalformedKeyData
from .schemas import CertificateSpec, IssuanceRequestRecord


class PipelineState(str, Enum):
    SPEC_LOADED = "SpecLoaded"
    NAME_COMPUTED = "NameComputed"
    KEY_GENERATED = "KeyGenerated"
    KEY_ENCODED = "KeyEncoded"
    CSR_BUILT = "CSRBuilt"
    CSR_SIGNED = "CSRSigned"
    REQUEST_ASSEMBLED = "RequestAssembled"
    DONE = "Done"
    FAILED = "Failed"


def assemble_request(
    spec: CertificateSpec,
    name: str,
    signed_csr: csr_builder.SignedCSR,
    config: Config,
) -> IssuanceRequestRecord:
    """
    将计算出的名称、签名后的 CSR 与规格字段合并为证书请求记录。
    在规格注解之外注入两个注解，指向私钥 Secret 名称与证书名称。
    :param spec: 证书规格。
    :param name: 确定性请求名称。
    :param signed_csr: 签名后的 CSR。
    :param config: 配置，提供注入注解的键名。
    :return: IssuanceRequestRecord。
    """
    annotations = dict(spec.annotations)
    annotations[config.private_key_annotation_key] = spec.secret_name
    annotations[config.certificate_name_annotation_key] = spec.name

    return IssuanceRequestRecord(
        name=name,
        generate_name=spec.name + "-",
        namespace=spec.namespace,
        annotations=annotations,
        labels=dict(spec.labels),
        csr_pem=signed_csr.pem,
        duration=spec.duration,
        issuer_ref=spec.issuer_ref,
        is_ca=spec.is_ca,
        usages=spec.usages,
    )


class CertificateRequestPipeline:
    """
    单次执行的证书请求流水线：
    SpecLoaded → NameComputed → KeyGenerated → KeyEncoded → CSRBuilt → CSRSigned → RequestAssembled → Done。
    任一步骤失败进入 Failed 并抛出原始错误；流水线不能从中间状态恢复，需重新创建。
    """

    def __init__(
        self,
        spec: CertificateSpec,
        config: Config,
        key_source: keys.KeySource | None = None,
    ) -> None:
        self.spec = spec
        self.config = config
        self.key_source = key_source
        self.state = PipelineState.SPEC_LOADED
        self.failure: Exception | None = None

    def _advance(self, state: PipelineState) -> None:
        logger.debug(f"证书请求 {self.spec.name}: {self.state.value} -> {state.value}")
        self.state = state

    def run(self) -> IssuanceRequestRecord:
        """
        执行流水线。
        :return: IssuanceRequestRecord。
        :raises CertificateRequestError: 任一步骤失败。
        :raises RuntimeError: 流水线已执行过。
        """
        if self.state is not PipelineState.SPEC_LOADED:
            raise RuntimeError(f"流水线已处于 {self.state.value} 状态，请重新创建后再执行")

        try:
            record = self._run()
        except Exception as e:
            self.failure = e
            logger.error(f"证书请求 {self.spec.name} 在 {self.state.value} 之后失败: {e}")
            self.state = PipelineState.FAILED
            raise

        self._advance(PipelineState.DONE)
        return record

    def _run(self) -> IssuanceRequestRecord:
        spec, config = self.spec, self.config

        name = naming.compute_request_name(spec, config)
        self._advance(PipelineState.NAME_COMPUTED)

        key = keys.generate_private_key(spec, config, self.key_source)
        self._advance(PipelineState.KEY_GENERATED)

        key_data = keys.encode_private_key(key, spec.key_encoding)
        self._advance(PipelineState.KEY_ENCODED)

        template = csr_builder.build_csr(spec, config)
        self._advance(PipelineState.CSR_BUILT)

        signer = keys.decode_private_key(key_data)
        if not keys.public_keys_match(signer, key):
            raise MalformedKeyData("解码后的私钥与生成的私钥不一致")
        signed = csr_builder.sign_csr(template, signer)
        # 私钥只在签名期间保留
        del key, key_data, signer
        self._advance(PipelineState.CSR_SIGNED)

        record = assemble_request(spec, name, signed, config)
        self._advance(PipelineState.REQUEST_ASSEMBLED)
        return record


def build_certificate_request(
    spec: CertificateSpec,
    config: Config,
    key_source: keys.KeySource | None = None,
) -> IssuanceRequestRecord:
    """
    由证书规格一次性生成证书请求记录。
    :param spec: 已完成版本转换与命名空间合并的证书规格。
    :param config: 配置。
    :param key_source: 密钥随机源，默认使用系统 CSPRNG。
    :return: IssuanceRequestRecord。
    """
    return CertificateRequestPipeline(spec, config, key_source).run()
