"""
证书请求服务的业务逻辑层。
此模块封装了版本转换与核心流水线，提供更清晰的接口供路由层调用。
"""

from src.certreq.config import Config
from . import core, naming
from .keys import KeySource
from .schemas import CertificateRequestCreate, CertificateRequestResponse, RequestNameResponse
from .versions import ConversionRegistry


def create_certificate_request_service(
    req: CertificateRequestCreate,
    config: Config,
    registry: ConversionRegistry,
    key_source: KeySource | None = None,
) -> CertificateRequestResponse:
    """
    处理创建证书请求的业务逻辑。
    :param req: 包含 Certificate 资源文档的请求对象。
    :param config: 配置。
    :param registry: 文档版本注册表。
    :param key_source: 密钥随机源。
    :return: 包含请求名称、CSR 与 CertificateRequest 文档的响应对象。
    :raises ValueError: 文档或规格无效、算法不受支持。
    :raises RuntimeError: 密钥生成或签名过程失败。
    """
    spec = registry.convert(req.manifest, config.default_namespace)
    record = core.build_certificate_request(spec, config, key_source)

    return CertificateRequestResponse(
        name=record.name,
        csr_pem=record.csr_pem.decode("utf-8"),
        certificate_request=record.to_manifest(),
    )


def compute_request_name_service(
    req: CertificateRequestCreate,
    config: Config,
    registry: ConversionRegistry,
) -> RequestNameResponse:
    """
    仅计算证书请求名称，用于判断同一请求是否已存在。
    :raises ValueError: 文档或规格无效。
    """
    spec = registry.convert(req.manifest, config.default_namespace)
    return RequestNameResponse(name=naming.compute_request_name(spec, config))
