"""
证书请求流水线的错误类型。

所有错误对当前调用都是终止性的，流水线内部不做重试。
输入类错误同时继承 ValueError，内部错误同时继承 RuntimeError，
便于路由层按 400 / 500 区分。
"""


class CertificateRequestError(Exception):
    """流水线错误基类。"""


class InvalidSpec(CertificateRequestError, ValueError):
    """证书规格缺失必要字段或字段格式错误。"""


class UnsupportedAlgorithm(CertificateRequestError, ValueError):
    """请求的密钥算法或长度不在支持范围内。"""


class UnsupportedEncoding(CertificateRequestError, ValueError):
    """请求的私钥编码格式不受支持。"""


class MalformedKeyData(CertificateRequestError, ValueError):
    """私钥数据无法解码，或解码结果与生成的私钥不一致。"""


class InvalidCSR(CertificateRequestError, ValueError):
    """CSR PEM 数据无法解析。"""


class GenerationFailure(CertificateRequestError, RuntimeError):
    """密钥生成失败（随机源异常等）。"""


class IncompatibleKeyAlgorithm(CertificateRequestError, RuntimeError):
    """签名私钥与 CSR 声明的密钥算法不匹配。"""


class HashingFailure(CertificateRequestError, RuntimeError):
    """计算请求名称时内部编码失败。"""
