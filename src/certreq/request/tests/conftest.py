"""
测试共用的夹具：配置、固定密钥随机源与示例证书规格。
"""

import pytest
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from src.certreq.config import Config
from src.certreq.request.schemas import CertificateSpec


class FixedKeySource:
    """总是返回预先生成的密钥，使 RSA 签名结果可复现。"""

    def __init__(self, rsa_key=None, ec_key=None):
        self.rsa_key = rsa_key
        self.ec_key = ec_key
        self.calls = []

    def generate_rsa(self, key_size):
        self.calls.append(("rsa", key_size))
        return self.rsa_key

    def generate_ec(self, curve):
        self.calls.append(("ec", curve.name))
        return self.ec_key


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def ec_key():
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def key_source(rsa_key, ec_key):
    return FixedKeySource(rsa_key=rsa_key, ec_key=ec_key)


@pytest.fixture
def config():
    return Config(_env_file=None)


@pytest.fixture
def web_spec():
    """端到端场景使用的证书规格。"""
    return CertificateSpec(
        name="web",
        namespace="default",
        labels={"team": "platform"},
        annotations={"owner": "ops"},
        secret_name="web-tls",
        common_name="example.com",
        dns_names=["example.com", "www.example.com"],
        duration="90d",
        issuer_ref={"name": "ca-issuer"},
        is_ca=False,
        usages=["ServerAuth"],
        key_algorithm="rsa",
        key_size=2048,
    )
