"""
测试 router.py 模块。
"""

from unittest.mock import patch

from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.certreq.config import Config
from src.certreq.request.errors import GenerationFailure, InvalidSpec
from src.certreq.request.router import router
from src.certreq.request.schemas import CertificateRequestCreate, CertificateRequestResponse, RequestNameResponse
from src.certreq.request.versions import default_registry


# 创建一个 FastAPI 应用并包含我们的路由
app = FastAPI()
app.state.config = Config(_env_file=None)
app.state.registry = default_registry()
app.include_router(router)

# 创建测试客户端
client = TestClient(app)

MANIFEST = {
    "apiVersion": "cert-manager.io/v1",
    "kind": "Certificate",
    "metadata": {"name": "web"},
    "spec": {
        "secretName": "web-tls",
        "commonName": "example.com",
        "issuerRef": {"name": "ca-issuer"},
        "privateKey": {"algorithm": "ECDSA", "size": 256},
    },
}


def test_create_certificate_request_endpoint():
    """测试创建证书请求端点"""
    response = client.post("/certificate-requests", json={"manifest": MANIFEST})

    assert response.status_code == 200
    body = response.json()
    assert body["name"].startswith("web-")
    assert body["csr_pem"].startswith("-----BEGIN CERTIFICATE REQUEST-----")
    assert body["certificate_request"]["metadata"]["generateName"] == "web-"


def test_create_certificate_request_endpoint_mocked():
    """测试端点把请求交给服务层"""
    with patch("src.certreq.request.services.create_certificate_request_service") as mock_service:
        mock_service.return_value = CertificateRequestResponse(
            name="web-0123456789", csr_pem="pem", certificate_request={}
        )
        response = client.post("/certificate-requests", json={"manifest": MANIFEST})

        assert response.status_code == 200
        assert response.json()["name"] == "web-0123456789"
        args = mock_service.call_args.args
        assert args[0] == CertificateRequestCreate(manifest=MANIFEST)
        assert args[1] is app.state.config
        assert args[2] is app.state.registry


def test_create_certificate_request_validation_error():
    """测试请求体缺少 manifest"""
    response = client.post("/certificate-requests", json={})
    assert response.status_code == 422  # Pydantic validation error


def test_create_certificate_request_invalid_spec():
    """测试无效规格返回 400"""
    manifest = {**MANIFEST, "spec": {**MANIFEST["spec"], "commonName": ""}}
    response = client.post("/certificate-requests", json={"manifest": manifest})
    assert response.status_code == 400
    assert "common name" in response.json()["detail"]


def test_create_certificate_request_unsupported_algorithm():
    """测试不支持的算法返回 400"""
    manifest = {**MANIFEST, "spec": {**MANIFEST["spec"], "privateKey": {"algorithm": "ECDSA", "size": 0}}}
    response = client.post("/certificate-requests", json={"manifest": manifest})
    assert response.status_code == 400


def test_create_certificate_request_generation_failure():
    """测试密钥生成失败返回 500"""
    with patch(
        "src.certreq.request.services.create_certificate_request_service",
        side_effect=GenerationFailure("entropy source unavailable"),
    ):
        response = client.post("/certificate-requests", json={"manifest": MANIFEST})
        assert response.status_code == 500
        assert "证书请求生成失败" in response.json()["detail"]


def test_create_certificate_request_unexpected_error():
    """测试未预期错误返回 500"""
    with patch(
        "src.certreq.request.services.create_certificate_request_service",
        side_effect=KeyError("boom"),
    ):
        response = client.post("/certificate-requests", json={"manifest": MANIFEST})
        assert response.status_code == 500
        assert "内部服务器错误" in response.json()["detail"]


def test_compute_name_endpoint():
    """测试计算名称端点"""
    first = client.post("/certificate-requests/name", json={"manifest": MANIFEST})
    second = client.post("/certificate-requests", json={"manifest": MANIFEST})

    assert first.status_code == 200
    assert first.json() == RequestNameResponse(name=second.json()["name"]).model_dump()


def test_compute_name_endpoint_invalid_document():
    """测试计算名称端点的无效文档"""
    with patch(
        "src.certreq.request.services.compute_request_name_service",
        side_effect=InvalidSpec("不支持的 apiVersion"),
    ):
        response = client.post("/certificate-requests/name", json={"manifest": MANIFEST})
        assert response.status_code == 400


def test_missing_app_state_fails_loudly():
    """测试应用未挂载配置时直接报错，而不是临时构造"""
    bare_app = FastAPI()
    bare_app.include_router(router)
    bare_client = TestClient(bare_app, raise_server_exceptions=False)

    response = bare_client.post("/certificate-requests", json={"manifest": MANIFEST})
    assert response.status_code == 500
    assert not hasattr(bare_app.state, "config")
