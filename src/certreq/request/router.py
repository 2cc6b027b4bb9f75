"""
证书请求服务的 FastAPI 路由定义。
"""

from fastapi import APIRouter, Depends, HTTPException, Request

from src.certreq.config import Config
from . import services
from .schemas import CertificateRequestCreate, CertificateRequestResponse, RequestNameResponse
from .versions import ConversionRegistry

router = APIRouter(prefix="/certificate-requests", tags=["Certificate Requests"])


def get_config(request: Request) -> Config:
    """读取 main.py 挂载在 app.state 上的配置。"""
    config = getattr(request.app.state, "config", None)
    if config is None:
        raise RuntimeError("应用未挂载配置 app.state.config")
    return config


def get_registry(request: Request) -> ConversionRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise RuntimeError("应用未挂载版本注册表 app.state.registry")
    return registry


@router.post("", response_model=CertificateRequestResponse)
def create_certificate_request(
    req: CertificateRequestCreate,
    config: Config = Depends(get_config),
    registry: ConversionRegistry = Depends(get_registry),
) -> CertificateRequestResponse:
    """
    客户端提交 Certificate 资源文档，生成一次性的证书请求。
    """
    try:
        return services.create_certificate_request_service(req, config, registry)
    except ValueError as e:
        # 文档 / 规格 / 算法错误，返回 400
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        # 密钥生成或签名失败，返回 500
        raise HTTPException(status_code=500, detail=f"证书请求生成失败: {str(e)}")
    except Exception as e:
        # 捕获所有未预期的错误并返回 500
        raise HTTPException(status_code=500, detail=f"内部服务器错误: {str(e)}")


@router.post("/name", response_model=RequestNameResponse)
def compute_request_name(
    req: CertificateRequestCreate,
    config: Config = Depends(get_config),
    registry: ConversionRegistry = Depends(get_registry),
) -> RequestNameResponse:
    """
    仅返回证书请求的确定性名称。
    """
    try:
        return services.compute_request_name_service(req, config, registry)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"内部服务器错误: {str(e)}")
