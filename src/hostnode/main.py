# src/hostnode/main.py

import logging
from contextlib import asynccontextmanager
from arq import create_pool
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from hostnode.core.config import settings
from hostnode.api.router import router
from hostnode.middleware import AuthenticationMiddleware
from hostnode.services.redis_service import RedisService
from hostnode.engine.cluster.factory import get_cluster_client
from hostnode.engine.notification.main import get_notifier
from hostnode.worker.main import get_redis_settings
from hostnode.services.exceptions import (
    ServiceException, NotFoundError, PermissionDeniedError, ConfigurationError, DeployValidationError,
    InfrastructureError, TransientLookupError, InvalidStateTransition, TenantDeleted
)

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Connecting to Redis...")
    app.state.redis_service = RedisService()
    # ARQ 客户端连接池，用于向 worker 投递任务
    app.state.arq_pool = await create_pool(get_redis_settings())
    app.state.cluster = get_cluster_client()
    app.state.notifier = get_notifier()

    yield

    logger.info("Closing Redis connections...")
    await app.state.redis_service.close()
    await app.state.arq_pool.aclose()

app = FastAPI(
    title="Hosting Node",
    lifespan=lifespan
)

app.add_middleware(AuthenticationMiddleware)

origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"])

app.include_router(router)

def _envelope(status_code: int, msg: str, data=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": status_code, "msg": msg, "data": data})

@app.exception_handler(DeployValidationError)
async def deploy_validation_exception_handler(request: Request, exc: DeployValidationError):
    """校验错误是终态的，调用方需要修改 manifest / artifact 后重新提交。"""
    instructions = getattr(exc, "instructions", None)
    return _envelope(status.HTTP_400_BAD_REQUEST, exc.message, {"instructions": instructions} if instructions else None)

@app.exception_handler(TransientLookupError)
async def transient_lookup_exception_handler(request: Request, exc: TransientLookupError):
    return _envelope(status.HTTP_503_SERVICE_UNAVAILABLE, exc.message, {"instructions": exc.instructions})

@app.exception_handler(InfrastructureError)
async def infrastructure_exception_handler(request: Request, exc: InfrastructureError):
    # diagnostics 只进日志，调用方只看到摘要
    logger.error(f"Infrastructure error on {request.url.path}: {exc.message}\n{exc.diagnostics or ''}")
    return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message)

@app.exception_handler(NotFoundError)
async def not_found_exception_handler(request: Request, exc: NotFoundError):
    return _envelope(status.HTTP_404_NOT_FOUND, exc.message)

@app.exception_handler(PermissionDeniedError)
async def permission_denied_exception_handler(request: Request, exc: PermissionDeniedError):
    return _envelope(status.HTTP_403_FORBIDDEN, exc.message)

@app.exception_handler(InvalidStateTransition)
async def invalid_state_exception_handler(request: Request, exc: InvalidStateTransition):
    return _envelope(status.HTTP_409_CONFLICT, exc.message)

@app.exception_handler(TenantDeleted)
async def tenant_deleted_exception_handler(request: Request, exc: TenantDeleted):
    return _envelope(status.HTTP_409_CONFLICT, exc.message)

@app.exception_handler(ConfigurationError)
async def configuration_exception_handler(request: Request, exc: ConfigurationError):
    logger.error(f"Configuration error: {exc.message}")
    return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message)

@app.exception_handler(ServiceException)
async def service_exception_handler(request: Request, exc: ServiceException):
    # 处理所有来自服务层的、可预期的业务逻辑错误
    logger.info(f"Service error on {request.url.path}: {exc.message}")
    return _envelope(status.HTTP_400_BAD_REQUEST, exc.message)

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    # 重写 FastAPI 默认的 HTTPException 处理器，以匹配我们的响应格式
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": exc.status_code, "msg": exc.detail, "data": None},
        headers=exc.headers,
    )

@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=exc)
    return _envelope(500, "Internal Server Error")
