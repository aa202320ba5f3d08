# hostnode/middleware.py

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

IDENTITY_HEADER = "X-Identity-Key"

# 认证策略只从 request 中提取凭证，不访问数据库
def _extract_identity_key(request: Request) -> None:
    """Strategy for extracting the verified caller identity placed by the auth proxy."""
    identity_key = request.headers.get(IDENTITY_HEADER)
    if identity_key:
        setattr(request.state, "identity_key", identity_key.strip())

class AuthenticationMiddleware(BaseHTTPMiddleware):
    AUTH_EXTRACTORS = [
        _extract_identity_key,
    ]

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        # 为每个请求重置状态
        setattr(request.state, "identity_key", None)

        for extractor in self.AUTH_EXTRACTORS:
            extractor(request)

        response = await call_next(request)
        return response
