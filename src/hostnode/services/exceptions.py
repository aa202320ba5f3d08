# hostnode/services/exceptions.py

from typing import Optional

class ServiceException(Exception):
    """Base exception for all service layer errors."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)

class NotFoundError(ServiceException):
    """Raised when a project, deployment or user does not exist."""
    pass

class PermissionDeniedError(ServiceException):
    """Raised when the caller is not an admin of the target project."""
    pass

class ConfigurationError(ServiceException):
    """Raised if a required node configuration is missing."""
    pass

# --- 部署校验错误: 终态，不重试，映射为 400 ---

class DeployValidationError(ServiceException):
    """Base class for terminal, caller-facing deployment validation errors."""
    pass

class SchemaMismatch(DeployValidationError):
    pass

class MissingServiceSelector(DeployValidationError):
    pass

class UnknownService(DeployValidationError):
    pass

class UnsupportedResource(DeployValidationError):
    pass

class NoMatchingTarget(DeployValidationError):
    pass

class NetworkMismatch(DeployValidationError):
    pass

class ManifestInvalid(DeployValidationError):
    pass

class ArtifactInvalid(DeployValidationError):
    pass

class InsufficientBalance(DeployValidationError):
    pass

class InvalidDomain(DeployValidationError):
    pass

class DomainRejected(DeployValidationError):
    """DNS TXT 记录不匹配，message 中带有配置说明。"""
    def __init__(self, message: str, instructions: Optional[str] = None):
        super().__init__(message)
        self.instructions = instructions

# --- 基础设施/运行期错误 ---

class InfrastructureError(ServiceException):
    """
    构建、推送、集群应用或等待上线失败。
    diagnostics 只写入审计日志，调用方只能看到 message 摘要。
    """
    def __init__(self, message: str, diagnostics: Optional[str] = None):
        super().__init__(message)
        self.diagnostics = diagnostics

class TransientLookupError(ServiceException):
    """DNS 查询失败，调用方可以重试。"""
    def __init__(self, message: str, instructions: Optional[str] = None):
        super().__init__(message)
        self.instructions = instructions

class InvalidStateTransition(ServiceException):
    pass

class TenantDeleted(ServiceException):
    """项目已删除或正在删除，进行中的部署必须快速失败。"""
    pass

class TenantLockTimeout(InfrastructureError):
    pass
