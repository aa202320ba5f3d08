# src/hostnode/services/topology/naming.py

"""Release 名称、namespace 与主机名都是项目 uuid 的纯函数。"""

from hostnode.core.config import settings

def namespace_for(project_uuid: str) -> str:
    return f"{settings.RELEASE_PREFIX}-{project_uuid}"

def release_name_for(project_uuid: str) -> str:
    # 资源名需要给 "-deployment" 等后缀留出长度
    return f"{settings.RELEASE_PREFIX}-{project_uuid[:24]}"

def agent_host(project_uuid: str, domain: str = None) -> str:
    return f"agent.{project_uuid}.{domain or settings.PROJECT_DEPLOYMENT_DNS_NAME}"

def frontend_host(project_uuid: str, domain: str = None) -> str:
    return f"frontend.{project_uuid}.{domain or settings.PROJECT_DEPLOYMENT_DNS_NAME}"

def tls_secret_name(project_uuid: str) -> str:
    return f"project-{project_uuid}-tls"

def deployment_name(release: str) -> str:
    return f"{release}-deployment"

def service_name(release: str) -> str:
    return f"{release}-service"

def autoscaler_name(release: str) -> str:
    return f"{release}-hpa"

def ingress_name(release: str) -> str:
    return f"{release}-ingress"

def agent_pvc_name(release: str) -> str:
    return f"{release}-agent-pvc"
