# src/hostnode/services/domain/domain_service.py

import re
import logging
from typing import Optional
from hostnode.core.config import settings
from hostnode.core.context import AppContext
from hostnode.engine.dns.resolver import BaseTxtResolver, DnsPythonTxtResolver, DnsLookupError
from hostnode.models import Project
from hostnode.schemas.domain.domain_schemas import DomainKind, DomainVerifyResult
from hostnode.services.auditing.audit_service import AuditService
from hostnode.services.exceptions import InvalidDomain, DomainRejected, TransientLookupError
from hostnode.services.notification.notification_service import NotificationService
from hostnode.services.topology.topology_generator import HOSTNAME_PATTERN

logger = logging.getLogger(__name__)

# 至少两级且以字母顶级域结尾；各标签的合法性由 Ingress 主机名规则检查
DOMAIN_PATTERN = re.compile(r"^[a-z0-9.-]+\.[a-z]{2,}$")

def verification_record_name(domain: str) -> str:
    return f"{settings.DOMAIN_VERIFICATION_PREFIX}.{domain}"

def verification_token(project_uuid: str, kind: DomainKind) -> str:
    return f"mandala-project-verification={project_uuid}:{kind}"

def instructions(domain: str, project_uuid: str, kind: DomainKind) -> str:
    return (
        f'Add a TXT record at "{verification_record_name(domain)}" with the value '
        f'"{verification_token(project_uuid, kind)}", wait for DNS propagation, then retry.'
    )

class DomainService:
    """
    自定义域名的 TXT 所有权验证。
    验证通过只记录域名，新的 Ingress 主机在下一次部署时生效。
    """

    def __init__(self, context: AppContext, resolver: Optional[BaseTxtResolver] = None):
        self.context = context
        self.db = context.db
        self.resolver = resolver or DnsPythonTxtResolver()
        self.audit = AuditService(context.db)
        self.notifications = NotificationService(context)

    async def verify(self, project: Project, kind: DomainKind, domain: str) -> DomainVerifyResult:
        domain = domain.strip().lower()
        if not (DOMAIN_PATTERN.match(domain) and HOSTNAME_PATTERN.match(domain)):
            raise InvalidDomain(f"Invalid domain: {domain!r}")

        try:
            records = await self.resolver.lookup_txt(verification_record_name(domain))
        except DnsLookupError as e:
            raise TransientLookupError(
                f"DNS lookup for {domain} failed: {e}",
                instructions=instructions(domain, project.uuid, kind),
            ) from e

        expected = verification_token(project.uuid, kind)
        if not any(record.strip() == expected for record in records):
            raise DomainRejected(
                f"Verification record not found for {domain}.",
                instructions=instructions(domain, project.uuid, kind),
            )

        if kind == "frontend":
            project.frontend_custom_domain = domain
        else:
            project.agent_custom_domain = domain
        await self.db.flush()

        await self.audit.log_project(project, f"Custom {kind} domain verified: {domain}. Redeploy to apply.")
        await self.notifications.notify_admins(project, "domain_updated", kind=kind, domain=domain)
        return DomainVerifyResult(kind=kind, domain=domain)
