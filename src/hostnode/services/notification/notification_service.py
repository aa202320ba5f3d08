# src/hostnode/services/notification/notification_service.py

import logging
from typing import List, Optional
from hostnode.core.context import AppContext
from hostnode.dao.project.project_dao import ProjectAdminDao
from hostnode.engine.notification.base import BaseNotifier, NotificationError
from hostnode.models import Project

logger = logging.getLogger(__name__)

SIGNATURE = "\n\nBest regards,\nMandala Network"

TEMPLATES = {
    "admin_added": (
        "You have been added as an admin to project {name}",
        "Hello,\n\nYou have been added as an admin to the project \"{name}\" ({uuid})."
    ),
    "admin_removed": (
        "You have been removed from project {name}",
        "Hello,\n\nYou have been removed as an admin from the project \"{name}\" ({uuid})."
    ),
    "project_deleted": (
        "Project {name} has been deleted",
        "Hello,\n\nThe project \"{name}\" ({uuid}) and all of its resources have been deleted."
    ),
    "domain_updated": (
        "Custom {kind} domain updated for project {name}",
        "Hello,\n\nThe custom {kind} domain of project \"{name}\" ({uuid}) is now {domain}.\n"
        "It takes effect with the next deployment."
    ),
    "deployment_failed": (
        "Deployment {deployment} of project {name} failed",
        "Hello,\n\nDeployment {deployment} of project \"{name}\" ({uuid}) failed:\n\n{error}"
    ),
    "deployment_succeeded": (
        "Deployment {deployment} of project {name} is live",
        "Hello,\n\nDeployment {deployment} of project \"{name}\" ({uuid}) has been rolled out."
    ),
    "welcome_admin": (
        "Welcome to project {name}",
        "Hello,\n\nYou are now the first admin of the project \"{name}\" ({uuid})."
    ),
}

def render(template: str, project: Project, **params) -> tuple:
    subject, body = TEMPLATES[template]
    values = {"name": project.name, "uuid": project.uuid, **params}
    return subject.format(**values), body.format(**values) + SIGNATURE

class NotificationService:
    """尽力而为的管理员通知：发送失败只记录日志，不影响调用方。"""

    def __init__(self, context: AppContext):
        self.context = context
        self.notifier: Optional[BaseNotifier] = context.notifier
        self.admin_dao = ProjectAdminDao(context.db)

    async def admin_emails(self, project: Project) -> List[str]:
        admins = await self.admin_dao.list_by_project(project.id)
        return [a.user.email for a in admins if a.user and a.user.email]

    async def send(self, recipients: List[str], template: str, project: Project, **params) -> bool:
        if not self.notifier or not recipients:
            return False
        subject, body = render(template, project, **params)
        try:
            await self.notifier.notify(recipients, subject, body)
            return True
        except NotificationError as e:
            logger.warning(f"Notification '{template}' for project {project.uuid} failed: {e}")
            return False

    async def notify_admins(self, project: Project, template: str, **params) -> bool:
        return await self.send(await self.admin_emails(project), template, project, **params)
