# hostnode/models/__init__.py

from .identity import User
from .project import (
    Project,
    ProjectAdmin,
    ProjectStatus,
    Network
)
from .deployment import (
    Deployment,
    DeploymentStatus,
    Release
)
from .billing import (
    LedgerEntry,
    TransactionType
)
from .auditing import (
    ProjectLog,
    LogLevel
)
