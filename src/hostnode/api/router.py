# src/hostnode/api/router.py

from fastapi import APIRouter
from hostnode.api.v1 import identity
from hostnode.api.v1 import project
from hostnode.api.v1 import deployment
from hostnode.api.v1 import billing
from hostnode.api.v1 import domain
from hostnode.api.v1 import public

# The main router for API v1
router = APIRouter(prefix="/api/v1")

router.include_router(public.router, prefix="/public", tags=["Public"])
router.include_router(identity.router, prefix="/users", tags=["Identity"])
router.include_router(project.router, prefix="/projects", tags=["Projects"])
router.include_router(deployment.router, prefix="/projects", tags=["Deployments"])
router.include_router(billing.router, prefix="/projects", tags=["Billing"])
router.include_router(domain.router, prefix="/projects", tags=["Domains"])
