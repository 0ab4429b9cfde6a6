"""
Module: pms_services
Responsibility:
    Orchestration seam between the surrounding application and the pure
    engines: lifecycle operation dispatch, reference-code minting and
    start-up from configuration.

Architecture position:
    Services layer.  May import pms_engines, pms_kernel and pms_config.
    Nothing in pms_kernel or pms_engines imports from here.
"""

from pms_services.bootstrap import bootstrap
from pms_services.lifecycles import ALL_LIFECYCLES, Lifecycle, LifecycleStep, StepKind
from pms_services.reference_codes import ReferenceCodeService
from pms_services.workflow_executor import (
    AuthorizationProvider,
    StaticAuthorizationProvider,
    WorkflowExecutor,
)

__all__ = [
    "ALL_LIFECYCLES",
    "AuthorizationProvider",
    "Lifecycle",
    "LifecycleStep",
    "ReferenceCodeService",
    "StaticAuthorizationProvider",
    "StepKind",
    "WorkflowExecutor",
    "bootstrap",
]
