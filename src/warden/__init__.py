"""warden - Capability admission and sandboxed execution for untrusted agents.

warden decides what a third-party agent may do from its declared manifest and
a world policy, then enforces that grant on every tick: observations are
degraded to the granted budget, steps race a compute deadline, and actions are
checked against capabilities, a sliding-window rate limit and energy.
"""

__version__ = "0.1.0"

from .manifest import (
    DEFAULT_WORLD_POLICY,
    AdmissionController,
    AdmissionResult,
    AgentManifest,
    Capability,
    GrantedCapabilities,
    WorldPolicy,
    load_manifest,
    load_manifest_file,
    perform_admission,
    validate_manifest,
)
from .sandbox import (
    ActionRequest,
    SandboxContext,
    SandboxExecutor,
    TickPipeline,
    create_sandbox_context,
    degrade_observation,
    execute_step,
    process_actions,
)

__all__ = [
    "DEFAULT_WORLD_POLICY",
    "ActionRequest",
    "AdmissionController",
    "AdmissionResult",
    "AgentManifest",
    "Capability",
    "GrantedCapabilities",
    "SandboxContext",
    "SandboxExecutor",
    "TickPipeline",
    "WorldPolicy",
    "__version__",
    "create_sandbox_context",
    "degrade_observation",
    "execute_step",
    "load_manifest",
    "load_manifest_file",
    "perform_admission",
    "process_actions",
    "validate_manifest",
]
