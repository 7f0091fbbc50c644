"""Capability vocabulary and budget models shared by manifests and grants."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Capability(str, Enum):
    """Named permission to attempt a category of action."""

    MOVE = "MOVE"
    SENSE = "SENSE"
    GENERATE_TRACE = "GENERATE_TRACE"
    PROPOSE_PACT = "PROPOSE_PACT"
    INQUIRY = "INQUIRY"


class AgentKind(str, Enum):
    """Execution mode for an agent. Only BUILTIN is trusted."""

    WASM = "WASM"
    PROCESS = "PROCESS"
    BUILTIN = "BUILTIN"


class TraitsPreset(str, Enum):
    """Preset trait configurations an agent may start from."""

    QS = "QS"
    CBC = "CBC"
    JAP = "JAP"
    LLM = "LLM"
    MINIMAL = "MINIMAL"


class MutableTrait(str, Enum):
    """Traits an agent may declare as modifiable at runtime."""

    CURIOSITY = "curiosity"
    PERSISTENCE = "persistence"
    SOCIABILITY = "sociability"
    ENTROPY_AFFINITY = "entropy_affinity"


class WireModel(BaseModel):
    """Immutable model exchanged as camelCase JSON and used as snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class ActionRateLimit(WireModel):
    """Sliding-window action rate limit."""

    window_ticks: int = Field(ge=1, description="Rolling window size in ticks")
    max: int = Field(ge=0, description="Maximum executed actions allowed in window")


class ObservationBudget(WireModel):
    """Observation fidelity limits."""

    max_cells: int = Field(ge=0, description="Maximum cells visible in perception")
    max_fields: int = Field(ge=0, description="Maximum fields per observed cell")
    noise_floor: float = Field(
        ge=0.0, le=1.0, description="Multiplicative noise amplitude applied per cell"
    )


class EnergyBudget(WireModel):
    """Energy constraints."""

    max_per_tick: float = Field(ge=0.0, description="Maximum energy spent per tick")
    max_reserve: float = Field(ge=0.0, description="Maximum energy accumulated")


ALL_CAPABILITIES: tuple[Capability, ...] = tuple(Capability)
