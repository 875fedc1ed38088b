"""Infrastructure mappers bridging persistence and domain layers."""

from .phase_mapper import PhaseMapper, PhaseMappingError

__all__ = [
    "PhaseMapper",
    "PhaseMappingError",
]
