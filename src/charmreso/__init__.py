"""Public package exports for the D-V0 resonance reduction framework."""

from .calibration import (
    CalibrationUnavailableError,
    FieldContext,
    RunCalibrationCache,
    StaticFieldSource,
)
from .channels import ChannelSpec, DecayChannel, channel_from_name, channel_spec
from .creator import CollisionOutput, ReducedDataCreator, ReducedTables
from .dedup import V0DeduplicationIndex
from .models import (
    Collision,
    CollisionInput,
    DCandidate,
    DSelection,
    DVariant,
    LorentzVector,
    PairRecord,
    ReducedCollisionRecord,
    ReducedDRecord,
    ReducedV0Record,
    ResonanceWindows,
    V0Candidate,
    V0Hypothesis,
    V0Selection,
)
from .observer import NullObserver, QARegistry, SelectionObserver, SelectionStage
from .resonance import ResonanceCandidateCreator
from .selection import evaluate_d, evaluate_v0

__all__ = [
    "ReducedDataCreator",
    "ResonanceCandidateCreator",
    "ReducedTables",
    "CollisionOutput",
    "V0DeduplicationIndex",
    "Collision",
    "CollisionInput",
    "DCandidate",
    "DVariant",
    "V0Candidate",
    "V0Hypothesis",
    "ReducedCollisionRecord",
    "ReducedDRecord",
    "ReducedV0Record",
    "PairRecord",
    "LorentzVector",
    "V0Selection",
    "DSelection",
    "ResonanceWindows",
    "DecayChannel",
    "ChannelSpec",
    "channel_spec",
    "channel_from_name",
    "evaluate_d",
    "evaluate_v0",
    "FieldContext",
    "RunCalibrationCache",
    "StaticFieldSource",
    "CalibrationUnavailableError",
    "SelectionObserver",
    "SelectionStage",
    "NullObserver",
    "QARegistry",
]
