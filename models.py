"""
PediaGPS: Data Dictionary for the Clinical Assessment Engine
============================================================
This module defines the state space of one assessment session.
It includes Inputs (Patient, Answers), Static Configuration (Questions),
and the session record (Findings, Actions, Interventions, Safety Flags).

Only validation lives here. Clinical derivations are in dosing.py,
questions.py and safety.py.
"""

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Set, Tuple

from constants import (
    ActionSeverity,
    AnswerKind,
    CancellationPolicy,
    ENGINE_DEFAULTS,
    AGE_CONSTANTS,
    FindingSeverity,
    FlowVariant,
    GlucoseUnit,
    InterventionStatus,
    InterventionType,
    ModuleName,
    Phase,
    SafetyFlag,
    TemplateKey,
)
from dosing import estimate_weight


class DataTypeError(TypeError):
    """Raised when inputs are wrong python types (str instead of float)."""
    pass

class InvalidAnswerError(ValueError):
    """Raised when an answer does not fit its question. No trigger is run."""
    pass

class PatientContextLockedError(ValueError):
    """Raised when patient details are edited after the assessment started."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


# --- 1. INPUT LAYER (What the Provider Enters at Setup) ---

@dataclass
class PatientContext:
    """
    Age, optional measured weight and the glucose unit the provider reads.
    Weight 0 means 'not measured' and falls back to the age estimate.
    """
    age_years: int = 0
    age_months: int = 0
    weight_kg: float = 0.0
    glucose_unit: GlucoseUnit = GlucoseUnit.MMOL_L

    def __post_init__(self):
        # 1. Type Safety (prevent string math crashes)
        for name in ("age_years", "age_months"):
            val = getattr(self, name)
            if isinstance(val, bool) or not isinstance(val, int):
                raise DataTypeError(f"Field '{name}' must be an integer, got {type(val)}")
        if isinstance(self.weight_kg, bool) or not isinstance(self.weight_kg, (int, float)):
            raise DataTypeError(f"Field 'weight_kg' must be numeric, got {type(self.weight_kg)}")
        if isinstance(self.glucose_unit, str):
            self.glucose_unit = GlucoseUnit(self.glucose_unit)

        # 2. Range Checks
        if not (0 <= self.age_years <= AGE_CONSTANTS.MAX_AGE_YEARS):
            raise ValueError(f"Invalid age (years): {self.age_years}")
        if not (0 <= self.age_months <= 11):
            raise ValueError(f"Invalid age (months): {self.age_months}")
        if not math.isfinite(self.weight_kg) or self.weight_kg < 0:
            raise ValueError(f"Invalid weight: {self.weight_kg}")
        if self.weight_kg > 0 and not (
            ENGINE_DEFAULTS.MIN_EXPLICIT_WEIGHT_KG <= self.weight_kg <= ENGINE_DEFAULTS.MAX_EXPLICIT_WEIGHT_KG
        ):
            raise ValueError(f"Invalid weight: {self.weight_kg}")

    @property
    def total_months(self) -> int:
        return self.age_years * 12 + self.age_months

    @property
    def working_weight(self) -> float:
        if self.weight_kg > 0:
            return float(self.weight_kg)
        return estimate_weight(self.total_months)

    @property
    def weight_is_estimated(self) -> bool:
        return not self.weight_kg > 0


# --- 2. STATIC CONFIGURATION (The Question Graph) ---

@dataclass(frozen=True)
class QuestionOption:
    value: str
    label: str
    severity: FindingSeverity = FindingSeverity.NORMAL

@dataclass(frozen=True)
class DoseCard:
    medication: str
    indication: str
    route: str
    timing: str
    notes: str = ""
    dose: Optional[str] = None

@dataclass(frozen=True)
class TriggeredAction:
    """A one-shot recommendation surfaced to the provider."""
    id: str
    severity: ActionSeverity
    title: str
    instruction: str
    rationale: str
    dose: Optional[str] = None
    route: Optional[str] = None
    timer_seconds: Optional[int] = None
    reassess_after: Optional[str] = None
    dose_card: Optional[DoseCard] = None
    template: Optional[TemplateKey] = None
    module: Optional[ModuleName] = None

# (answer, patient, working_weight) -> action or None
TriggerFn = Callable[[Any, PatientContext, float], Optional[TriggeredAction]]

@dataclass(frozen=True)
class Question:
    id: str
    phase: Phase
    prompt: str
    kind: AnswerKind
    subtext: str = ""
    options: Tuple[QuestionOption, ...] = ()
    unit: Optional[str] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    # Declared unit of a glucose question; answers are converted from the
    # patient's preferred unit before validation and triggering.
    glucose_unit: Optional[GlucoseUnit] = None
    trigger: Optional[TriggerFn] = None

    def option_values(self) -> List[str]:
        return [o.value for o in self.options]

    def normalize_answer(self, answer: Any, patient: PatientContext) -> Any:
        if (self.glucose_unit is None or patient.glucose_unit == self.glucose_unit
                or isinstance(answer, bool) or not isinstance(answer, (int, float))):
            return answer
        factor = ENGINE_DEFAULTS.GLUCOSE_MG_DL_PER_MMOL_L
        if self.glucose_unit == GlucoseUnit.MG_DL:
            return answer * factor
        return answer / factor

    def bounds_for(self, patient: PatientContext) -> Tuple[Optional[float], Optional[float]]:
        """
        min/max in the unit the provider answers in. Converted bounds are
        rounded inwards to one decimal so that any value shown as allowed
        also passes validation.
        """
        if self.glucose_unit is None or patient.glucose_unit == self.glucose_unit:
            return self.min_value, self.max_value
        factor = ENGINE_DEFAULTS.GLUCOSE_MG_DL_PER_MMOL_L
        scale = factor if self.glucose_unit == GlucoseUnit.MMOL_L else 1 / factor
        low = None if self.min_value is None else math.ceil(self.min_value * scale * 10) / 10
        high = None if self.max_value is None else math.floor(self.max_value * scale * 10) / 10
        return low, high

    def validate_answer(self, answer: Any, patient: PatientContext) -> Any:
        """
        Edit-boundary check. Returns the answer in the question's own unit,
        or raises InvalidAnswerError. Never called for a skip (None).
        """
        if self.kind == AnswerKind.BOOLEAN:
            if not isinstance(answer, bool):
                raise InvalidAnswerError(f"'{self.id}' expects yes/no, got {answer!r}")
            return answer

        if self.kind == AnswerKind.SELECT:
            if answer not in self.option_values():
                raise InvalidAnswerError(f"'{self.id}' has no option {answer!r}")
            return answer

        if self.kind == AnswerKind.MULTI_SELECT:
            if isinstance(answer, str) or not isinstance(answer, (list, tuple, set, frozenset)):
                raise InvalidAnswerError(f"'{self.id}' expects a list of options, got {answer!r}")
            unknown = [a for a in answer if a not in self.option_values()]
            if unknown:
                raise InvalidAnswerError(f"'{self.id}' has no option(s) {unknown!r}")
            # Keep declaration order, drop duplicates
            return [v for v in self.option_values() if v in answer]

        # NUMBER
        if isinstance(answer, bool) or not isinstance(answer, (int, float)):
            raise InvalidAnswerError(f"'{self.id}' expects a number, got {answer!r}")
        if not math.isfinite(answer):
            raise InvalidAnswerError(f"'{self.id}' got a non-finite value")
        value = self.normalize_answer(answer, patient)
        if self.min_value is not None and value < self.min_value:
            raise InvalidAnswerError(f"'{self.id}' value {answer} is below the minimum")
        if self.max_value is not None and value > self.max_value:
            raise InvalidAnswerError(f"'{self.id}' value {answer} is above the maximum")
        return value

    def severity_for(self, answer: Any) -> FindingSeverity:
        if answer is None or not self.options:
            return FindingSeverity.NORMAL
        chosen = answer if isinstance(answer, list) else [answer]
        matched = [o.severity for o in self.options if o.value in chosen]
        if not matched:
            return FindingSeverity.NORMAL
        return max(matched, key=lambda s: s.rank)


# --- 3. SESSION RECORD (Created During the Assessment) ---

@dataclass(frozen=True)
class Finding:
    """Append-only audit entry. Never mutated, never retracted by 'back'."""
    sequence: int
    question_id: str
    question: str
    answer: Any
    phase: Phase
    severity: FindingSeverity = FindingSeverity.NORMAL
    action_id: Optional[str] = None
    triggered_interventions: Tuple[str, ...] = ()
    timestamp: datetime = field(default_factory=utcnow)

@dataclass
class ActiveIntervention:
    id: str
    type: InterventionType
    title: str
    instruction: str
    priority: ActionSeverity
    status: InterventionStatus = InterventionStatus.ACTIVE
    start_time: datetime = field(default_factory=utcnow)
    module: Optional[ModuleName] = None
    template: Optional[TemplateKey] = None
    timer_seconds: Optional[int] = None
    dose: Optional[str] = None
    route: Optional[str] = None
    reassessment_required: bool = False
    reassessment_prompt: Optional[str] = None
    escalation_action: Optional[str] = None
    escalation_reason: Optional[str] = None
    # FLUID BOLUS TRACKING
    bolus_number: Optional[int] = None
    volume_ml: Optional[float] = None
    volume_given_ml: Optional[float] = None
    max_volume_ml: Optional[float] = None
    ended_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.status == InterventionStatus.ACTIVE

@dataclass(frozen=True)
class ModuleRequest:
    """Context handed to an external engine when its overlay is opened."""
    module: ModuleName
    weight_kg: float
    intervention_id: Optional[str] = None
    bolus_number: Optional[int] = None
    volume_given_ml: Optional[float] = None
    max_volume_ml: Optional[float] = None

@dataclass
class EngineConfig:
    """Per-engine tunables, fixed at construction."""
    flow_variant: FlowVariant = FlowVariant.ABCDE
    # 0 applies the advance immediately; the HTTP layer uses the UI delay
    ack_delay_seconds: float = 0.0
    cancellation_policy: CancellationPolicy = CancellationPolicy.REMOVE
    lock_skip_in_critical_phases: bool = True
    default_scenario_weight_kg: float = ENGINE_DEFAULTS.DEFAULT_SCENARIO_WEIGHT_KG

    def __post_init__(self):
        if isinstance(self.flow_variant, str):
            self.flow_variant = FlowVariant(self.flow_variant)
        if isinstance(self.cancellation_policy, str):
            self.cancellation_policy = CancellationPolicy(self.cancellation_policy)
        if self.ack_delay_seconds < 0:
            raise ValueError(f"Invalid ack delay: {self.ack_delay_seconds}")
        if self.default_scenario_weight_kg <= 0:
            raise ValueError(f"Invalid default scenario weight: {self.default_scenario_weight_kg}")

@dataclass
class SessionState:
    """
    Everything that changes during one assessment, passed explicitly to the
    gate, the intervention manager and the orchestrator.
    """
    flags: Set[SafetyFlag] = field(default_factory=set)
    emergency_activated: bool = False
    cpr_active: bool = False
    findings: List[Finding] = field(default_factory=list)
    interventions: List[ActiveIntervention] = field(default_factory=list)
    pending_action: Optional[TriggeredAction] = None
    open_module: Optional[ModuleRequest] = None
    case_start: datetime = field(default_factory=utcnow)

    def raise_flag(self, flag: SafetyFlag) -> bool:
        """Write-once: returns True only the first time a flag is raised."""
        if flag in self.flags:
            return False
        self.flags.add(flag)
        return True

    def has_flag(self, flag: SafetyFlag) -> bool:
        return flag in self.flags

    def append_finding(self, **kwargs) -> Finding:
        finding = Finding(sequence=len(self.findings) + 1, **kwargs)
        self.findings.append(finding)
        return finding

    def find_intervention(self, intervention_id: Optional[str]) -> Optional[ActiveIntervention]:
        if intervention_id is None:
            return None
        for intervention in self.interventions:
            if intervention.id == intervention_id:
                return intervention
        return None
