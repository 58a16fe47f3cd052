from enum import Enum
VERSION = "1.0.0"

class Phase(Enum):
    SETUP = "setup"
    # ABCDE flow
    SIGNS_OF_LIFE = "signs_of_life"
    AIRWAY = "airway"
    BREATHING = "breathing"
    CIRCULATION = "circulation"
    DISABILITY = "disability"
    EXPOSURE = "exposure"
    # Branching "main problem" flow
    TRIAGE = "triage"
    PROBLEM_IDENTIFICATION = "problem_identification"
    BREATHING_PATHWAY = "breathing_pathway"
    SHOCK_PATHWAY = "shock_pathway"
    NEURO_PATHWAY = "neuro_pathway"
    TRAUMA_PATHWAY = "trauma_pathway"
    POISONING_PATHWAY = "poisoning_pathway"
    ALLERGIC_PATHWAY = "allergic_pathway"
    COMPLETE = "complete"

# Back/skip are locked here: life-threat checks come before anything else
SAFETY_CRITICAL_PHASES = frozenset({Phase.SIGNS_OF_LIFE, Phase.TRIAGE})

class FlowVariant(Enum):
    ABCDE = "abcde"          # Fixed order, every question visited
    BRANCHING = "branching"  # Triage -> main problem -> pathway

class AnswerKind(Enum):
    BOOLEAN = "boolean"
    SELECT = "select"
    MULTI_SELECT = "multi_select"
    NUMBER = "number"

class FindingSeverity(Enum):
    NORMAL = "normal"
    ABNORMAL = "abnormal"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return {"normal": 0, "abnormal": 1, "critical": 2}[self.value]

class ActionSeverity(Enum):
    CRITICAL = "critical"
    URGENT = "urgent"
    ROUTINE = "routine"

    @property
    def rank(self) -> int:
        return {"critical": 0, "urgent": 1, "routine": 2}[self.value]

class GlucoseUnit(Enum):
    MMOL_L = "mmol/L"
    MG_DL = "mg/dL"

class InterventionType(Enum):
    IV_ACCESS = "iv_access"
    IO_ACCESS = "io_access"
    FLUID_BOLUS = "fluid_bolus"
    MEDICATION = "medication"
    AIRWAY = "airway"
    BREATHING = "breathing"  # BVM ventilation
    CPR = "cpr"              # Compressions
    NEBULIZER = "nebulizer"
    LAB_COLLECTION = "lab_collection"
    MONITORING = "monitoring"

class InterventionStatus(Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ESCALATED = "escalated"
    CANCELLED = "cancelled"

class TemplateKey(Enum):
    """Closed set of intervention templates an action may reference."""
    IV_ACCESS = "iv_access"
    IO_ACCESS = "io_access"
    FLUID_BOLUS = "fluid_bolus"
    SALBUTAMOL_NEB = "salbutamol_neb"
    EPINEPHRINE_IV = "epinephrine_iv"
    EPINEPHRINE_IM = "epinephrine_im"
    BVM_VENTILATION = "bvm_ventilation"
    CPR = "cpr"
    LAB_COLLECTION = "lab_collection"
    SEIZURE_MONITORING = "seizure_monitoring"

class ModuleName(Enum):
    """Closed set of external specialised engines the orchestrator can open."""
    SHOCK = "shock"
    ASTHMA = "asthma"
    IV_IO = "iv_io"
    FLUID_BOLUS = "fluid_bolus"
    INOTROPE = "inotrope"
    LAB = "lab"
    ARRHYTHMIA = "arrhythmia"
    AIRWAY = "airway"

class ModuleOutcome(Enum):
    RESOLVED = "resolved"                  # Shock resolved / stabilised / access obtained / done
    NO_RESPONSE = "no_response"            # Escalate to the next engine in the chain
    OVERLOAD = "overload"                  # Fluid overload signs on reassessment
    ACCESS_REQUESTED = "access_requested"  # Shock engine asks for the IV/IO timer
    REFERRAL = "referral"                  # Senior help / transfer requested
    DISMISSED = "dismissed"                # Overlay closed without an outcome

class SafetyFlag(Enum):
    SVT_SUSPECTED = "svt_suspected"
    HEART_FAILURE_SIGNS = "heart_failure_signs"
    FLUID_OVERLOAD = "fluid_overload"

class CancellationPolicy(Enum):
    REMOVE = "remove"  # Drop the intervention, no audit record
    RETAIN = "retain"  # Keep it with status CANCELLED

class AlertKind(Enum):
    CRITICAL_ACTION = "critical_action"
    TIMER_WARNING = "timer_warning"
    REASSESSMENT_DUE = "reassessment_due"

class AGE_CONSTANTS:
    # Upper bound (exclusive, months) of each vital-sign band
    INFANT_UPPER_MONTHS = 12
    PRESCHOOL_UPPER_MONTHS = 60
    MAX_AGE_YEARS = 18

class VITAL_SIGN_BANDS:
    # (low, high) per band: <12 months, 12-59 months, >=60 months
    HEART_RATE = ((100, 180), (80, 160), (60, 140))
    RESPIRATORY_RATE = ((30, 60), (20, 40), (12, 30))
    SEVERE_TACHYPNEA_FACTOR = 1.5
    SVT_HEART_RATE = 220
    INFANT_SYSTOLIC_FLOOR = 60
    CHILD_SYSTOLIC_BASE = 70
    CHILD_SYSTOLIC_PER_YEAR = 2
    SYSTOLIC_FLOOR_CEILING = 90
    SPO2_SEVERE = 90
    SPO2_LOW = 94

class DOSING_LIMITS:
    """Published per-kg rates and hard caps. Every dose is clamped to its cap."""
    EPI_PER_KG_MG = 0.01
    EPI_IM_MAX_MG = 0.5
    EPI_IV_MAX_MG = 1.0
    DEXAMETHASONE_PER_KG_MG = 0.6
    DEXAMETHASONE_MAX_MG = 10.0
    NEB_EPI_PER_KG_ML = 0.5
    NEB_EPI_MAX_ML = 5.0
    ADENOSINE_FIRST_PER_KG_MG = 0.1
    ADENOSINE_FIRST_MAX_MG = 6.0
    ADENOSINE_SECOND_PER_KG_MG = 0.2
    ADENOSINE_SECOND_MAX_MG = 12.0
    ATROPINE_PER_KG_MG = 0.02
    ATROPINE_MIN_MG = 0.1
    ATROPINE_CHILD_MAX_MG = 0.5
    ATROPINE_ADOLESCENT_MAX_MG = 1.0
    AMIODARONE_PER_KG_MG = 5.0
    AMIODARONE_MAX_MG = 300.0
    BOLUS_PER_KG_ML = 10.0
    SEPSIS_BOLUS_PER_KG_ML = 20.0
    BOLUS_MAX_ML = 1000.0
    FLUID_CEILING_PER_KG_ML = 60.0
    D10_PER_KG_ML = 2.0
    D10_MAX_ML = 100.0
    SALBUTAMOL_WEIGHT_SPLIT_KG = 20.0
    SALBUTAMOL_LOW_MG = 2.5
    SALBUTAMOL_HIGH_MG = 5.0
    PREDNISOLONE_PER_KG_MG = 2.0
    PREDNISOLONE_MAX_MG = 60.0
    LORAZEPAM_PER_KG_MG = 0.1
    LORAZEPAM_MAX_MG = 4.0
    DIAZEPAM_PER_KG_MG = 0.3
    DIAZEPAM_MAX_MG = 10.0
    MIDAZOLAM_PER_KG_MG = 0.2
    MIDAZOLAM_MAX_MG = 10.0
    CEFTRIAXONE_MENINGITIC_PER_KG_MG = 80.0
    CEFTRIAXONE_MENINGITIC_MAX_MG = 4000.0
    CEFTRIAXONE_SEPSIS_PER_KG_MG = 50.0
    CEFTRIAXONE_SEPSIS_MAX_MG = 2000.0
    FUROSEMIDE_PER_KG_MG = 1.0
    FUROSEMIDE_MAX_MG = 40.0
    DEFIB_FIRST_J_PER_KG = 2.0
    DEFIB_SUBSEQUENT_J_PER_KG = 4.0
    CARDIOVERSION_LOW_J_PER_KG = 0.5
    CARDIOVERSION_HIGH_J_PER_KG = 1.0
    CARDIOVERSION_ESCALATED_J_PER_KG = 2.0
    MAX_ENERGY_J = 200.0

class ENGINE_DEFAULTS:
    DEFAULT_SCENARIO_WEIGHT_KG = 4.5  # Term newborn
    ACK_DELAY_SECONDS = 0.3
    GLUCOSE_MG_DL_PER_MMOL_L = 18.0
    MIN_EXPLICIT_WEIGHT_KG = 0.5
    MAX_EXPLICIT_WEIGHT_KG = 150.0
