# safety.py
"""
Trigger & Safety Gate.
Runs a question's trigger, rewrites fluid recommendations that a session
flag contraindicates, and keeps the write-once safety flags.
"""
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from constants import ActionSeverity, AlertKind, ModuleName, SafetyFlag, TemplateKey
from dosing import DoseCalculator
from models import PatientContext, Question, SessionState, TriggeredAction

logger = logging.getLogger("pediagps.safety")

# Candidate action id -> flag it raises (keyed on the trigger's own id)
FLAG_BY_ACTION_ID: Dict[str, SafetyFlag] = {
    "svt": SafetyFlag.SVT_SUSPECTED,
    "svt-suspected": SafetyFlag.SVT_SUSPECTED,
    "elevated-jvp": SafetyFlag.HEART_FAILURE_SIGNS,
    "hepatomegaly": SafetyFlag.HEART_FAILURE_SIGNS,
    "gallop-rhythm": SafetyFlag.HEART_FAILURE_SIGNS,
    "pulmonary-edema": SafetyFlag.HEART_FAILURE_SIGNS,
}

# Flags that forbid any fluid bolus recommendation
FLUID_CONTRAINDICATIONS = frozenset({
    SafetyFlag.SVT_SUSPECTED,
    SafetyFlag.HEART_FAILURE_SIGNS,
    SafetyFlag.FLUID_OVERLOAD,
})

REWRITTEN_ACTION_ID = "shock-no-fluid"
CPR_ACTION_ID = "start-cpr"


class AlertSink:
    """
    Fire-and-forget side effects (audio, haptics, clocks).
    The base implementation only logs; hosts subclass it.
    """

    def alert(self, kind: AlertKind, action: Optional[TriggeredAction] = None) -> None:
        logger.info("ALERT %s: %s", kind.value, action.title if action else "-")

    def start_compression_timer(self) -> None:
        logger.info("Compression timer started")


def notify(sink: Optional[AlertSink], method: str, *args) -> None:
    """Call a side effect; a failing sink is logged and never blocks the session."""
    if sink is None:
        return
    try:
        getattr(sink, method)(*args)
    except Exception:
        logger.error("Alert side effect '%s' failed", method, exc_info=True)


# --- REWRITE RULES ---

@dataclass(frozen=True)
class RewriteRule:
    flag: SafetyFlag
    build: Callable[[TriggeredAction, float], TriggeredAction]


def _no_fluid(action: TriggeredAction, title: str, instruction: str, rationale: str, module) -> TriggeredAction:
    # Same severity; the fluid template, dose and route are dropped
    return replace(
        action,
        id=REWRITTEN_ACTION_ID,
        title=title,
        instruction=instruction,
        rationale=rationale,
        dose=None,
        route=None,
        dose_card=None,
        template=None,
        module=module,
    )

def _svt_rewrite(action: TriggeredAction, weight: float) -> TriggeredAction:
    adenosine = DoseCalculator.adenosine(weight)
    _low, high = DoseCalculator.cardioversion(weight)
    return _no_fluid(
        action,
        "SHOCK DETECTED - BUT SVT PRESENT",
        f"DO NOT GIVE FLUID BOLUS. Treat SVT first: vagal maneuvers, then adenosine "
        f"{adenosine.format(2)} rapid IV. If unstable, synchronized cardioversion {high.format(1)}.",
        "SVT causes cardiogenic shock from poor cardiac output. Fluid will worsen heart failure. "
        "Treat the rhythm first.",
        ModuleName.ARRHYTHMIA,
    )

def _heart_failure_rewrite(action: TriggeredAction, weight: float) -> TriggeredAction:
    furosemide = DoseCalculator.furosemide(weight)
    return _no_fluid(
        action,
        "SHOCK DETECTED - BUT HEART FAILURE SIGNS PRESENT",
        f"DO NOT GIVE FLUID BOLUS. Heart failure signs present. Consider furosemide "
        f"{furosemide.format(1)} IV and an epinephrine infusion. Get senior help.",
        "Heart failure signs indicate the heart cannot handle more volume. "
        "Fluid bolus will cause pulmonary edema.",
        ModuleName.INOTROPE,
    )

def _overload_rewrite(action: TriggeredAction, weight: float) -> TriggeredAction:
    furosemide = DoseCalculator.furosemide(weight)
    return _no_fluid(
        action,
        "SHOCK DETECTED - BUT FLUID OVERLOAD PRESENT",
        f"DO NOT GIVE FURTHER FLUID. Overload signs were found on bolus reassessment. "
        f"Start inotropes. Consider furosemide {furosemide.format(1)} IV.",
        "The child has already shown fluid overload. More volume will cause pulmonary edema.",
        ModuleName.INOTROPE,
    )

# Priority order: first matching flag wins
DEFAULT_REWRITE_RULES: Tuple[RewriteRule, ...] = (
    RewriteRule(SafetyFlag.SVT_SUSPECTED, _svt_rewrite),
    RewriteRule(SafetyFlag.HEART_FAILURE_SIGNS, _heart_failure_rewrite),
    RewriteRule(SafetyFlag.FLUID_OVERLOAD, _overload_rewrite),
)


@dataclass
class GateDecision:
    candidate: Optional[TriggeredAction] = None
    surfaced: Optional[TriggeredAction] = None
    suppressed: bool = False
    raised_flags: Tuple[SafetyFlag, ...] = ()

    @property
    def rewritten(self) -> bool:
        return (self.candidate is not None and self.surfaced is not None
                and self.surfaced.id != self.candidate.id)


class SafetyGate:
    """
    Real-time safety checks applied to every answered question.
    Fails closed: a contraindicated fluid action with no matching rule is suppressed.
    """

    def __init__(self, alert_sink: Optional[AlertSink] = None,
                 rewrite_rules: Sequence[RewriteRule] = DEFAULT_REWRITE_RULES):
        self.alert_sink = alert_sink if alert_sink is not None else AlertSink()
        self.rewrite_rules = tuple(rewrite_rules)

    @staticmethod
    def run_trigger(question: Question, answer: Any, patient: PatientContext,
                    weight: float) -> Optional[TriggeredAction]:
        if answer is None or question.trigger is None:
            return None
        try:
            return question.trigger(answer, patient, weight)
        except Exception:
            logger.error("Trigger for '%s' raised; treated as no action", question.id, exc_info=True)
            return None

    def screen(self, candidate: TriggeredAction, session: SessionState,
               weight: float) -> Tuple[Optional[TriggeredAction], bool]:
        """Returns (surfaced, suppressed) for a candidate under the current flags."""
        if candidate.template != TemplateKey.FLUID_BOLUS:
            return candidate, False
        active = FLUID_CONTRAINDICATIONS & session.flags
        if not active:
            return candidate, False
        for rule in self.rewrite_rules:
            if rule.flag in active:
                logger.warning("Fluid action '%s' rewritten: %s set", candidate.id, rule.flag.value)
                return rule.build(candidate, weight), False
        logger.warning("Fluid action '%s' suppressed: flags %s, no rewrite rule",
                       candidate.id, sorted(f.value for f in active))
        return None, True

    def evaluate(self, question: Question, answer: Any, patient: PatientContext,
                 weight: float, session: SessionState) -> GateDecision:
        """
        1. Trigger -> candidate (skips never trigger)
        2. Contraindication screen -> surfaced action
        3. Flag bookkeeping on the candidate id
        4. Session side effects (emergency, CPR clock, alert)
        """
        candidate = self.run_trigger(question, answer, patient, weight)
        if candidate is None:
            return GateDecision()

        surfaced, suppressed = self.screen(candidate, session, weight)

        raised = []
        flag = FLAG_BY_ACTION_ID.get(candidate.id)
        if flag is not None and session.raise_flag(flag):
            logger.info("Safety flag raised: %s (from '%s')", flag.value, candidate.id)
            raised.append(flag)

        decision = GateDecision(candidate=candidate, surfaced=surfaced,
                                suppressed=suppressed, raised_flags=tuple(raised))
        self.apply_side_effects(decision.surfaced, session)
        return decision

    def apply_side_effects(self, action: Optional[TriggeredAction], session: SessionState) -> None:
        if action is None:
            return
        if action.severity == ActionSeverity.CRITICAL:
            session.emergency_activated = True
            notify(self.alert_sink, "alert", AlertKind.CRITICAL_ACTION, action)
        else:
            notify(self.alert_sink, "alert", AlertKind.TIMER_WARNING, action)
        if action.id == CPR_ACTION_ID and not session.cpr_active:
            session.cpr_active = True
            notify(self.alert_sink, "start_compression_timer")
