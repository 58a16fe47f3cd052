"""
PediaGPS: Assessment Engine
===========================
Session façade. One instance = one patient, one provider, one flow variant.

Answer pipeline:
    validate -> gate (trigger, contraindication screen, flags)
             -> finding appended -> intervention from template
             -> pending advance (applied now, or later by the host)
"""

import logging
from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from constants import VERSION, AlertKind, AnswerKind, FlowVariant, GlucoseUnit, Phase
from flow import AbcdeFlowPolicy, BranchingFlowPolicy, FlowNavigator
from interventions import InterventionManager
from models import (
    ActiveIntervention,
    EngineConfig,
    Finding,
    ModuleRequest,
    PatientContext,
    PatientContextLockedError,
    Question,
    SessionState,
    TriggeredAction,
    utcnow,
)
from orchestrator import ModuleOrchestrator
from protocols import ScenarioLauncher, ScenarioPlan
from questions import graph_for
from safety import DEFAULT_REWRITE_RULES, AlertSink, GateDecision, SafetyGate, notify

logger = logging.getLogger("pediagps.engine")


@dataclass
class AnswerResult:
    accepted: bool
    finding: Optional[Finding] = None
    action: Optional[TriggeredAction] = None
    suppressed: bool = False
    interventions: List[ActiveIntervention] = field(default_factory=list)


def to_jsonable(obj: Any) -> Any:
    """Enums -> values, datetimes -> ISO strings, dataclasses -> dicts."""
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    if is_dataclass(obj) and not isinstance(obj, type):
        return to_jsonable(asdict(obj))
    if isinstance(obj, dict):
        return {to_jsonable(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set, frozenset)):
        items = sorted(obj, key=lambda x: str(to_jsonable(x))) if isinstance(obj, (set, frozenset)) else obj
        return [to_jsonable(v) for v in items]
    return obj


def question_view(question: Question, patient: PatientContext) -> Dict[str, Any]:
    view = {
        "id": question.id,
        "phase": question.phase.value,
        "prompt": question.prompt,
        "subtext": question.subtext,
        "kind": question.kind.value,
        "options": [
            {"value": o.value, "label": o.label, "severity": o.severity.value}
            for o in question.options
        ],
        "unit": question.unit,
        "min": question.min_value,
        "max": question.max_value,
    }
    if question.glucose_unit is not None:
        # Answers are expected in the provider's unit
        view["answer_unit"] = patient.glucose_unit.value
        view["unit"] = patient.glucose_unit.value
        view["min"], view["max"] = question.bounds_for(patient)
    return view


class AssessmentEngine:

    def __init__(self, config: Optional[EngineConfig] = None,
                 alert_sink: Optional[AlertSink] = None,
                 rewrite_rules=DEFAULT_REWRITE_RULES):
        self.config = config or EngineConfig()
        self.alert_sink = alert_sink if alert_sink is not None else AlertSink()
        self.graph = graph_for(self.config.flow_variant)
        if self.config.flow_variant == FlowVariant.BRANCHING:
            policy = BranchingFlowPolicy(self.graph)
        else:
            policy = AbcdeFlowPolicy(self.graph)
        self.navigator = FlowNavigator(policy)
        self.gate = SafetyGate(self.alert_sink, rewrite_rules)
        self.patient = PatientContext()
        self.pending_advance = False
        self._reset_session()

    def _reset_session(self) -> None:
        self.session = SessionState()
        self.interventions = InterventionManager(self.session, self.config.cancellation_policy)
        self.orchestrator = ModuleOrchestrator(self.session, self.interventions, self.alert_sink)

    # --- Outbound state ---

    @property
    def phase(self) -> Phase:
        return self.navigator.phase

    @property
    def current_question(self) -> Optional[Question]:
        return self.navigator.current()

    @property
    def progress(self) -> float:
        return self.navigator.progress()

    @property
    def weight(self) -> float:
        return self.patient.working_weight

    @property
    def active_interventions(self) -> List[ActiveIntervention]:
        return self.interventions.active()

    @property
    def pending_action(self) -> Optional[TriggeredAction]:
        return self.session.pending_action

    @property
    def emergency_activated(self) -> bool:
        return self.session.emergency_activated

    @property
    def open_module_request(self) -> Optional[ModuleRequest]:
        return self.session.open_module

    @property
    def findings(self) -> List[Finding]:
        return list(self.session.findings)

    # --- Setup ---

    def update_patient(self, age_years: Optional[int] = None, age_months: Optional[int] = None,
                       weight_kg: Optional[float] = None, glucose_unit=None) -> PatientContext:
        if self.phase != Phase.SETUP:
            raise PatientContextLockedError("Patient details are locked once the assessment has started")
        current = self.patient
        self.patient = PatientContext(
            age_years=current.age_years if age_years is None else age_years,
            age_months=current.age_months if age_months is None else age_months,
            weight_kg=current.weight_kg if weight_kg is None else weight_kg,
            glucose_unit=current.glucose_unit if glucose_unit is None else GlucoseUnit(glucose_unit),
        )
        logger.info("Patient updated: %d y %d m, working weight %.1f kg%s",
                    self.patient.age_years, self.patient.age_months, self.weight,
                    " (estimated)" if self.patient.weight_is_estimated else "")
        return self.patient

    def start_assessment(self) -> Optional[str]:
        if self.phase != Phase.SETUP:
            logger.warning("Assessment already started (phase %s)", self.phase.value)
            return self.navigator.current_id
        self.session.case_start = utcnow()
        first = self.navigator.start()
        logger.info("Assessment started (%s flow) at '%s'", self.config.flow_variant.value, first)
        return first

    def start_scenario(self, name: str) -> Optional[ScenarioPlan]:
        """Launch a preset. Only from SETUP; an unknown name starts the normal assessment."""
        if self.phase != Phase.SETUP:
            logger.warning("Scenario '%s' refused: assessment already running", name)
            return None
        plan = ScenarioLauncher.plan(name, self.weight, self.config.default_scenario_weight_kg)
        if plan is None:
            self.start_assessment()
            return None

        target = plan.target_for(self.config.flow_variant)
        self.session.case_start = utcnow()
        if not self.navigator.jump(target.question_id, target.problem, target.phase):
            self.navigator.start()
        self.session.pending_action = plan.action
        self.gate.apply_side_effects(plan.action, self.session)
        if plan.intervention is not None:
            self.interventions.instantiate(plan.intervention, plan.weight_kg)
        logger.info("Scenario '%s' launched at %.1f kg -> '%s'", name, plan.weight_kg, target.question_id)
        return plan

    # --- Answering ---

    def submit_answer(self, question_id: str, answer: Any) -> AnswerResult:
        """
        Raises InvalidAnswerError for an answer that does not fit the question;
        nothing is recorded in that case. A stale question id or an answer
        during a pending advance is ignored (accepted=False).
        """
        if self.pending_advance:
            logger.info("Answer to '%s' ignored: advance pending", question_id)
            return AnswerResult(accepted=False)
        question = self.current_question
        if question is None or question.id != question_id:
            logger.warning("Answer to '%s' ignored: current question is %r",
                           question_id, question.id if question else None)
            return AnswerResult(accepted=False)
        if answer is None:
            if not self._skip_allowed():
                return AnswerResult(accepted=False)
            return self._record(question, None, None)

        value = question.validate_answer(answer, self.patient)
        raw = list(value) if question.kind == AnswerKind.MULTI_SELECT else answer
        return self._record(question, raw, value)

    def _skip_allowed(self) -> bool:
        if self.config.lock_skip_in_critical_phases and self.navigator.in_safety_critical_phase:
            logger.warning("Skip refused in safety-critical phase %s", self.phase.value)
            return False
        return True

    def skip(self) -> bool:
        question = self.current_question
        if question is None or self.pending_advance or not self._skip_allowed():
            return False
        self._record(question, None, None)
        return True

    def _record(self, question: Question, raw: Any, value: Any) -> AnswerResult:
        if value is None:
            decision = GateDecision()
        else:
            decision = self.gate.evaluate(question, value, self.patient, self.weight, self.session)

        created = []
        action = decision.surfaced
        if action is not None:
            self.session.pending_action = action
            if action.template is not None:
                intervention = self.interventions.instantiate(action.template, self.weight)
                if intervention is not None:
                    created.append(intervention)

        finding = self.session.append_finding(
            question_id=question.id,
            question=question.prompt,
            answer=raw,
            phase=question.phase,
            severity=question.severity_for(value),
            action_id=action.id if action else None,
            triggered_interventions=tuple(i.id for i in created),
        )
        logger.info("Finding #%d %s=%r%s", finding.sequence, question.id, raw,
                    f" -> {action.id}" if action else "")

        self.navigator.policy.on_answer(question.id, value)
        self.pending_advance = True
        if self.config.ack_delay_seconds == 0:
            self.apply_pending_advance()

        return AnswerResult(accepted=True, finding=finding, action=action,
                            suppressed=decision.suppressed, interventions=created)

    def apply_pending_advance(self) -> bool:
        if not self.pending_advance:
            return False
        self.pending_advance = False
        self.navigator.advance()
        return True

    def go_back(self) -> bool:
        """Moves the pointer only. Findings, interventions and flags stay."""
        moved = self.navigator.go_back()
        if moved:
            self.pending_advance = False
        return moved

    # --- Actions & interventions ---

    def dismiss_action(self) -> None:
        self.session.pending_action = None

    def call_for_help(self) -> None:
        self.orchestrator.call_for_help()

    def complete_intervention(self, intervention_id: str) -> Optional[ModuleRequest]:
        request = self.interventions.complete(intervention_id, self.weight)
        if request is not None:
            self.orchestrator.show(request)
        return request

    def escalate_intervention(self, intervention_id: str, reason: str = "") -> Optional[ActiveIntervention]:
        return self.interventions.escalate(intervention_id, reason, self.weight)

    def cancel_intervention(self, intervention_id: str) -> bool:
        return self.interventions.cancel(intervention_id)

    def request_reassessment(self, intervention_id: str) -> Optional[ModuleRequest]:
        request = self.interventions.reassessment_request(intervention_id, self.weight)
        if request is not None:
            self.orchestrator.show(request)
        return request

    def open_module(self, name, intervention_id: Optional[str] = None) -> Optional[ModuleRequest]:
        return self.orchestrator.open(name, self.weight, intervention_id)

    def module_callback(self, module_name, outcome, intervention_id: Optional[str] = None) -> Optional[ModuleRequest]:
        return self.orchestrator.handle_callback(module_name, outcome, self.weight, intervention_id)

    def check_timers(self, now: Optional[datetime] = None) -> List[ActiveIntervention]:
        """Alerts once per call for every open intervention whose timer has run out."""
        due = self.interventions.due_for_reassessment(now)
        for intervention in due:
            logger.info("Reassessment due: %s (%s)", intervention.title, intervention.id)
            notify(self.alert_sink, "alert", AlertKind.REASSESSMENT_DUE, None)
        return due

    def new_case(self) -> None:
        self.patient = PatientContext()
        self.pending_advance = False
        self.navigator.reset()
        self._reset_session()
        logger.info("New case: session cleared")

    # --- Reporting ---

    def snapshot(self) -> Dict[str, Any]:
        question = self.current_question
        return {
            "version": VERSION,
            "flow_variant": self.config.flow_variant.value,
            "phase": self.phase.value,
            "progress": round(self.progress, 4),
            "pending_advance": self.pending_advance,
            "current_question": question_view(question, self.patient) if question else None,
            "patient": {
                **to_jsonable(self.patient),
                "total_months": self.patient.total_months,
                "working_weight": self.weight,
                "weight_estimated": self.patient.weight_is_estimated,
            },
            "pending_action": to_jsonable(self.session.pending_action),
            "emergency_activated": self.session.emergency_activated,
            "cpr_active": self.session.cpr_active,
            "flags": to_jsonable(self.session.flags),
            "findings": to_jsonable(self.session.findings),
            "interventions": to_jsonable(self.session.interventions),
            "open_module": to_jsonable(self.session.open_module),
            "case_start": self.session.case_start.isoformat(),
        }

    def handover(self) -> Dict[str, Any]:
        from handover import build_handover
        return build_handover(self)
