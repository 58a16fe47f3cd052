"""
PediaGPS: Handover Summary
==========================
SBAR (Situation, Background, Assessment, Recommendation) summary of the
current session for verbal or written handover to the receiving team.
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, List

from constants import FindingSeverity, InterventionStatus, SafetyFlag
from models import utcnow

logger = logging.getLogger("pediagps.handover")

CRITICALITY_CRITICAL = "critical"
CRITICALITY_URGENT = "urgent"
CRITICALITY_STABLE = "stable"

# Monitoring that follows from an open intervention type or a raised flag
_MONITORING_BY_TYPE = {
    "fluid_bolus": "Perfusion, heart rate, liver edge and lung crackles after each bolus",
    "cpr": "Rhythm check every 2 minutes, end-tidal CO2 if available",
    "breathing": "SpO2 and chest rise during ventilation",
    "nebulizer": "Work of breathing and SpO2 every 20 minutes",
    "iv_access": "Time to access; switch to IO after 90 seconds",
    "io_access": "IO site for extravasation",
    "lab_collection": "Glucose and blood gas results",
    "monitoring": "Seizure duration and airway",
}
_MONITORING_BY_FLAG = {
    SafetyFlag.SVT_SUSPECTED: "Continuous ECG; heart rate after each adenosine dose",
    SafetyFlag.HEART_FAILURE_SIGNS: "Liver size, gallop rhythm and crackles; no fluid boluses",
    SafetyFlag.FLUID_OVERLOAD: "Lung crackles and SpO2; inotrope response",
}
_BASELINE_MONITORING = "Heart rate, respiratory rate, SpO2 and capillary refill every 15 minutes"


def criticality(engine) -> str:
    findings = engine.session.findings
    if engine.emergency_activated or any(f.severity == FindingSeverity.CRITICAL for f in findings):
        return CRITICALITY_CRITICAL
    if engine.active_interventions or any(f.severity == FindingSeverity.ABNORMAL for f in findings):
        return CRITICALITY_URGENT
    return CRITICALITY_STABLE


def _answer_text(answer: Any) -> str:
    if answer is None:
        return "not assessed"
    if isinstance(answer, bool):
        return "yes" if answer else "no"
    if isinstance(answer, (list, tuple)):
        return ", ".join(str(a) for a in answer) or "none"
    return str(answer)


def _age_text(patient) -> str:
    if patient.age_years:
        return f"{patient.age_years} y {patient.age_months} m"
    return f"{patient.age_months} m"


def build_handover(engine) -> Dict[str, Any]:
    patient = engine.patient
    session = engine.session
    now = utcnow()
    level = criticality(engine)

    critical_findings = [f for f in session.findings if f.severity == FindingSeverity.CRITICAL]
    threats = [f"{f.question}: {_answer_text(f.answer)}" for f in critical_findings]
    if engine.pending_action is not None:
        threats.append(engine.pending_action.title)

    by_phase: Dict[str, List[Dict[str, Any]]] = OrderedDict()
    for f in session.findings:
        by_phase.setdefault(f.phase.value, []).append({
            "finding": f.question,
            "value": _answer_text(f.answer),
            "severity": f.severity.value,
        })

    interventions = [{
        "name": i.title,
        "status": i.status.value,
        "started": i.start_time.isoformat(),
        "dose": i.dose,
    } for i in session.interventions]

    open_types = {i.type.value for i in engine.active_interventions}
    monitoring = [_BASELINE_MONITORING]
    monitoring += [text for key, text in _MONITORING_BY_TYPE.items() if key in open_types]
    monitoring += [text for flag, text in _MONITORING_BY_FLAG.items() if flag in session.flags]

    immediate = []
    if engine.pending_action is not None:
        immediate.append(engine.pending_action.instruction)
    immediate += [f"{i.title}: {i.instruction}" for i in engine.active_interventions]

    escalation = [
        "Any deterioration in airway, breathing or consciousness",
        "No improvement after intervention reassessment",
    ]
    if session.flags:
        escalation.append("Cardiology or intensive care review (fluid contraindicated)")
    if any(i.status == InterventionStatus.ESCALATED for i in session.interventions):
        escalation.append("Escalated intervention still pending")

    summary = {
        "generated_at": now.isoformat(),
        "criticality": level,
        "situation": {
            "patient": f"{_age_text(patient)}, {engine.weight:g} kg"
                       f"{' (estimated)' if patient.weight_is_estimated else ''}",
            "phase": engine.phase.value,
            "emergency_activated": engine.emergency_activated,
            "cpr_active": session.cpr_active,
            "immediate_threats": threats,
        },
        "background": {
            "case_start": session.case_start.isoformat(),
            "elapsed_minutes": int((now - session.case_start).total_seconds() // 60),
            "flow_variant": engine.config.flow_variant.value,
            "glucose_unit": patient.glucose_unit.value,
        },
        "assessment": {
            "findings_by_phase": by_phase,
            "critical_findings": [f.question for f in critical_findings],
            "safety_flags": sorted(flag.value for flag in session.flags),
            "interventions": interventions,
        },
        "recommendation": {
            "immediate_actions": immediate,
            "monitoring": monitoring,
            "escalation_criteria": escalation,
        },
    }
    logger.info("Handover generated: %s, %d findings", level, len(session.findings))
    return summary


def format_handover_text(summary: Dict[str, Any]) -> str:
    s, b, a, r = (summary["situation"], summary["background"],
                  summary["assessment"], summary["recommendation"])
    lines = [f"HANDOVER [{summary['criticality'].upper()}]", "", "S - SITUATION",
             f"  Patient: {s['patient']}"]
    if s["cpr_active"]:
        lines.append("  CPR IN PROGRESS")
    for threat in s["immediate_threats"]:
        lines.append(f"  ! {threat}")

    lines += ["", "B - BACKGROUND",
              f"  Case started {b['case_start']} ({b['elapsed_minutes']} min ago)"]

    lines += ["", "A - ASSESSMENT"]
    for phase, items in a["findings_by_phase"].items():
        lines.append(f"  {phase.replace('_', ' ').title()}:")
        for item in items:
            marker = "" if item["severity"] == "normal" else f" [{item['severity'].upper()}]"
            lines.append(f"    - {item['finding']} {item['value']}{marker}")
    if a["safety_flags"]:
        lines.append(f"  Safety flags: {', '.join(a['safety_flags'])}")
    for item in a["interventions"]:
        lines.append(f"  * {item['name']} ({item['status']})")

    lines += ["", "R - RECOMMENDATION"]
    lines += [f"  > {text}" for text in r["immediate_actions"]]
    lines += [f"  Monitor: {text}" for text in r["monitoring"]]
    lines += [f"  Escalate if: {text}" for text in r["escalation_criteria"]]
    return "\n".join(lines)
