"""
PediaGPS: Intervention Lifecycle Manager
========================================
Concurrently open interventions (IV timer, bolus, nebulizer, CPR cycles ...).
State machine: ACTIVE -> COMPLETED | ESCALATED | CANCELLED. Terminal states are final.

A fluid bolus is never completed directly: completing it asks for the
reassessment module, and only the module outcome finalizes it.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from constants import (
    ActionSeverity,
    CancellationPolicy,
    InterventionStatus,
    InterventionType,
    ModuleName,
    TemplateKey,
)
from dosing import DoseCalculator
from models import ActiveIntervention, ModuleRequest, SessionState, new_id, utcnow

logger = logging.getLogger("pediagps.interventions")


# --- TEMPLATES (weight -> intervention) ---

def iv_access(weight_kg: float) -> ActiveIntervention:
    return ActiveIntervention(
        id=new_id("iv"),
        type=InterventionType.IV_ACCESS,
        title="GET IV ACCESS NOW",
        instruction="Establish peripheral IV access. Use largest gauge possible.",
        priority=ActionSeverity.CRITICAL,
        timer_seconds=90,
        escalation_action="Switch to IO",
        module=ModuleName.IV_IO,
        template=TemplateKey.IV_ACCESS,
    )

def io_access(weight_kg: float) -> ActiveIntervention:
    if weight_kg < 10:
        site = "Proximal tibia, 1-2cm below tibial tuberosity, medial flat surface"
    else:
        site = "Proximal tibia or distal femur. Use appropriate needle size."
    return ActiveIntervention(
        id=new_id("io"),
        type=InterventionType.IO_ACCESS,
        title="INTRAOSSEOUS ACCESS",
        instruction=site,
        priority=ActionSeverity.CRITICAL,
        timer_seconds=60,
        module=ModuleName.IV_IO,
        template=TemplateKey.IO_ACCESS,
    )

def fluid_bolus(weight_kg: float) -> ActiveIntervention:
    volume = DoseCalculator.fluid_bolus(weight_kg)
    return ActiveIntervention(
        id=new_id("bolus"),
        type=InterventionType.FLUID_BOLUS,
        title="FLUID BOLUS",
        instruction=f"Give {volume.format(0)} (10 mL/kg) Normal Saline or Ringer's Lactate",
        priority=ActionSeverity.CRITICAL,
        timer_seconds=300,
        dose=volume.format(0),
        route="IV/IO push",
        reassessment_required=True,
        reassessment_prompt="Reassess perfusion after bolus",
        volume_ml=volume.value,
        volume_given_ml=0.0,
        max_volume_ml=DoseCalculator.fluid_ceiling(weight_kg),
        module=ModuleName.FLUID_BOLUS,
        template=TemplateKey.FLUID_BOLUS,
    )

def salbutamol_neb(weight_kg: float) -> ActiveIntervention:
    dose = DoseCalculator.salbutamol_neb(weight_kg)
    return ActiveIntervention(
        id=new_id("neb"),
        type=InterventionType.NEBULIZER,
        title="SALBUTAMOL NEBULIZER",
        instruction=f"{dose.format(1)} via nebulizer with oxygen",
        priority=ActionSeverity.URGENT,
        timer_seconds=600,
        dose=dose.format(1),
        route="Nebulizer",
        reassessment_required=True,
        reassessment_prompt="Reassess work of breathing and SpO2",
        module=ModuleName.ASTHMA,
        template=TemplateKey.SALBUTAMOL_NEB,
    )

def epinephrine_iv(weight_kg: float) -> ActiveIntervention:
    dose = DoseCalculator.epinephrine_iv(weight_kg)
    return ActiveIntervention(
        id=new_id("epi"),
        type=InterventionType.MEDICATION,
        title="EPINEPHRINE IV",
        instruction="Give 1:10,000 epinephrine IV/IO during CPR",
        priority=ActionSeverity.CRITICAL,
        timer_seconds=180,
        dose=f"{dose.format(3)} (0.01 mg/kg)",
        route="IV/IO",
        reassessment_required=True,
        template=TemplateKey.EPINEPHRINE_IV,
    )

def epinephrine_im(weight_kg: float) -> ActiveIntervention:
    dose = DoseCalculator.epinephrine_im(weight_kg)
    return ActiveIntervention(
        id=new_id("epi"),
        type=InterventionType.MEDICATION,
        title="EPINEPHRINE IM",
        instruction="Give 1:1,000 epinephrine IM for anaphylaxis",
        priority=ActionSeverity.CRITICAL,
        timer_seconds=300,
        dose=f"{dose.format(2)} (0.01 mg/kg, max 0.5 mg)",
        route="IM (anterolateral thigh)",
        reassessment_required=True,
        reassessment_prompt="Repeat every 5-15 minutes if no improvement",
        template=TemplateKey.EPINEPHRINE_IM,
    )

def bvm_ventilation(weight_kg: float) -> ActiveIntervention:
    return ActiveIntervention(
        id=new_id("bvm"),
        type=InterventionType.BREATHING,
        title="BAG-VALVE-MASK VENTILATION",
        instruction="Position airway (head tilt-chin lift or jaw thrust). Ensure good seal. "
                    "Squeeze bag to see chest rise.",
        priority=ActionSeverity.CRITICAL,
        timer_seconds=30,
        reassessment_required=True,
        reassessment_prompt="Is chest rising? Is SpO2 improving?",
        template=TemplateKey.BVM_VENTILATION,
    )

def cpr(weight_kg: float) -> ActiveIntervention:
    return ActiveIntervention(
        id=new_id("cpr"),
        type=InterventionType.CPR,
        title="START CPR",
        instruction="Hard and fast compressions. 100-120/min. Full chest recoil. Minimize interruptions.",
        priority=ActionSeverity.CRITICAL,
        timer_seconds=120,
        reassessment_required=True,
        reassessment_prompt="Rhythm check and pulse check",
        template=TemplateKey.CPR,
    )

def lab_collection(weight_kg: float) -> ActiveIntervention:
    return ActiveIntervention(
        id=new_id("lab"),
        type=InterventionType.LAB_COLLECTION,
        title="COLLECT LAB SAMPLES",
        instruction="Collect: VBG, lactate, glucose, electrolytes, CBC.",
        priority=ActionSeverity.URGENT,
        module=ModuleName.LAB,
        template=TemplateKey.LAB_COLLECTION,
    )

def seizure_monitoring(weight_kg: float) -> ActiveIntervention:
    return ActiveIntervention(
        id=new_id("seizure"),
        type=InterventionType.MONITORING,
        title="SEIZURE TIMER",
        instruction="Time the seizure. Give a second benzodiazepine dose at 5 minutes if still seizing.",
        priority=ActionSeverity.CRITICAL,
        timer_seconds=300,
        reassessment_required=True,
        reassessment_prompt="Is the child still seizing?",
        template=TemplateKey.SEIZURE_MONITORING,
    )


INTERVENTION_TEMPLATES: Dict[TemplateKey, Callable[[float], ActiveIntervention]] = {
    TemplateKey.IV_ACCESS: iv_access,
    TemplateKey.IO_ACCESS: io_access,
    TemplateKey.FLUID_BOLUS: fluid_bolus,
    TemplateKey.SALBUTAMOL_NEB: salbutamol_neb,
    TemplateKey.EPINEPHRINE_IV: epinephrine_iv,
    TemplateKey.EPINEPHRINE_IM: epinephrine_im,
    TemplateKey.BVM_VENTILATION: bvm_ventilation,
    TemplateKey.CPR: cpr,
    TemplateKey.LAB_COLLECTION: lab_collection,
    TemplateKey.SEIZURE_MONITORING: seizure_monitoring,
}


class InterventionManager:
    """Owns the intervention list of one session."""

    def __init__(self, session: SessionState,
                 cancellation_policy: CancellationPolicy = CancellationPolicy.REMOVE,
                 templates: Optional[Dict[TemplateKey, Callable[[float], ActiveIntervention]]] = None):
        self.session = session
        self.cancellation_policy = cancellation_policy
        self.templates = INTERVENTION_TEMPLATES if templates is None else templates

    # --- Queries ---

    def get(self, intervention_id: Optional[str]) -> Optional[ActiveIntervention]:
        return self.session.find_intervention(intervention_id)

    def active(self) -> List[ActiveIntervention]:
        return [i for i in self.session.interventions if i.is_open]

    def fluid_boluses(self) -> List[ActiveIntervention]:
        return [i for i in self.session.interventions if i.type == InterventionType.FLUID_BOLUS]

    def delivered_volume(self) -> float:
        """Volume (mL) of boluses finalized by the reassessment module."""
        return sum(i.volume_ml or 0.0 for i in self.fluid_boluses()
                   if i.status == InterventionStatus.COMPLETED)

    def due_for_reassessment(self, now: Optional[datetime] = None) -> List[ActiveIntervention]:
        now = now or utcnow()
        due = []
        for intervention in self.active():
            if intervention.timer_seconds is None:
                continue
            if (now - intervention.start_time).total_seconds() >= intervention.timer_seconds:
                due.append(intervention)
        return due

    # --- Lifecycle ---

    def instantiate(self, template_key: Optional[TemplateKey], weight_kg: float) -> Optional[ActiveIntervention]:
        template = self.templates.get(template_key) if template_key is not None else None
        if template is None:
            logger.warning("No intervention template for %r; nothing created", template_key)
            return None

        intervention = template(weight_kg)
        if intervention.type == InterventionType.FLUID_BOLUS:
            # Counted before appending
            intervention.bolus_number = len(self.fluid_boluses()) + 1
            intervention.volume_given_ml = self.delivered_volume()
            intervention.title = f"FLUID BOLUS {intervention.bolus_number}"

        self.session.interventions.append(intervention)
        logger.info("Intervention created: %s (%s)", intervention.title, intervention.id)
        return intervention

    def module_request(self, intervention: ActiveIntervention, weight_kg: float) -> Optional[ModuleRequest]:
        if intervention.module is None:
            return None
        return ModuleRequest(
            module=intervention.module,
            weight_kg=weight_kg,
            intervention_id=intervention.id,
            bolus_number=intervention.bolus_number,
            volume_given_ml=intervention.volume_given_ml,
            max_volume_ml=intervention.max_volume_ml,
        )

    def _open(self, intervention_id: str, verb: str) -> Optional[ActiveIntervention]:
        intervention = self.get(intervention_id)
        if intervention is None:
            logger.warning("Cannot %s unknown intervention '%s'", verb, intervention_id)
            return None
        if not intervention.is_open:
            logger.warning("Cannot %s intervention '%s': already %s",
                           verb, intervention_id, intervention.status.value)
            return None
        return intervention

    def _close(self, intervention: ActiveIntervention, status: InterventionStatus) -> None:
        intervention.status = status
        intervention.ended_at = utcnow()
        logger.info("Intervention %s -> %s", intervention.id, status.value)

    def complete(self, intervention_id: str, weight_kg: float) -> Optional[ModuleRequest]:
        """
        Non-fluid: mark completed, return None.
        Fluid bolus: stays ACTIVE, returns the reassessment request.
        """
        intervention = self._open(intervention_id, "complete")
        if intervention is None:
            return None
        if intervention.type == InterventionType.FLUID_BOLUS:
            return self.module_request(intervention, weight_kg)
        self._close(intervention, InterventionStatus.COMPLETED)
        return None

    def finalize(self, intervention_id: Optional[str]) -> bool:
        """Closes a fluid bolus. Only the orchestrator calls this."""
        intervention = self._open(intervention_id, "finalize")
        if intervention is None:
            return False
        self._close(intervention, InterventionStatus.COMPLETED)
        return True

    def escalate(self, intervention_id: str, reason: str, weight_kg: float) -> Optional[ActiveIntervention]:
        """Marks escalated. IV access chains an IO access intervention (returned)."""
        intervention = self._open(intervention_id, "escalate")
        if intervention is None:
            return None
        intervention.escalation_reason = reason
        self._close(intervention, InterventionStatus.ESCALATED)
        if intervention.type == InterventionType.IV_ACCESS:
            return self.instantiate(TemplateKey.IO_ACCESS, weight_kg)
        return None

    def cancel(self, intervention_id: str) -> bool:
        intervention = self._open(intervention_id, "cancel")
        if intervention is None:
            return False
        if self.cancellation_policy == CancellationPolicy.REMOVE:
            self.session.interventions.remove(intervention)
            logger.info("Intervention %s removed", intervention.id)
        else:
            self._close(intervention, InterventionStatus.CANCELLED)
        return True

    def reassessment_request(self, intervention_id: str, weight_kg: float) -> Optional[ModuleRequest]:
        intervention = self._open(intervention_id, "reassess")
        if intervention is None:
            return None
        request = self.module_request(intervention, weight_kg)
        if request is None:
            logger.warning("Intervention '%s' has no reassessment module", intervention_id)
        return request
