"""
PediaGPS: Module Orchestrator
=============================
Opens the external specialised engines (shock, asthma, IV/IO, fluid bolus,
inotrope, lab, arrhythmia, airway) as one overlay at a time, and applies
their outcomes back onto the session.
"""

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Union

from constants import AlertKind, InterventionType, ModuleName, ModuleOutcome, SafetyFlag
from interventions import InterventionManager
from models import ModuleRequest, SessionState
from safety import AlertSink, notify

logger = logging.getLogger("pediagps.orchestrator")

_COMMON = frozenset({ModuleOutcome.RESOLVED, ModuleOutcome.REFERRAL, ModuleOutcome.DISMISSED})


@dataclass(frozen=True)
class ModuleDescriptor:
    name: ModuleName
    title: str
    outcomes: FrozenSet[ModuleOutcome] = _COMMON


MODULE_REGISTRY: Dict[ModuleName, ModuleDescriptor] = {
    ModuleName.SHOCK: ModuleDescriptor(ModuleName.SHOCK, "Shock Assessment",
                                       _COMMON | {ModuleOutcome.ACCESS_REQUESTED}),
    ModuleName.ASTHMA: ModuleDescriptor(ModuleName.ASTHMA, "Asthma Escalation"),
    ModuleName.IV_IO: ModuleDescriptor(ModuleName.IV_IO, "IV/IO Access",
                                       _COMMON | {ModuleOutcome.NO_RESPONSE}),
    ModuleName.FLUID_BOLUS: ModuleDescriptor(ModuleName.FLUID_BOLUS, "Fluid Bolus Tracker",
                                             _COMMON | {ModuleOutcome.NO_RESPONSE, ModuleOutcome.OVERLOAD}),
    ModuleName.INOTROPE: ModuleDescriptor(ModuleName.INOTROPE, "Inotrope Escalation"),
    ModuleName.LAB: ModuleDescriptor(ModuleName.LAB, "Lab Sample Collection"),
    ModuleName.ARRHYTHMIA: ModuleDescriptor(ModuleName.ARRHYTHMIA, "Arrhythmia Recognition"),
    ModuleName.AIRWAY: ModuleDescriptor(ModuleName.AIRWAY, "Airway Management"),
}


def parse_module(name: Union[ModuleName, str, None]) -> Optional[ModuleName]:
    if isinstance(name, ModuleName):
        return name
    try:
        return ModuleName(name)
    except ValueError:
        logger.warning("Unknown module %r", name)
        return None

def parse_outcome(outcome: Union[ModuleOutcome, str, None]) -> Optional[ModuleOutcome]:
    if isinstance(outcome, ModuleOutcome):
        return outcome
    try:
        return ModuleOutcome(outcome)
    except ValueError:
        logger.warning("Unknown module outcome %r", outcome)
        return None


class ModuleOrchestrator:

    def __init__(self, session: SessionState, interventions: InterventionManager,
                 alert_sink: Optional[AlertSink] = None):
        self.session = session
        self.interventions = interventions
        self.alert_sink = alert_sink

    @property
    def open_request(self) -> Optional[ModuleRequest]:
        return self.session.open_module

    def open(self, module: Union[ModuleName, str], weight_kg: float,
             intervention_id: Optional[str] = None) -> Optional[ModuleRequest]:
        name = parse_module(module)
        if name is None or name not in MODULE_REGISTRY:
            return None
        intervention = self.interventions.get(intervention_id)
        request = ModuleRequest(
            module=name,
            weight_kg=weight_kg,
            intervention_id=intervention.id if intervention else intervention_id,
            bolus_number=intervention.bolus_number if intervention else None,
            volume_given_ml=intervention.volume_given_ml if intervention else None,
            max_volume_ml=intervention.max_volume_ml if intervention else None,
        )
        self.session.open_module = request
        logger.info("Module opened: %s", MODULE_REGISTRY[name].title)
        return request

    def show(self, request: ModuleRequest) -> ModuleRequest:
        """Opens a request already built by the intervention manager."""
        self.session.open_module = request
        logger.info("Module opened: %s", MODULE_REGISTRY[request.module].title)
        return request

    def release(self) -> None:
        if self.session.open_module is not None:
            logger.info("Module closed: %s", self.session.open_module.module.value)
        self.session.open_module = None

    def call_for_help(self) -> None:
        self.session.emergency_activated = True
        notify(self.alert_sink, "alert", AlertKind.CRITICAL_ACTION, None)

    def handle_callback(self, module: Union[ModuleName, str], outcome: Union[ModuleOutcome, str],
                        weight_kg: float, intervention_id: Optional[str] = None) -> Optional[ModuleRequest]:
        """
        Applies a module outcome. Returns the overlay open afterwards (a chained
        module such as inotrope after a failed bolus), or None.
        """
        name = parse_module(module)
        result = parse_outcome(outcome)
        if name is None or result is None:
            return self.session.open_module
        if result not in MODULE_REGISTRY[name].outcomes:
            logger.warning("Module %s does not report %s; ignored", name.value, result.value)
            return self.session.open_module

        if intervention_id is None and self.session.open_module is not None \
                and self.session.open_module.module == name:
            intervention_id = self.session.open_module.intervention_id

        if name == ModuleName.FLUID_BOLUS:
            return self._fluid_outcome(result, weight_kg, intervention_id)

        if result == ModuleOutcome.ACCESS_REQUESTED:
            return self.open(ModuleName.IV_IO, weight_kg)

        if result == ModuleOutcome.NO_RESPONSE:
            # IV/IO: peripheral access failed
            chained = self.interventions.escalate(intervention_id, "IV access failed", weight_kg) \
                if intervention_id else None
            if chained is not None:
                return self.open(ModuleName.IV_IO, weight_kg, chained.id)
            self.release()
            return None

        if result == ModuleOutcome.REFERRAL:
            self.call_for_help()
            self._complete_related(intervention_id, weight_kg)
            self.release()
            return None

        if result == ModuleOutcome.RESOLVED:
            self._complete_related(intervention_id, weight_kg)

        # RESOLVED / DISMISSED
        self.release()
        return None

    def _complete_related(self, intervention_id: Optional[str], weight_kg: float) -> None:
        intervention = self.interventions.get(intervention_id)
        if intervention is None or not intervention.is_open:
            return
        if intervention.type == InterventionType.FLUID_BOLUS:
            # Only the fluid bolus reassessment may close a bolus
            logger.warning("Bolus %s left open: outcome did not come from the bolus reassessment",
                           intervention.id)
            return
        self.interventions.complete(intervention.id, weight_kg)

    def _fluid_outcome(self, result: ModuleOutcome, weight_kg: float,
                       intervention_id: Optional[str]) -> Optional[ModuleRequest]:
        if result == ModuleOutcome.DISMISSED:
            # Closing without a reassessment leaves the bolus open
            self.release()
            return None

        if intervention_id is not None:
            self.interventions.finalize(intervention_id)

        if result == ModuleOutcome.RESOLVED:
            self.release()
            return None
        if result == ModuleOutcome.NO_RESPONSE:
            return self.open(ModuleName.INOTROPE, weight_kg)
        if result == ModuleOutcome.OVERLOAD:
            if self.session.raise_flag(SafetyFlag.FLUID_OVERLOAD):
                logger.info("Safety flag raised: %s (bolus reassessment)", SafetyFlag.FLUID_OVERLOAD.value)
            return self.open(ModuleName.INOTROPE, weight_kg)
        # REFERRAL
        self.call_for_help()
        self.release()
        return None
