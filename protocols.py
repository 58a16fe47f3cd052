# protocols.py
"""
Scenario Quick-Launch.
Named presets that drop the provider straight onto the relevant question with
the first life-saving action already computed for the child's weight.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from constants import ActionSeverity, FlowVariant, Phase, TemplateKey
from dosing import DoseCalculator
from models import TriggeredAction

logger = logging.getLogger("pediagps.protocols")


@dataclass(frozen=True)
class ScenarioTarget:
    phase: Phase
    question_id: str
    # Branching flow only: the 'main_problem' value that selects the pathway
    problem: Optional[str] = None


@dataclass(frozen=True)
class ScenarioPlan:
    name: str
    weight_kg: float
    action: TriggeredAction
    targets: Dict[FlowVariant, ScenarioTarget] = field(default_factory=dict)
    intervention: Optional[TemplateKey] = None

    def target_for(self, variant: FlowVariant) -> ScenarioTarget:
        return self.targets[variant]


class ScenarioActions:
    """Immediate actions, one per scenario, as pure functions of weight."""

    @staticmethod
    def cardiac_arrest(weight_kg: float) -> TriggeredAction:
        epi = DoseCalculator.epinephrine_iv(weight_kg)
        joules = DoseCalculator.defibrillation(weight_kg)
        epi_text = f"{epi.value:.3f} mg"
        return TriggeredAction(
            id="start-cpr",
            severity=ActionSeverity.CRITICAL,
            title="CPR IN PROGRESS",
            instruction="Chest compressions: 100-120/min, depth 1/3 chest. 15:2 ratio with BVM.\n"
                        f"Epinephrine: {epi_text} IV/IO every 3-5 min\n"
                        f"Defibrillation: {joules.format(0)}",
            rationale="Cardiac arrest pathway activated. Continue CPR with minimal interruptions.",
            dose=f"Epinephrine {epi_text} IV/IO; defibrillation {joules.format(0)}",
            route="IV/IO",
            timer_seconds=120,
            reassess_after="Rhythm check at 2 minutes",
        )

    @staticmethod
    def anaphylaxis(weight_kg: float) -> TriggeredAction:
        epi = DoseCalculator.epinephrine_im(weight_kg)
        return TriggeredAction(
            id="anaphylaxis-epi",
            severity=ActionSeverity.CRITICAL,
            title="GIVE IM EPINEPHRINE NOW",
            instruction="Epinephrine 1:1000 (1 mg/mL)\n"
                        f"Dose: {epi.value:.2f} mg IM\n"
                        "Site: Anterolateral thigh\n"
                        "Repeat every 5-15 minutes if no improvement",
            rationale="Anaphylaxis requires immediate IM epinephrine. Do not delay for IV access.",
            dose=f"Epinephrine {epi.value:.2f} mg IM",
            route="IM",
            timer_seconds=300,
            reassess_after="Reassess airway, breathing, circulation after 5 minutes",
        )

    @staticmethod
    def status_epilepticus(weight_kg: float) -> TriggeredAction:
        midazolam = DoseCalculator.midazolam(weight_kg)
        lorazepam = DoseCalculator.lorazepam(weight_kg)
        diazepam = DoseCalculator.diazepam(weight_kg)
        return TriggeredAction(
            id="seizure-benzo",
            severity=ActionSeverity.CRITICAL,
            title="GIVE BENZODIAZEPINE NOW",
            instruction=f"First-line: Midazolam {midazolam.value:.1f} mg IM/IN\n"
                        f"OR Lorazepam {lorazepam.value:.1f} mg IV\n"
                        f"OR Diazepam {diazepam.value:.1f} mg IV",
            rationale="Status epilepticus >5 minutes requires immediate benzodiazepine.",
            dose=f"Midazolam {midazolam.value:.1f} mg IM/IN",
            route="IM/IN or IV",
            timer_seconds=300,
            reassess_after="If seizure continues after 5 min, give second dose",
        )

    @staticmethod
    def septic_shock(weight_kg: float) -> TriggeredAction:
        bolus = DoseCalculator.fluid_bolus(weight_kg, sepsis=True)
        ceftriaxone = DoseCalculator.ceftriaxone(weight_kg)
        return TriggeredAction(
            id="sepsis-bundle",
            severity=ActionSeverity.CRITICAL,
            title="SEPSIS BUNDLE - START NOW",
            instruction=f"1. Fluid bolus: {bolus.format(0)} NS/LR IV push\n"
                        "2. Blood cultures x2 (before antibiotics if possible)\n"
                        f"3. Ceftriaxone {ceftriaxone.format(0)} IV\n"
                        "4. Check lactate and glucose",
            rationale="Septic shock requires aggressive fluid resuscitation and early antibiotics.",
            dose=f"{bolus.format(0)} bolus; ceftriaxone {ceftriaxone.format(0)}",
            route="IV/IO",
            timer_seconds=3600,
            reassess_after="Reassess perfusion after each 20 mL/kg bolus",
        )

    @staticmethod
    def respiratory_failure(weight_kg: float) -> TriggeredAction:
        salbutamol = DoseCalculator.salbutamol_neb(weight_kg)
        return TriggeredAction(
            id="resp-support",
            severity=ActionSeverity.CRITICAL,
            title="RESPIRATORY SUPPORT NEEDED",
            instruction="1. Position of comfort / airway positioning\n"
                        "2. High-flow oxygen (target SpO2 > 94%)\n"
                        f"3. If wheezing: Salbutamol {salbutamol.format(1)} nebulized\n"
                        "4. Prepare for assisted ventilation if deteriorating",
            rationale="Respiratory failure can rapidly progress to arrest.",
            timer_seconds=60,
            reassess_after="Reassess work of breathing and SpO2 every minute",
        )


_SCENARIOS: Dict[str, tuple] = {
    # name: (action builder, {variant: target}, intervention template)
    "cardiac_arrest": (
        ScenarioActions.cardiac_arrest,
        {FlowVariant.ABCDE: ScenarioTarget(Phase.SIGNS_OF_LIFE, "pulse"),
         FlowVariant.BRANCHING: ScenarioTarget(Phase.TRIAGE, "pulse")},
        TemplateKey.CPR,
    ),
    "anaphylaxis": (
        ScenarioActions.anaphylaxis,
        {FlowVariant.ABCDE: ScenarioTarget(Phase.SIGNS_OF_LIFE, "breathing"),
         FlowVariant.BRANCHING: ScenarioTarget(Phase.ALLERGIC_PATHWAY, "anaphylaxis_signs", "allergic")},
        None,
    ),
    "status_epilepticus": (
        ScenarioActions.status_epilepticus,
        {FlowVariant.ABCDE: ScenarioTarget(Phase.DISABILITY, "seizure"),
         FlowVariant.BRANCHING: ScenarioTarget(Phase.NEURO_PATHWAY, "seizure_activity", "seizure")},
        None,
    ),
    "septic_shock": (
        ScenarioActions.septic_shock,
        {FlowVariant.ABCDE: ScenarioTarget(Phase.CIRCULATION, "jvp"),
         FlowVariant.BRANCHING: ScenarioTarget(Phase.SHOCK_PATHWAY, "perfusion_signs", "shock")},
        TemplateKey.FLUID_BOLUS,
    ),
    "respiratory_failure": (
        ScenarioActions.respiratory_failure,
        {FlowVariant.ABCDE: ScenarioTarget(Phase.BREATHING, "breathing_effort"),
         FlowVariant.BRANCHING: ScenarioTarget(Phase.BREATHING_PATHWAY, "breathing_signs", "breathing")},
        None,
    ),
}

SCENARIO_NAMES = tuple(_SCENARIOS)


class ScenarioLauncher:

    @staticmethod
    def effective_weight(working_weight: float, default_weight: float) -> float:
        return working_weight if working_weight and working_weight > 0 else default_weight

    @staticmethod
    def plan(name: str, working_weight: float, default_weight: float) -> Optional[ScenarioPlan]:
        """Deterministic plan for a named scenario, or None if the name is unknown."""
        entry = _SCENARIOS.get(name)
        if entry is None:
            logger.warning("Unknown scenario %r", name)
            return None
        build: Callable[[float], TriggeredAction] = entry[0]
        weight = ScenarioLauncher.effective_weight(working_weight, default_weight)
        return ScenarioPlan(
            name=name,
            weight_kg=weight,
            action=build(weight),
            targets=dict(entry[1]),
            intervention=entry[2],
        )
