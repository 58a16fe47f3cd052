"""
PediaGPS: Question Graph
========================
Static configuration of the two assessment flows.

ABCDE:     signs of life -> airway -> breathing -> circulation -> disability -> exposure
BRANCHING: triage -> main problem -> one pathway (breathing, shock, neuro, trauma,
           poisoning, allergic)

Each trigger is a pure function (answer, patient, weight) -> TriggeredAction | None.
Doses come from DoseCalculator so every recommendation is already capped.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from constants import (
    ActionSeverity,
    AnswerKind,
    FindingSeverity,
    FlowVariant,
    GlucoseUnit,
    ModuleName,
    Phase,
    TemplateKey,
    VITAL_SIGN_BANDS,
)
from dosing import DoseCalculator, VitalSignRanges
from models import DoseCard, Question, QuestionOption, TriggeredAction

N = FindingSeverity.NORMAL
A = FindingSeverity.ABNORMAL
C = FindingSeverity.CRITICAL


def _opts(*triples) -> Tuple[QuestionOption, ...]:
    return tuple(QuestionOption(value=v, label=l, severity=s) for v, l, s in triples)


# =====================================================================
# SHARED TRIGGERS (same wording in both flows)
# =====================================================================

def _bvm_action(title: str, rationale: str) -> TriggeredAction:
    return TriggeredAction(
        id="start-bvm",
        severity=ActionSeverity.CRITICAL,
        title=title,
        instruction="Open airway (head tilt-chin lift). Apply mask with good seal. "
                    "Squeeze bag to see chest rise. Give 1 breath every 3 seconds.",
        rationale=rationale,
        timer_seconds=30,
        reassess_after="After 5 breaths, check for chest rise and SpO2",
        template=TemplateKey.BVM_VENTILATION,
    )

def _cpr_action(weight: float) -> TriggeredAction:
    epi = DoseCalculator.epinephrine_iv(weight)
    joules = DoseCalculator.defibrillation(weight)
    return TriggeredAction(
        id="start-cpr",
        severity=ActionSeverity.CRITICAL,
        title="START CPR IMMEDIATELY",
        instruction="Begin chest compressions: 100-120/min, depth 1/3 chest. "
                    "15:2 ratio with BVM. Minimize interruptions.",
        rationale="Pulseless child requires immediate CPR. Every minute without CPR decreases survival by 10%.",
        dose=f"Epinephrine {epi.format(3)} IV/IO every 3-5 min; defibrillation {joules.format(0)}",
        route="IV/IO",
        timer_seconds=120,
        reassess_after="Rhythm check at 2 minutes",
        template=TemplateKey.CPR,
    )

def _protect_airway() -> TriggeredAction:
    return TriggeredAction(
        id="protect-airway",
        severity=ActionSeverity.CRITICAL,
        title="PROTECT AIRWAY - UNRESPONSIVE CHILD",
        instruction="Position in recovery position if breathing. Prepare for intubation "
                    "if not protecting airway. Call for senior help.",
        rationale="Unresponsive child cannot protect airway. Risk of aspiration and respiratory failure.",
        module=ModuleName.AIRWAY,
    )

def _croup_card(weight: float) -> Tuple[str, DoseCard]:
    dex = DoseCalculator.dexamethasone(weight)
    neb = DoseCalculator.nebulized_epinephrine(weight)
    dose = f"Dexamethasone {dex.format(1)} PO/IM; nebulized epinephrine 1:1000 {neb.format(1)}"
    card = DoseCard(
        medication="Dexamethasone + nebulized epinephrine",
        indication="Croup with stridor",
        route="PO/IM + nebulizer",
        timing="Immediate; epinephrine may repeat after 15 minutes",
        notes="Observe 2-4 hours after nebulized epinephrine for rebound.",
        dose=dose,
    )
    return dose, card


# =====================================================================
# ABCDE QUESTION SET
# =====================================================================

# --- SIGNS OF LIFE ---

def breathing_trigger(answer, patient, weight):
    if answer is False:
        return _bvm_action(
            "START BAG-VALVE-MASK VENTILATION",
            "Apneic child requires immediate ventilation to prevent hypoxic cardiac arrest.",
        )
    return None

def pulse_trigger(answer, patient, weight):
    if answer == "absent":
        return _cpr_action(weight)
    if answer == "present_weak":
        return TriggeredAction(
            id="weak-pulse-shock",
            severity=ActionSeverity.URGENT,
            title="WEAK PULSE - EARLY SHOCK SUSPECTED",
            instruction="Weak pulse indicates poor perfusion. Prepare for IV/IO access. Continue "
                        "assessment to identify shock type. Do NOT give fluid bolus until heart "
                        "failure is ruled out.",
            rationale="Weak pulse is an early sign of compensated shock.",
            timer_seconds=300,
            reassess_after="After circulation assessment",
        )
    return None

def responsiveness_trigger(answer, patient, weight):
    if answer == "unresponsive":
        return _protect_airway()
    if answer == "pain":
        return TriggeredAction(
            id="altered-consciousness",
            severity=ActionSeverity.URGENT,
            title="ALTERED CONSCIOUSNESS - ASSESS CAUSE",
            instruction="Check blood glucose immediately. Consider: hypoxia, hypoglycemia, seizure, "
                        "head injury, poisoning, sepsis. Protect airway.",
            rationale="A child responding only to pain has significantly altered consciousness.",
            timer_seconds=300,
            reassess_after="After glucose check and disability assessment",
        )
    if answer == "voice":
        return TriggeredAction(
            id="decreased-consciousness",
            severity=ActionSeverity.ROUTINE,
            title="DECREASED CONSCIOUSNESS - MONITOR CLOSELY",
            instruction="Monitor for deterioration. Check blood glucose. Continue systematic assessment.",
            rationale="Child not fully alert may deteriorate. Frequent reassessment needed.",
        )
    return None

# --- AIRWAY ---

def airway_patency_trigger(answer, patient, weight):
    if answer == "complete":
        return TriggeredAction(
            id="relieve-obstruction",
            severity=ActionSeverity.CRITICAL,
            title="RELIEVE AIRWAY OBSTRUCTION NOW",
            instruction="If foreign body suspected: 5 back blows + 5 chest thrusts (infant) or "
                        "abdominal thrusts (child >1y). If secretions: suction. Reposition airway.",
            rationale="Complete airway obstruction is immediately life-threatening.",
            timer_seconds=60,
        )
    if answer == "partial":
        return TriggeredAction(
            id="optimize-airway",
            severity=ActionSeverity.URGENT,
            title="OPTIMIZE AIRWAY POSITION",
            instruction="Head tilt-chin lift (if no trauma) or jaw thrust. Consider oropharyngeal "
                        "airway if unconscious. Suction if secretions present.",
            rationale="Partial obstruction can progress to complete obstruction.",
            timer_seconds=30,
        )
    return None

def airway_sounds_trigger(answer, patient, weight):
    if "stridor" in answer:
        dose, card = _croup_card(weight)
        return TriggeredAction(
            id="stridor-assessment",
            severity=ActionSeverity.URGENT,
            title="STRIDOR DETECTED - ASSESS SEVERITY",
            instruction="Assess for croup vs epiglottitis vs foreign body. Keep child calm. Do NOT "
                        "examine throat if epiglottitis suspected. If croup: " + dose + ".",
            rationale="Stridor indicates upper airway narrowing. Agitation worsens obstruction.",
            dose=dose,
            route="PO/IM + nebulizer",
            dose_card=card,
            module=ModuleName.AIRWAY,
        )
    if "stertor" in answer:
        return TriggeredAction(
            id="stertor-intervention",
            severity=ActionSeverity.URGENT,
            title="STERTOR (SNORING) - REPOSITION AND SUCTION",
            instruction="Head tilt-chin lift or jaw thrust. Suction oropharynx if secretions. "
                        "Consider oropharyngeal airway if unconscious.",
            rationale="Stertor is caused by partial obstruction from tongue or soft tissue.",
            timer_seconds=60,
        )
    if "gurgling" in answer:
        return TriggeredAction(
            id="gurgling-suction",
            severity=ActionSeverity.URGENT,
            title="GURGLING - SUCTION AIRWAY NOW",
            instruction="Suction immediately. Position in recovery position if unconscious. "
                        "Have suction ready continuously.",
            rationale="Gurgling sounds mean fluid in the airway. Risk of aspiration.",
            timer_seconds=30,
        )
    return None

# --- BREATHING ---

def breathing_effort_trigger(answer, patient, weight):
    if answer not in ("severe", "exhaustion"):
        return None
    exhausted = answer == "exhaustion"
    return TriggeredAction(
        id="respiratory-support",
        severity=ActionSeverity.CRITICAL,
        title="RESPIRATORY FAILURE - PREPARE FOR INTUBATION" if exhausted else "SEVERE RESPIRATORY DISTRESS",
        instruction=("Child is tiring. Prepare RSI equipment. Call anesthesia/senior help. "
                     "Start BVM if deteriorates.") if exhausted else
                    ("High-flow oxygen. Consider CPAP/BiPAP. Treat underlying cause "
                     "(bronchodilators if wheeze)."),
        rationale="Exhaustion is a pre-arrest sign." if exhausted else
                  "Severe distress indicates respiratory failure.",
        module=ModuleName.ASTHMA,
    )

def spo2_trigger(answer, patient, weight):
    if answer < VITAL_SIGN_BANDS.SPO2_SEVERE:
        return TriggeredAction(
            id="oxygen-therapy",
            severity=ActionSeverity.CRITICAL,
            title="HYPOXIA - START HIGH-FLOW OXYGEN",
            instruction="Apply non-rebreather mask at 15 L/min. Target SpO2 94-98%. "
                        "If not improving, prepare for BVM or CPAP.",
            rationale="SpO2 <90% indicates severe hypoxemia.",
            timer_seconds=60,
            reassess_after="Recheck SpO2 in 1 minute",
        )
    if answer < VITAL_SIGN_BANDS.SPO2_LOW:
        return TriggeredAction(
            id="supplemental-oxygen",
            severity=ActionSeverity.URGENT,
            title="START SUPPLEMENTAL OXYGEN",
            instruction="Apply nasal cannula 2-4 L/min or simple face mask 6-10 L/min. Target SpO2 94-98%.",
            rationale="SpO2 <94% indicates hypoxemia requiring supplemental oxygen.",
            timer_seconds=120,
        )
    return None

def respiratory_rate_trigger(answer, patient, weight):
    low, high = VitalSignRanges.respiratory_rate(patient.total_months)
    if answer > high * VITAL_SIGN_BANDS.SEVERE_TACHYPNEA_FACTOR:
        return TriggeredAction(
            id="severe-tachypnea",
            severity=ActionSeverity.CRITICAL,
            title="SEVERE TACHYPNEA",
            instruction="Assess for respiratory failure. High-flow oxygen. Treat underlying cause. "
                        "Prepare for respiratory support.",
            rationale=f"RR {answer:g} is severely elevated for age.",
        )
    if answer < low:
        return TriggeredAction(
            id="bradypnea",
            severity=ActionSeverity.CRITICAL,
            title="BRADYPNEA - RESPIRATORY DEPRESSION",
            instruction="Assess airway. Prepare BVM. Consider naloxone if opioid exposure. "
                        "This is a pre-arrest sign.",
            rationale="Low respiratory rate indicates respiratory failure or CNS depression.",
            template=TemplateKey.BVM_VENTILATION,
        )
    return None

def breath_sounds_trigger(answer, patient, weight):
    if "absent_left" in answer or "absent_right" in answer:
        side = "LEFT" if "absent_left" in answer else "RIGHT"
        return TriggeredAction(
            id="absent-breath-sounds",
            severity=ActionSeverity.CRITICAL,
            title=f"ABSENT BREATH SOUNDS {side} SIDE",
            instruction="Consider: pneumothorax (needle decompress if tension), pleural effusion, "
                        "mucus plug, ETT malposition. Get CXR urgently.",
            rationale="Unilateral absent breath sounds indicates serious pathology.",
        )
    if "wheeze" in answer:
        salbutamol = DoseCalculator.salbutamol_neb(weight)
        pred = DoseCalculator.prednisolone(weight)
        return TriggeredAction(
            id="wheeze-treatment",
            severity=ActionSeverity.URGENT,
            title="WHEEZE DETECTED - START BRONCHODILATOR",
            instruction=f"Give salbutamol {salbutamol.format(1)} nebulizer. Add ipratropium 250 mcg "
                        f"if severe. Give prednisolone {pred.format(0)} PO.",
            rationale="Wheeze indicates bronchospasm. Bronchodilators are first-line treatment.",
            dose=f"Salbutamol {salbutamol.format(1)}",
            route="Nebulizer",
            timer_seconds=600,
            template=TemplateKey.SALBUTAMOL_NEB,
            module=ModuleName.ASTHMA,
        )
    return None

# --- CIRCULATION ---
# Heart-failure signs are asked before perfusion so the fluid bolus can be blocked.

def _congestion_action(action_id: str, title: str, instruction: str, rationale: str) -> TriggeredAction:
    return TriggeredAction(
        id=action_id,
        severity=ActionSeverity.CRITICAL,
        title=title,
        instruction=instruction,
        rationale=rationale,
        module=ModuleName.SHOCK,
    )

def jvp_trigger(answer, patient, weight):
    if answer in ("elevated", "very_elevated"):
        return _congestion_action(
            "elevated-jvp",
            "ELEVATED JVP - HEART FAILURE OR FLUID OVERLOAD",
            "DO NOT GIVE FLUID BOLUS. Consider diuretics. Assess for heart failure. Get senior help.",
            "Elevated JVP indicates volume overload or heart failure. Fluid bolus will cause pulmonary edema.",
        )
    return None

def hepatomegaly_trigger(answer, patient, weight):
    if answer in ("mild", "severe"):
        return _congestion_action(
            "hepatomegaly",
            "HEPATOMEGALY - HEART FAILURE OR FLUID OVERLOAD",
            "DO NOT GIVE FLUID BOLUS. Hepatomegaly indicates venous congestion. "
            "Assess for heart failure. Consider diuretics. Get senior help.",
            "Hepatomegaly from venous congestion indicates the child cannot handle more fluid.",
        )
    return None

def heart_sounds_trigger(answer, patient, weight):
    if "gallop" in answer:
        furosemide = DoseCalculator.furosemide(weight)
        action = _congestion_action(
            "gallop-rhythm",
            "GALLOP RHYTHM - HEART FAILURE",
            f"DO NOT GIVE FLUID BOLUS. Start furosemide {furosemide.format(1)} IV. "
            "Get cardiology consult. Consider inotropes.",
            "Gallop rhythm (S3) is a specific sign of heart failure.",
        )
        return action
    if "muffled" in answer:
        return _congestion_action(
            "muffled-sounds",
            "MUFFLED HEART SOUNDS - PERICARDIAL EFFUSION OR TAMPONADE",
            "DO NOT GIVE FLUID BOLUS (unless tamponade confirmed). Get urgent ECHO. "
            "Assess for Beck's triad. Prepare for pericardiocentesis.",
            "Muffled sounds suggest pericardial effusion or tamponade.",
        )
    if "murmur" in answer:
        return TriggeredAction(
            id="heart-murmur",
            severity=ActionSeverity.URGENT,
            title="HEART MURMUR DETECTED",
            instruction="Note murmur characteristics. Be cautious with fluid bolus: give slowly "
                        "and reassess frequently.",
            rationale="Murmur may indicate structural heart disease.",
            module=ModuleName.SHOCK,
        )
    return None

def pulmonary_crackles_trigger(answer, patient, weight):
    if answer in ("bases", "bilateral"):
        furosemide = DoseCalculator.furosemide(weight)
        return _congestion_action(
            "pulmonary-edema",
            "PULMONARY CRACKLES - FLUID OVERLOAD OR HEART FAILURE",
            f"DO NOT GIVE FLUID BOLUS. Start furosemide {furosemide.format(1)} IV. "
            "Consider CPAP/BiPAP. Get senior help.",
            "Pulmonary crackles indicate fluid in the lungs.",
        )
    return None

def heart_rate_trigger(answer, patient, weight):
    low, _high = VitalSignRanges.heart_rate(patient.total_months)
    if answer > VITAL_SIGN_BANDS.SVT_HEART_RATE:
        first = DoseCalculator.adenosine(weight)
        second = DoseCalculator.adenosine(weight, second_dose=True)
        return TriggeredAction(
            id="svt",
            severity=ActionSeverity.CRITICAL,
            title="POSSIBLE SVT - ASSESS RHYTHM",
            instruction="Get 12-lead ECG. If SVT confirmed and stable: vagal maneuvers, then "
                        "adenosine. If unstable: synchronized cardioversion.",
            rationale="HR >220 in children suggests SVT rather than sinus tachycardia.",
            dose=f"Adenosine {first.format(2)} rapid IV, then {second.format(2)}",
            route="IV rapid push",
            module=ModuleName.ARRHYTHMIA,
        )
    if 0 < answer < low:
        atropine = DoseCalculator.atropine(weight, patient.age_years)
        epi = DoseCalculator.epinephrine_iv(weight)
        return TriggeredAction(
            id="bradycardia",
            severity=ActionSeverity.CRITICAL,
            title="BRADYCARDIA - ASSESS PERFUSION",
            instruction="Start CPR if HR <60 with poor perfusion. Give epinephrine. "
                        "Consider atropine for vagal causes.",
            rationale="Bradycardia in children is usually hypoxic. Treat oxygenation first.",
            dose=f"Epinephrine {epi.format(3)} IV/IO; atropine {atropine.format(2)} IV",
            route="IV/IO",
            module=ModuleName.ARRHYTHMIA,
        )
    return None

def rhythm_regularity_trigger(answer, patient, weight):
    if answer == "irregularly_irregular":
        return TriggeredAction(
            id="irregular-rhythm",
            severity=ActionSeverity.CRITICAL,
            title="IRREGULAR RHYTHM - GET ECG",
            instruction="Get 12-lead ECG immediately. Consider frequent ectopics or heart block. "
                        "Consult cardiology.",
            rationale="Irregularly irregular rhythm in children is abnormal.",
            module=ModuleName.ARRHYTHMIA,
        )
    if answer == "narrow_complex_tachy":
        return TriggeredAction(
            id="svt-suspected",
            severity=ActionSeverity.CRITICAL,
            title="SUSPECTED SVT - DO NOT GIVE FLUID BOLUS YET",
            instruction="Get 12-lead ECG first. If SVT confirmed: vagal maneuvers, then adenosine. "
                        "Fluid bolus will NOT help SVT and may worsen heart failure.",
            rationale="SVT causes shock from poor cardiac output, not hypovolemia.",
            module=ModuleName.ARRHYTHMIA,
        )
    return None

def perfusion_trigger(answer, patient, weight):
    if answer == "shock":
        bolus = DoseCalculator.fluid_bolus(weight)
        return TriggeredAction(
            id="shock-treatment",
            severity=ActionSeverity.CRITICAL,
            title="SHOCK - GET IV ACCESS AND GIVE FLUID",
            instruction=f"Establish IV/IO access NOW. Give {bolus.format(0)} (10 mL/kg) NS or RL "
                        "bolus over 5-10 min. Reassess after each bolus.",
            rationale="Shock requires immediate fluid resuscitation.",
            dose=bolus.format(0),
            route="IV/IO bolus",
            timer_seconds=300,
            template=TemplateKey.FLUID_BOLUS,
            module=ModuleName.SHOCK,
        )
    if answer == "poor":
        return TriggeredAction(
            id="poor-perfusion",
            severity=ActionSeverity.URGENT,
            title="POOR PERFUSION - ESTABLISH IV ACCESS",
            instruction="Establish IV access. Prepare for fluid bolus if perfusion worsens. "
                        "Identify and treat underlying cause.",
            rationale="Poor perfusion may progress to shock.",
            template=TemplateKey.IV_ACCESS,
        )
    return None

def pulse_quality_trigger(answer, patient, weight):
    if answer in ("central_only", "both_weak"):
        return TriggeredAction(
            id="severe-shock",
            severity=ActionSeverity.CRITICAL,
            title="SEVERE SHOCK - IMMEDIATE RESUSCITATION",
            instruction="This is decompensated shock. Prepare inotropes. Call for senior help.",
            rationale="Weak or absent peripheral pulses indicate severe circulatory compromise.",
            module=ModuleName.SHOCK,
        )
    return None

def skin_temp_trigger(answer, patient, weight):
    if answer == "cool_below_thigh":
        return TriggeredAction(
            id="cold-shock",
            severity=ActionSeverity.CRITICAL,
            title="COLD SHOCK PATTERN",
            instruction="Suggests cardiogenic or hypovolemic shock. If no response to fluid, "
                        "consider epinephrine infusion.",
            rationale="Proximal temperature gradient indicates severe vasoconstriction.",
            module=ModuleName.SHOCK,
        )
    if answer == "warm_flushed":
        return TriggeredAction(
            id="warm-shock",
            severity=ActionSeverity.URGENT,
            title="WARM SHOCK PATTERN",
            instruction="Suggests distributive shock (sepsis, anaphylaxis). If no response to fluid, "
                        "consider norepinephrine.",
            rationale="Warm, vasodilated peripheries with poor perfusion suggests distributive shock.",
            module=ModuleName.SHOCK,
        )
    return None

def blood_pressure_trigger(answer, patient, weight):
    floor = VitalSignRanges.systolic_floor(patient.age_years)
    if 0 < answer < floor:
        return TriggeredAction(
            id="hypotension",
            severity=ActionSeverity.CRITICAL,
            title="HYPOTENSION - DECOMPENSATED SHOCK",
            instruction="This is late shock. Start inotropes. Call for senior help immediately.",
            rationale=f"BP {answer:g} is below threshold of {floor} for age.",
            module=ModuleName.SHOCK,
        )
    return None

# --- DISABILITY ---

def _hypoglycemia_action(weight: float, timer_seconds: int) -> TriggeredAction:
    d10 = DoseCalculator.dextrose_10(weight)
    return TriggeredAction(
        id="hypoglycemia",
        severity=ActionSeverity.CRITICAL,
        title="HYPOGLYCEMIA - GIVE DEXTROSE NOW",
        instruction=f"Give D10% {d10.format(0)} (2 mL/kg) IV bolus. Recheck glucose in 15 minutes. "
                    "Start maintenance dextrose infusion.",
        rationale="Hypoglycemia causes brain injury. Correct it before other interventions.",
        dose=f"D10% {d10.format(0)}",
        route="IV bolus",
        timer_seconds=timer_seconds,
        dose_card=DoseCard(
            medication="Dextrose 10%",
            indication="Hypoglycemia",
            route="IV push",
            timing="Immediate",
            notes="Recheck glucose in 15 minutes. May need repeat dose or dextrose infusion.",
            dose=f"D10% {d10.format(0)}",
        ),
    )

def glucose_trigger(answer, patient, weight):
    # Declared in mmol/L
    if answer < 3.0:
        return _hypoglycemia_action(weight, 900)
    if answer > 14:
        return TriggeredAction(
            id="hyperglycemia",
            severity=ActionSeverity.URGENT,
            title="HYPERGLYCEMIA - ASSESS FOR DKA",
            instruction="Check ketones, blood gas, electrolytes. If DKA: start IV fluids "
                        "(10 mL/kg NS), then insulin infusion after 1 hour.",
            rationale="Hyperglycemia may indicate DKA.",
            module=ModuleName.LAB,
        )
    return None

def pupils_trigger(answer, patient, weight):
    if answer == "unequal":
        return TriggeredAction(
            id="anisocoria",
            severity=ActionSeverity.CRITICAL,
            title="UNEQUAL PUPILS - POSSIBLE RAISED ICP",
            instruction="Elevate head 30 degrees. Avoid hypoxia and hypotension. Consider mannitol "
                        "0.5 g/kg if herniation suspected. Urgent CT head.",
            rationale="Anisocoria suggests uncal herniation from raised intracranial pressure.",
        )
    if answer == "fixed_dilated":
        return TriggeredAction(
            id="fixed-pupils",
            severity=ActionSeverity.CRITICAL,
            title="FIXED DILATED PUPILS",
            instruction="If bilateral: consider brainstem death, severe hypoxia, or drug toxicity. "
                        "If post-arrest: continue resuscitation.",
            rationale="Fixed dilated pupils indicate severe neurological injury.",
        )
    if answer == "constricted":
        return TriggeredAction(
            id="pinpoint-pupils",
            severity=ActionSeverity.URGENT,
            title="PINPOINT PUPILS - CONSIDER OPIOID TOXICITY",
            instruction="If respiratory depression present: give naloxone 0.1 mg/kg IV (max 2 mg).",
            rationale="Pinpoint pupils with respiratory depression suggests opioid toxicity.",
        )
    return None

def seizure_trigger(answer, patient, weight):
    if answer == "active":
        lorazepam = DoseCalculator.lorazepam(weight)
        diazepam = DoseCalculator.diazepam(weight)
        return TriggeredAction(
            id="active-seizure",
            severity=ActionSeverity.CRITICAL,
            title="ACTIVE SEIZURE - GIVE BENZODIAZEPINE",
            instruction=f"Position safely. Give lorazepam {lorazepam.format(1)} IV OR diazepam "
                        f"{diazepam.format(1)} PR. Check glucose. Time the seizure.",
            rationale="Prolonged seizures cause brain injury. Benzodiazepines are first-line treatment.",
            dose=f"Lorazepam {lorazepam.format(1)} IV or Diazepam {diazepam.format(1)} PR",
            route="IV or PR",
            timer_seconds=300,
        )
    return None

# --- EXPOSURE ---

def temperature_trigger(answer, patient, weight):
    if answer > 40:
        return TriggeredAction(
            id="hyperthermia",
            severity=ActionSeverity.URGENT,
            title="HYPERTHERMIA - ACTIVE COOLING",
            instruction="Remove clothing. Tepid sponging. Paracetamol 15 mg/kg. Consider sepsis workup.",
            rationale="Temperature >40C increases metabolic demand and can cause seizures.",
        )
    if answer < 35:
        return TriggeredAction(
            id="hypothermia",
            severity=ActionSeverity.URGENT,
            title="HYPOTHERMIA - ACTIVE WARMING",
            instruction="Remove wet clothing. Warm blankets. Warm IV fluids. Consider sepsis in infants.",
            rationale="Hypothermia impairs coagulation and cardiac function.",
        )
    return None

def rash_trigger(answer, patient, weight):
    if answer == "petechial":
        ceftriaxone = DoseCalculator.ceftriaxone(weight, meningitic=True)
        return TriggeredAction(
            id="petechial-rash",
            severity=ActionSeverity.CRITICAL,
            title="PETECHIAL RASH - ASSUME MENINGOCOCCEMIA",
            instruction=f"Give ceftriaxone {ceftriaxone.format(0)} IV NOW. Do NOT delay for LP. "
                        "Fluid resuscitation if shocked.",
            rationale="Petechial rash with fever = meningococcal sepsis until proven otherwise.",
            dose=f"Ceftriaxone {ceftriaxone.format(0)}",
            route="IV",
            module=ModuleName.LAB,
        )
    if answer == "urticarial":
        return TriggeredAction(
            id="urticarial-rash",
            severity=ActionSeverity.URGENT,
            title="URTICARIAL RASH - ASSESS FOR ANAPHYLAXIS",
            instruction="Check for airway swelling, breathing difficulty, hypotension. "
                        "If anaphylaxis: give IM epinephrine immediately.",
            rationale="Urticaria may be part of anaphylaxis.",
        )
    return None


ABCDE_QUESTIONS = [
    # SIGNS OF LIFE
    Question("breathing", Phase.SIGNS_OF_LIFE, "Is the child breathing?", AnswerKind.BOOLEAN,
             subtext="Look for chest movement, listen for breath sounds",
             trigger=breathing_trigger),
    Question("pulse", Phase.SIGNS_OF_LIFE, "Is there a palpable pulse?", AnswerKind.SELECT,
             subtext="Check brachial (infant) or carotid (child) pulse for 10 seconds max",
             options=_opts(("present_strong", "Present and strong", N),
                           ("present_weak", "Present but weak", A),
                           ("absent", "No pulse", C)),
             trigger=pulse_trigger),
    Question("responsiveness", Phase.SIGNS_OF_LIFE, "What is the level of responsiveness?", AnswerKind.SELECT,
             subtext="AVPU scale assessment",
             options=_opts(("alert", "A - Alert", N),
                           ("voice", "V - Responds to voice", A),
                           ("pain", "P - Responds only to pain", C),
                           ("unresponsive", "U - Unresponsive", C)),
             trigger=responsiveness_trigger),
    # AIRWAY
    Question("airway_patency", Phase.AIRWAY, "Is the airway patent?", AnswerKind.SELECT,
             subtext="Can you hear air movement? Is there stridor or gurgling?",
             options=_opts(("patent", "Patent - clear air movement", N),
                           ("partial", "Partial obstruction - stridor/gurgling", A),
                           ("complete", "Complete obstruction - no air movement", C)),
             trigger=airway_patency_trigger),
    Question("airway_sounds", Phase.AIRWAY, "Are there abnormal airway sounds?", AnswerKind.MULTI_SELECT,
             options=_opts(("none", "None - clear", N),
                           ("stridor", "Stridor (inspiratory)", A),
                           ("stertor", "Stertor (snoring)", A),
                           ("gurgling", "Gurgling (secretions)", A),
                           ("hoarse", "Hoarse voice/cry", A)),
             trigger=airway_sounds_trigger),
    # BREATHING
    Question("breathing_effort", Phase.BREATHING, "What is the work of breathing?", AnswerKind.SELECT,
             subtext="Look for retractions, nasal flaring, accessory muscle use",
             options=_opts(("normal", "Normal - no distress", N),
                           ("mild", "Mild - some retractions", A),
                           ("moderate", "Moderate - intercostal retractions, nasal flaring", A),
                           ("severe", "Severe - subcostal retractions, head bobbing, grunting", C),
                           ("exhaustion", "Exhaustion - minimal effort, ominous sign", C)),
             trigger=breathing_effort_trigger),
    Question("spo2", Phase.BREATHING, "What is the SpO2?", AnswerKind.NUMBER,
             subtext="On room air or current oxygen. Normal: 94-100%.",
             unit="%", min_value=0, max_value=100, trigger=spo2_trigger),
    Question("respiratory_rate", Phase.BREATHING, "What is the respiratory rate?", AnswerKind.NUMBER,
             subtext="Count for 30 seconds x 2",
             unit="breaths/min", min_value=0, max_value=100, trigger=respiratory_rate_trigger),
    Question("breath_sounds", Phase.BREATHING, "What are the breath sounds?", AnswerKind.MULTI_SELECT,
             options=_opts(("clear", "Clear bilateral", N),
                           ("wheeze", "Wheeze (expiratory)", A),
                           ("crackles", "Crackles/rales", A),
                           ("decreased", "Decreased air entry", A),
                           ("absent_left", "Absent left side", C),
                           ("absent_right", "Absent right side", C)),
             trigger=breath_sounds_trigger),
    # CIRCULATION
    Question("jvp", Phase.CIRCULATION, "Is the jugular venous pressure (JVP) elevated?", AnswerKind.SELECT,
             subtext="Look for distended neck veins (difficult in infants - check hepatomegaly instead)",
             options=_opts(("not_visible", "Not visible/normal", N),
                           ("elevated", "Elevated - visible above clavicle", A),
                           ("very_elevated", "Very elevated - visible to jaw", C)),
             trigger=jvp_trigger),
    Question("hepatomegaly", Phase.CIRCULATION, "Is the liver enlarged?", AnswerKind.SELECT,
             subtext="Palpate liver edge - should not be >2cm below costal margin",
             options=_opts(("normal", "Normal - <2cm below costal margin", N),
                           ("mild", "Mildly enlarged - 2-4cm below costal margin", A),
                           ("severe", "Severely enlarged - >4cm below costal margin", C)),
             trigger=hepatomegaly_trigger),
    Question("heart_sounds", Phase.CIRCULATION, "Auscultate the heart - what do you hear?", AnswerKind.MULTI_SELECT,
             subtext="Listen for gallop rhythm (S3), murmurs, muffled sounds",
             options=_opts(("normal", "Normal S1 and S2 only", N),
                           ("gallop", "Gallop rhythm (S3)", C),
                           ("murmur", "Heart murmur present", A),
                           ("muffled", "Muffled heart sounds", C)),
             trigger=heart_sounds_trigger),
    Question("pulmonary_crackles", Phase.CIRCULATION, "Are there pulmonary crackles on auscultation?",
             AnswerKind.SELECT,
             subtext="Listen to lung bases - crackles suggest pulmonary edema",
             options=_opts(("none", "No crackles - clear lung fields", N),
                           ("bases", "Crackles at bases only", A),
                           ("bilateral", "Bilateral crackles throughout", C)),
             trigger=pulmonary_crackles_trigger),
    Question("heart_rate", Phase.CIRCULATION, "What is the heart rate?", AnswerKind.NUMBER,
             subtext="Count for 15 seconds x 4",
             unit="bpm", min_value=0, max_value=300, trigger=heart_rate_trigger),
    Question("rhythm_regularity", Phase.CIRCULATION, "Is the heart rhythm regular?", AnswerKind.SELECT,
             options=_opts(("regular", "Regular rhythm", N),
                           ("regularly_irregular", "Regularly irregular (e.g., sinus arrhythmia)", N),
                           ("irregularly_irregular", "Irregularly irregular", C),
                           ("narrow_complex_tachy", "Very fast and regular (possible SVT)", C)),
             trigger=rhythm_regularity_trigger),
    Question("perfusion", Phase.CIRCULATION, "What is the perfusion status?", AnswerKind.SELECT,
             subtext="Assess capillary refill, skin color, peripheral pulses",
             options=_opts(("normal", "Normal - CRT <2s, warm, pink", N),
                           ("poor", "Poor - CRT 2-4s, cool peripheries", A),
                           ("shock", "Shock - CRT >4s, mottled, weak pulses", C)),
             trigger=perfusion_trigger),
    Question("cap_refill", Phase.CIRCULATION, "What is the capillary refill time?", AnswerKind.SELECT,
             subtext="Press on sternum or forehead for 5 seconds",
             options=_opts(("less_2", "<2 seconds (normal)", N),
                           ("2_to_4", "2-4 seconds (prolonged)", A),
                           ("more_4", ">4 seconds (severely prolonged)", C))),
    Question("pulse_quality", Phase.CIRCULATION, "Compare central and peripheral pulses", AnswerKind.SELECT,
             options=_opts(("both_strong", "Both strong and equal", N),
                           ("central_strong", "Central strong, peripheral weak", A),
                           ("both_weak", "Both weak", C),
                           ("central_only", "Central only palpable", C)),
             trigger=pulse_quality_trigger),
    Question("skin_temp", Phase.CIRCULATION, "Assess skin temperature gradient", AnswerKind.SELECT,
             subtext="Run hand from thigh to foot - note where it becomes cool",
             options=_opts(("warm_throughout", "Warm throughout", N),
                           ("cool_feet", "Cool feet only", A),
                           ("cool_below_knee", "Cool below knees", A),
                           ("cool_below_thigh", "Cool below mid-thigh", C),
                           ("warm_flushed", "Warm and flushed (vasodilated)", A)),
             trigger=skin_temp_trigger),
    Question("blood_pressure", Phase.CIRCULATION, "What is the blood pressure?", AnswerKind.NUMBER,
             subtext="Use appropriate cuff size",
             unit="mmHg (systolic)", min_value=0, max_value=200, trigger=blood_pressure_trigger),
    # DISABILITY
    Question("glucose", Phase.DISABILITY, "What is the blood glucose?", AnswerKind.NUMBER,
             unit="mmol/L", min_value=0, max_value=50, glucose_unit=GlucoseUnit.MMOL_L,
             trigger=glucose_trigger),
    Question("pupils", Phase.DISABILITY, "What are the pupil findings?", AnswerKind.SELECT,
             options=_opts(("normal", "Equal, round, reactive (PERRL)", N),
                           ("dilated_reactive", "Dilated but reactive", A),
                           ("constricted", "Pinpoint (constricted)", A),
                           ("unequal", "Unequal (anisocoria)", C),
                           ("fixed_dilated", "Fixed and dilated", C)),
             trigger=pupils_trigger),
    Question("seizure", Phase.DISABILITY, "Is there seizure activity?", AnswerKind.SELECT,
             options=_opts(("none", "No seizure activity", N),
                           ("resolved", "Recent seizure, now resolved", A),
                           ("active", "Active seizure NOW", C)),
             trigger=seizure_trigger),
    # EXPOSURE
    Question("temperature", Phase.EXPOSURE, "What is the temperature?", AnswerKind.NUMBER,
             unit="C", min_value=30, max_value=45, trigger=temperature_trigger),
    Question("rash", Phase.EXPOSURE, "Is there a rash?", AnswerKind.SELECT,
             options=_opts(("none", "No rash", N),
                           ("blanching", "Blanching rash (viral)", N),
                           ("urticarial", "Urticarial (hives)", A),
                           ("petechial", "Petechial/purpuric (non-blanching)", C)),
             trigger=rash_trigger),
]


# =====================================================================
# BRANCHING ("MAIN PROBLEM") QUESTION SET
# =====================================================================

def triage_breathing_trigger(answer, patient, weight):
    if answer is False:
        return _bvm_action(
            "START BAG-VALVE-MASK VENTILATION NOW",
            "Not breathing = immediate ventilation needed to prevent cardiac arrest.",
        )
    return None

def triage_pulse_trigger(answer, patient, weight):
    if answer is False:
        return _cpr_action(weight)
    return None

def triage_responsiveness_trigger(answer, patient, weight):
    if answer == "unresponsive":
        return _protect_airway()
    return None

def breathing_signs_trigger(answer, patient, weight):
    if "stridor" in answer:
        dose, card = _croup_card(weight)
        return TriggeredAction(
            id="stridor-management",
            severity=ActionSeverity.CRITICAL,
            title="STRIDOR - AIRWAY EMERGENCY",
            instruction="Keep child calm. Give oxygen. Consider: croup (" + dose + "), foreign body "
                        "(do NOT examine throat), anaphylaxis (IM epinephrine). Call for airway help.",
            rationale="Stridor = upper airway obstruction. Can progress to complete obstruction rapidly.",
            dose=dose,
            route="PO/IM + nebulizer",
            dose_card=card,
            module=ModuleName.AIRWAY,
        )
    if "wheezing" in answer:
        salbutamol = DoseCalculator.salbutamol_neb(weight)
        return TriggeredAction(
            id="bronchospasm",
            severity=ActionSeverity.URGENT,
            title="BRONCHOSPASM - START BRONCHODILATORS",
            instruction=f"Give salbutamol {salbutamol.format(1)} nebulizer. Assess severity. "
                        "Consider asthma, bronchiolitis, anaphylaxis.",
            rationale="Wheezing = bronchospasm. Early bronchodilator improves outcomes.",
            dose=f"Salbutamol {salbutamol.format(1)}",
            route="Nebulizer",
            template=TemplateKey.SALBUTAMOL_NEB,
            module=ModuleName.ASTHMA,
        )
    return None

def pathway_spo2_trigger(answer, patient, weight):
    if answer < VITAL_SIGN_BANDS.SPO2_SEVERE:
        return TriggeredAction(
            id="severe-hypoxia",
            severity=ActionSeverity.CRITICAL,
            title="SEVERE HYPOXIA - HIGH-FLOW OXYGEN NOW",
            instruction="Give 100% oxygen via non-rebreather mask or bag-valve-mask. Target SpO2 >94%. "
                        "Prepare for intubation if not improving.",
            rationale="SpO2 <90% = severe hypoxia.",
            timer_seconds=60,
            reassess_after="Recheck SpO2 after 1 minute",
        )
    return None

def perfusion_signs_trigger(answer, patient, weight):
    if len(answer) >= 2:
        bolus = DoseCalculator.fluid_bolus(weight, sepsis=True)
        return TriggeredAction(
            id="shock-resuscitation",
            severity=ActionSeverity.CRITICAL,
            title="SHOCK - START FLUID RESUSCITATION",
            instruction=f"Get IV/IO access NOW. Give {bolus.format(0)} (20 mL/kg) fluid bolus over "
                        "5-10 minutes. Reassess after each bolus.",
            rationale="Multiple perfusion signs = shock. Immediate fluid resuscitation needed.",
            dose=bolus.format(0),
            route="IV/IO bolus",
            template=TemplateKey.FLUID_BOLUS,
            module=ModuleName.SHOCK,
        )
    return None

def bleeding_visible_trigger(answer, patient, weight):
    if answer is True:
        return TriggeredAction(
            id="hemorrhagic-shock",
            severity=ActionSeverity.CRITICAL,
            title="HEMORRHAGIC SHOCK - STOP BLEEDING",
            instruction="Apply direct pressure. Get IV access. Give blood products if massive bleeding. "
                        "Consider tourniquet for limb hemorrhage.",
            rationale="Visible bleeding + shock = hemorrhagic shock.",
            timer_seconds=120,
            template=TemplateKey.IV_ACCESS,
        )
    return None

def seizure_activity_trigger(answer, patient, weight):
    if answer == "active_now":
        lorazepam = DoseCalculator.lorazepam(weight)
        midazolam = DoseCalculator.midazolam(weight)
        return TriggeredAction(
            id="status-epilepticus",
            severity=ActionSeverity.CRITICAL,
            title="ACTIVE SEIZURE - GIVE BENZODIAZEPINE",
            instruction=f"Protect airway. Give lorazepam {lorazepam.format(1)} IV or midazolam "
                        f"{midazolam.format(1)} IM. If still seizing at 5 min, repeat dose.",
            rationale="Ongoing seizure requires immediate benzodiazepine.",
            dose=f"Lorazepam {lorazepam.format(1)} IV or Midazolam {midazolam.format(1)} IM",
            route="IV or IM",
            timer_seconds=300,
            template=TemplateKey.SEIZURE_MONITORING,
        )
    return None

def glucose_level_trigger(answer, patient, weight):
    # Declared in mg/dL
    if answer < 60:
        return _hypoglycemia_action(weight, 60)
    if answer > 250:
        return TriggeredAction(
            id="hyperglycemia-dka",
            severity=ActionSeverity.URGENT,
            title="HYPERGLYCEMIA - ASSESS FOR DKA",
            instruction="Check for DKA signs: vomiting, abdominal pain, Kussmaul breathing. "
                        "Get VBG, ketones, electrolytes.",
            rationale="High glucose + altered mental status may be DKA.",
            template=TemplateKey.LAB_COLLECTION,
            module=ModuleName.LAB,
        )
    return None

def trauma_mechanism_trigger(answer, patient, weight):
    if answer in ("penetrating", "multiple"):
        return TriggeredAction(
            id="major-trauma",
            severity=ActionSeverity.CRITICAL,
            title="MAJOR TRAUMA - ACTIVATE TRAUMA PROTOCOL",
            instruction="C-spine immobilization. Control bleeding. Two large-bore IVs. "
                        "Trauma series imaging. Call trauma team.",
            rationale="Penetrating or multi-system trauma requires full trauma activation.",
            template=TemplateKey.IV_ACCESS,
        )
    return None

def trauma_location_trigger(answer, patient, weight):
    if "head" in answer:
        return TriggeredAction(
            id="head-trauma",
            severity=ActionSeverity.CRITICAL,
            title="HEAD TRAUMA - PROTECT C-SPINE",
            instruction="Immobilize C-spine. Assess GCS. Maintain BP, avoid hypoxia. CT head if GCS <15.",
            rationale="Head trauma can cause intracranial bleeding, increased ICP.",
            timer_seconds=300,
        )
    if "chest" in answer:
        return TriggeredAction(
            id="chest-trauma",
            severity=ActionSeverity.CRITICAL,
            title="CHEST TRAUMA - ASSESS FOR PNEUMOTHORAX",
            instruction="Listen for breath sounds. Check for tracheal deviation. "
                        "Prepare for needle decompression if tension pneumothorax.",
            rationale="Chest trauma can cause pneumothorax, hemothorax, cardiac injury.",
            timer_seconds=180,
        )
    return None

def ingestion_time_trigger(answer, patient, weight):
    if answer == "recent":
        return TriggeredAction(
            id="recent-ingestion",
            severity=ActionSeverity.URGENT,
            title="RECENT INGESTION - CONSIDER DECONTAMINATION",
            instruction="Call poison control. Consider activated charcoal if <1 hour and appropriate "
                        "substance. Monitor for deterioration.",
            rationale="Recent ingestion may benefit from decontamination.",
            timer_seconds=600,
        )
    return None

def anaphylaxis_signs_trigger(answer, patient, weight):
    if any(sign in answer for sign in ("airway_swelling", "breathing_difficulty", "hypotension")):
        epi = DoseCalculator.epinephrine_im(weight)
        return TriggeredAction(
            id="anaphylaxis",
            severity=ActionSeverity.CRITICAL,
            title="ANAPHYLAXIS - GIVE IM EPINEPHRINE NOW",
            instruction=f"IM epinephrine {epi.format(2)} (0.01 mg/kg, max 0.5 mg) in anterolateral thigh. "
                        "Can repeat every 5-15 minutes. Give oxygen, fluids, antihistamines.",
            rationale="Anaphylaxis is life-threatening. IM epinephrine is first-line treatment.",
            dose=f"Epinephrine {epi.format(2)} IM",
            route="IM",
            timer_seconds=300,
            template=TemplateKey.EPINEPHRINE_IM,
        )
    return None


BRANCHING_QUESTIONS = [
    # TRIAGE
    Question("breathing", Phase.TRIAGE, "Is the patient breathing?", AnswerKind.BOOLEAN,
             subtext="Look for chest movement, listen for breath sounds",
             trigger=triage_breathing_trigger),
    Question("pulse", Phase.TRIAGE, "Can you feel a pulse?", AnswerKind.BOOLEAN,
             subtext="Check brachial (infant) or carotid (child) for 10 seconds max",
             trigger=triage_pulse_trigger),
    Question("responsiveness", Phase.TRIAGE, "Are they responsive?", AnswerKind.SELECT,
             subtext="Do they respond to voice or pain?",
             options=_opts(("alert", "Alert - eyes open, responds normally", N),
                           ("responds", "Responds to voice or pain", A),
                           ("unresponsive", "Unresponsive - no response at all", C)),
             trigger=triage_responsiveness_trigger),
    # PROBLEM IDENTIFICATION
    Question("main_problem", Phase.PROBLEM_IDENTIFICATION, "What is the MAIN problem?", AnswerKind.SELECT,
             subtext="Choose the most urgent issue",
             options=_opts(("breathing", "Breathing difficulty", A),
                           ("shock", "Shock / Poor perfusion", A),
                           ("seizure", "Seizure / Altered mental status", A),
                           ("trauma", "Severe bleeding / Trauma", A),
                           ("poisoning", "Poisoning / Overdose", A),
                           ("allergic", "Allergic reaction", A))),
    # BREATHING PATHWAY
    Question("breathing_signs", Phase.BREATHING_PATHWAY, "What breathing signs do you see?",
             AnswerKind.MULTI_SELECT, subtext="Select all that apply",
             options=_opts(("wheezing", "Wheezing", A),
                           ("stridor", "Stridor (high-pitched sound)", C),
                           ("grunting", "Grunting / Severe retractions", C),
                           ("cyanosis", "Cyanosis (blue lips/skin)", C)),
             trigger=breathing_signs_trigger),
    Question("spo2", Phase.BREATHING_PATHWAY, "What is the SpO2?", AnswerKind.NUMBER,
             subtext="Oxygen saturation level", unit="%", min_value=50, max_value=100,
             trigger=pathway_spo2_trigger),
    # SHOCK PATHWAY
    Question("perfusion_signs", Phase.SHOCK_PATHWAY, "What perfusion signs do you see?",
             AnswerKind.MULTI_SELECT, subtext="Select all that apply",
             options=_opts(("weak_pulse", "Weak or absent pulses", C),
                           ("delayed_crt", "CRT >3 seconds", C),
                           ("cold_extremities", "Cold hands/feet", A),
                           ("mottled_skin", "Mottled or pale skin", A)),
             trigger=perfusion_signs_trigger),
    Question("bleeding_visible", Phase.SHOCK_PATHWAY, "Is there visible bleeding?", AnswerKind.BOOLEAN,
             trigger=bleeding_visible_trigger),
    # NEURO PATHWAY
    Question("seizure_activity", Phase.NEURO_PATHWAY, "Is there seizure activity?", AnswerKind.SELECT,
             options=_opts(("active_now", "Seizing RIGHT NOW", C),
                           ("recent", "Seizure stopped recently", A),
                           ("no_seizure", "No seizure", N)),
             trigger=seizure_activity_trigger),
    Question("glucose_level", Phase.NEURO_PATHWAY, "What is the blood glucose?", AnswerKind.NUMBER,
             subtext="If available - skip if unknown", unit="mg/dL", min_value=20, max_value=600,
             glucose_unit=GlucoseUnit.MG_DL, trigger=glucose_level_trigger),
    # TRAUMA PATHWAY
    Question("trauma_mechanism", Phase.TRAUMA_PATHWAY, "What type of trauma?", AnswerKind.SELECT,
             options=_opts(("fall", "Fall / Blunt trauma", A),
                           ("penetrating", "Penetrating injury (stab/gunshot)", C),
                           ("burns", "Burns", A),
                           ("multiple", "Multiple injuries", C)),
             trigger=trauma_mechanism_trigger),
    Question("trauma_location", Phase.TRAUMA_PATHWAY, "Where is the injury?", AnswerKind.MULTI_SELECT,
             options=_opts(("head", "Head / Neck", C),
                           ("chest", "Chest", C),
                           ("abdomen", "Abdomen", C),
                           ("extremity", "Arms / Legs", A)),
             trigger=trauma_location_trigger),
    # POISONING PATHWAY
    Question("substance_type", Phase.POISONING_PATHWAY, "What was ingested/exposed?", AnswerKind.SELECT,
             options=_opts(("medication", "Medication overdose", A),
                           ("household", "Household chemical", A),
                           ("unknown", "Unknown substance", A))),
    Question("ingestion_time", Phase.POISONING_PATHWAY, "When did this happen?", AnswerKind.SELECT,
             options=_opts(("recent", "Less than 1 hour ago", A),
                           ("delayed", "More than 1 hour ago", A)),
             trigger=ingestion_time_trigger),
    # ALLERGIC PATHWAY
    Question("anaphylaxis_signs", Phase.ALLERGIC_PATHWAY, "What allergic signs do you see?",
             AnswerKind.MULTI_SELECT, subtext="Select all that apply",
             options=_opts(("airway_swelling", "Airway swelling / Stridor", C),
                           ("breathing_difficulty", "Wheezing / Breathing difficulty", C),
                           ("hypotension", "Low blood pressure / Weak pulse", C),
                           ("rash", "Rash / Hives only", A)),
             trigger=anaphylaxis_signs_trigger),
]

# Answer to 'main_problem' -> pathway phase
PATHWAY_BY_PROBLEM = {
    "breathing": Phase.BREATHING_PATHWAY,
    "shock": Phase.SHOCK_PATHWAY,
    "seizure": Phase.NEURO_PATHWAY,
    "trauma": Phase.TRAUMA_PATHWAY,
    "poisoning": Phase.POISONING_PATHWAY,
    "allergic": Phase.ALLERGIC_PATHWAY,
}
MAIN_PROBLEM_QUESTION_ID = "main_problem"


# =====================================================================
# GRAPH
# =====================================================================

@dataclass
class QuestionGraph:
    """Ordered mapping phase -> question ids, plus the question registry."""
    variant: FlowVariant
    questions: Dict[str, Question] = field(default_factory=dict)
    phases: Dict[Phase, Tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self):
        seen = set()
        for phase, ids in self.phases.items():
            for qid in ids:
                if qid not in self.questions:
                    raise ValueError(f"Phase {phase.value} references unknown question '{qid}'")
                if qid in seen:
                    raise ValueError(f"Question '{qid}' appears in more than one phase")
                if self.questions[qid].phase != phase:
                    raise ValueError(f"Question '{qid}' is declared in {self.questions[qid].phase.value}")
                seen.add(qid)

    def get(self, question_id: Optional[str]) -> Optional[Question]:
        if question_id is None:
            return None
        return self.questions.get(question_id)

    def ids_for(self, phases: List[Phase]) -> List[str]:
        ordered = []
        for phase in phases:
            ordered.extend(self.phases.get(phase, ()))
        return ordered


def _build_graph(variant: FlowVariant, questions: List[Question]) -> QuestionGraph:
    registry = {}
    phases: Dict[Phase, Tuple[str, ...]] = {}
    for q in questions:
        if q.id in registry:
            raise ValueError(f"Duplicate question id '{q.id}'")
        registry[q.id] = q
        phases[q.phase] = phases.get(q.phase, ()) + (q.id,)
    return QuestionGraph(variant=variant, questions=registry, phases=phases)


ABCDE_GRAPH = _build_graph(FlowVariant.ABCDE, ABCDE_QUESTIONS)
BRANCHING_GRAPH = _build_graph(FlowVariant.BRANCHING, BRANCHING_QUESTIONS)


def graph_for(variant: FlowVariant) -> QuestionGraph:
    if variant == FlowVariant.BRANCHING:
        return BRANCHING_GRAPH
    return ABCDE_GRAPH
