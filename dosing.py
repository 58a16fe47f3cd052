"""
PediaGPS: Dosing & Threshold Library
====================================
Weight estimation, weight-scaled emergency doses and age-banded vital-sign
thresholds. Every dose is clamped to its published maximum before it can
reach a recommendation.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from constants import AGE_CONSTANTS, DOSING_LIMITS, VITAL_SIGN_BANDS


def estimate_weight(total_months: int) -> float:
    """
    APLS-style weight estimate (kg) from age.
    < 12 months: (months + 9) / 2
    1-4 years:   (years + 4) * 2
    >= 5 years:  years * 4
    """
    months = max(int(total_months), 0)
    if months < AGE_CONSTANTS.INFANT_UPPER_MONTHS:
        return (months + 9) / 2
    if months < AGE_CONSTANTS.PRESCHOOL_UPPER_MONTHS:
        return float((months // 12 + 4) * 2)
    return float((months // 12) * 4)


@dataclass(frozen=True)
class Dose:
    value: float
    unit: str
    cap: Optional[float] = None
    capped: bool = False

    def format(self, decimals: int = 2) -> str:
        text = f"{self.value:.{decimals}f}".rstrip("0").rstrip(".") if decimals else f"{self.value:.0f}"
        return f"{text} {self.unit}"


def _clamped(raw: float, cap: float, unit: str) -> Dose:
    if raw > cap:
        return Dose(value=cap, unit=unit, cap=cap, capped=True)
    return Dose(value=raw, unit=unit, cap=cap, capped=False)


class DoseCalculator:
    """
    Weight-scaled doses. Inputs are the working weight in kg.
    Returns a Dose that never exceeds its cap.
    """

    # --- RESUSCITATION ---

    @staticmethod
    def epinephrine_im(weight_kg: float) -> Dose:
        # Anaphylaxis, 1 mg/mL into the anterolateral thigh
        return _clamped(weight_kg * DOSING_LIMITS.EPI_PER_KG_MG, DOSING_LIMITS.EPI_IM_MAX_MG, "mg")

    @staticmethod
    def epinephrine_iv(weight_kg: float) -> Dose:
        # Arrest dose, 0.1 mg/mL, every 3-5 minutes
        return _clamped(weight_kg * DOSING_LIMITS.EPI_PER_KG_MG, DOSING_LIMITS.EPI_IV_MAX_MG, "mg")

    @staticmethod
    def defibrillation(weight_kg: float, shock_number: int = 1) -> Dose:
        per_kg = DOSING_LIMITS.DEFIB_FIRST_J_PER_KG if shock_number <= 1 else DOSING_LIMITS.DEFIB_SUBSEQUENT_J_PER_KG
        return _clamped(float(round(weight_kg * per_kg)), DOSING_LIMITS.MAX_ENERGY_J, "J")

    @staticmethod
    def cardioversion(weight_kg: float, escalated: bool = False) -> Tuple[Dose, Dose]:
        """Synchronised energy range (low, high). Escalation is 2 J/kg for both ends."""
        if escalated:
            dose = _clamped(weight_kg * DOSING_LIMITS.CARDIOVERSION_ESCALATED_J_PER_KG, DOSING_LIMITS.MAX_ENERGY_J, "J")
            return dose, dose
        low = _clamped(weight_kg * DOSING_LIMITS.CARDIOVERSION_LOW_J_PER_KG, DOSING_LIMITS.MAX_ENERGY_J, "J")
        high = _clamped(weight_kg * DOSING_LIMITS.CARDIOVERSION_HIGH_J_PER_KG, DOSING_LIMITS.MAX_ENERGY_J, "J")
        return low, high

    # --- ARRHYTHMIA ---

    @staticmethod
    def adenosine(weight_kg: float, second_dose: bool = False) -> Dose:
        if second_dose:
            return _clamped(weight_kg * DOSING_LIMITS.ADENOSINE_SECOND_PER_KG_MG, DOSING_LIMITS.ADENOSINE_SECOND_MAX_MG, "mg")
        return _clamped(weight_kg * DOSING_LIMITS.ADENOSINE_FIRST_PER_KG_MG, DOSING_LIMITS.ADENOSINE_FIRST_MAX_MG, "mg")

    @staticmethod
    def atropine(weight_kg: float, age_years: int = 0) -> Dose:
        # Minimum 0.1 mg to avoid paradoxical bradycardia
        cap = DOSING_LIMITS.ATROPINE_CHILD_MAX_MG if age_years < 12 else DOSING_LIMITS.ATROPINE_ADOLESCENT_MAX_MG
        raw = max(weight_kg * DOSING_LIMITS.ATROPINE_PER_KG_MG, DOSING_LIMITS.ATROPINE_MIN_MG)
        return _clamped(raw, cap, "mg")

    @staticmethod
    def amiodarone(weight_kg: float) -> Dose:
        return _clamped(weight_kg * DOSING_LIMITS.AMIODARONE_PER_KG_MG, DOSING_LIMITS.AMIODARONE_MAX_MG, "mg")

    # --- AIRWAY / BREATHING ---

    @staticmethod
    def dexamethasone(weight_kg: float) -> Dose:
        return _clamped(weight_kg * DOSING_LIMITS.DEXAMETHASONE_PER_KG_MG, DOSING_LIMITS.DEXAMETHASONE_MAX_MG, "mg")

    @staticmethod
    def nebulized_epinephrine(weight_kg: float) -> Dose:
        # 1:1000 solution, volume in mL
        return _clamped(weight_kg * DOSING_LIMITS.NEB_EPI_PER_KG_ML, DOSING_LIMITS.NEB_EPI_MAX_ML, "mL")

    @staticmethod
    def salbutamol_neb(weight_kg: float) -> Dose:
        if weight_kg < DOSING_LIMITS.SALBUTAMOL_WEIGHT_SPLIT_KG:
            return Dose(value=DOSING_LIMITS.SALBUTAMOL_LOW_MG, unit="mg", cap=DOSING_LIMITS.SALBUTAMOL_HIGH_MG)
        return Dose(value=DOSING_LIMITS.SALBUTAMOL_HIGH_MG, unit="mg", cap=DOSING_LIMITS.SALBUTAMOL_HIGH_MG)

    @staticmethod
    def prednisolone(weight_kg: float) -> Dose:
        return _clamped(weight_kg * DOSING_LIMITS.PREDNISOLONE_PER_KG_MG, DOSING_LIMITS.PREDNISOLONE_MAX_MG, "mg")

    # --- CIRCULATION ---

    @staticmethod
    def fluid_bolus(weight_kg: float, sepsis: bool = False) -> Dose:
        per_kg = DOSING_LIMITS.SEPSIS_BOLUS_PER_KG_ML if sepsis else DOSING_LIMITS.BOLUS_PER_KG_ML
        return _clamped(float(round(weight_kg * per_kg)), DOSING_LIMITS.BOLUS_MAX_ML, "mL")

    @staticmethod
    def fluid_ceiling(weight_kg: float) -> float:
        """Session maximum before mandatory senior review (mL)."""
        return weight_kg * DOSING_LIMITS.FLUID_CEILING_PER_KG_ML

    @staticmethod
    def dextrose_10(weight_kg: float) -> Dose:
        return _clamped(weight_kg * DOSING_LIMITS.D10_PER_KG_ML, DOSING_LIMITS.D10_MAX_ML, "mL")

    @staticmethod
    def furosemide(weight_kg: float) -> Dose:
        return _clamped(weight_kg * DOSING_LIMITS.FUROSEMIDE_PER_KG_MG, DOSING_LIMITS.FUROSEMIDE_MAX_MG, "mg")

    @staticmethod
    def ceftriaxone(weight_kg: float, meningitic: bool = False) -> Dose:
        if meningitic:
            return _clamped(weight_kg * DOSING_LIMITS.CEFTRIAXONE_MENINGITIC_PER_KG_MG,
                            DOSING_LIMITS.CEFTRIAXONE_MENINGITIC_MAX_MG, "mg")
        return _clamped(weight_kg * DOSING_LIMITS.CEFTRIAXONE_SEPSIS_PER_KG_MG,
                        DOSING_LIMITS.CEFTRIAXONE_SEPSIS_MAX_MG, "mg")

    # --- DISABILITY ---

    @staticmethod
    def lorazepam(weight_kg: float) -> Dose:
        return _clamped(weight_kg * DOSING_LIMITS.LORAZEPAM_PER_KG_MG, DOSING_LIMITS.LORAZEPAM_MAX_MG, "mg")

    @staticmethod
    def diazepam(weight_kg: float) -> Dose:
        return _clamped(weight_kg * DOSING_LIMITS.DIAZEPAM_PER_KG_MG, DOSING_LIMITS.DIAZEPAM_MAX_MG, "mg")

    @staticmethod
    def midazolam(weight_kg: float) -> Dose:
        return _clamped(weight_kg * DOSING_LIMITS.MIDAZOLAM_PER_KG_MG, DOSING_LIMITS.MIDAZOLAM_MAX_MG, "mg")


class VitalSignRanges:
    """Age-banded normal ranges: <12 months, 12-59 months, >=60 months."""

    @staticmethod
    def _band(total_months: int) -> int:
        if total_months < AGE_CONSTANTS.INFANT_UPPER_MONTHS:
            return 0
        if total_months < AGE_CONSTANTS.PRESCHOOL_UPPER_MONTHS:
            return 1
        return 2

    @staticmethod
    def heart_rate(total_months: int) -> Tuple[int, int]:
        return VITAL_SIGN_BANDS.HEART_RATE[VitalSignRanges._band(total_months)]

    @staticmethod
    def respiratory_rate(total_months: int) -> Tuple[int, int]:
        return VITAL_SIGN_BANDS.RESPIRATORY_RATE[VitalSignRanges._band(total_months)]

    @staticmethod
    def systolic_floor(age_years: int) -> int:
        """Hypotension threshold (mmHg)."""
        if age_years < 1:
            return VITAL_SIGN_BANDS.INFANT_SYSTOLIC_FLOOR
        return min(VITAL_SIGN_BANDS.CHILD_SYSTOLIC_BASE + VITAL_SIGN_BANDS.CHILD_SYSTOLIC_PER_YEAR * age_years,
                   VITAL_SIGN_BANDS.SYSTOLIC_FLOOR_CEILING)
