import math
import unittest

from constants import DOSING_LIMITS, GlucoseUnit
from dosing import Dose, DoseCalculator, VitalSignRanges, estimate_weight
from models import DataTypeError, PatientContext


class TestWeightEstimation(unittest.TestCase):

    def test_01_band_boundaries(self):
        """[AGE] 11, 12, 59 and 60 months sit on different formulas"""
        print("\nTEST 1: Weight band boundaries")
        cases = {0: 4.5, 6: 7.5, 11: 10.0, 12: 10.0, 23: 10.0, 24: 12.0, 59: 16.0, 60: 20.0, 120: 40.0}
        for months, expected in cases.items():
            got = estimate_weight(months)
            print(f"  > {months:3d} months -> {got} kg")
            self.assertEqual(got, expected, f"Wrong estimate at {months} months")

    def test_02_negative_age_is_newborn(self):
        self.assertEqual(estimate_weight(-5), 4.5)

    def test_03_explicit_weight_wins(self):
        """[CONTEXT] A measured weight replaces the estimate"""
        print("\nTEST 3: Working weight resolution")
        estimated = PatientContext(age_years=0, age_months=11)
        measured = PatientContext(age_years=0, age_months=11, weight_kg=12.5)
        print(f"  > Estimated: {estimated.working_weight} kg | Measured: {measured.working_weight} kg")
        self.assertEqual(estimated.working_weight, 10.0)
        self.assertTrue(estimated.weight_is_estimated)
        self.assertEqual(measured.working_weight, 12.5)
        self.assertFalse(measured.weight_is_estimated)
        self.assertEqual(PatientContext(age_years=5).total_months, 60)

    def test_04_context_validation(self):
        """[GUARDRAILS] Bad patient input is rejected at construction"""
        print("\nTEST 4: PatientContext validation")
        with self.assertRaises(DataTypeError):
            PatientContext(age_years="2")
        with self.assertRaises(DataTypeError):
            PatientContext(age_years=True)
        with self.assertRaises(DataTypeError):
            PatientContext(weight_kg="12")
        with self.assertRaises(ValueError):
            PatientContext(age_months=12)
        with self.assertRaises(ValueError):
            PatientContext(age_years=19)
        with self.assertRaises(ValueError):
            PatientContext(weight_kg=-1.0)
        with self.assertRaises(ValueError):
            PatientContext(weight_kg=0.2)
        with self.assertRaises(ValueError):
            PatientContext(weight_kg=math.nan)
        self.assertEqual(PatientContext(glucose_unit="mg/dL").glucose_unit, GlucoseUnit.MG_DL)

    def test_05_estimate_never_drops_with_age(self):
        """[AGE] Weight estimate is non-decreasing from birth to 18 years"""
        print("\nTEST 5: Monotone weight estimate")
        for months in range(0, 216):
            younger, older = estimate_weight(months), estimate_weight(months + 1)
            self.assertLessEqual(younger, older, f"Estimate drops between {months} and {months + 1} months")
        print(f"  > 0 months: {estimate_weight(0)} kg | 216 months: {estimate_weight(216)} kg")


class TestDoseCalculator(unittest.TestCase):

    def test_01_arrest_doses_newborn(self):
        """[RESUS] 4.5 kg: epinephrine 0.045 mg, first shock 9 J"""
        print("\nTEST 1: Arrest doses at 4.5 kg")
        epi = DoseCalculator.epinephrine_iv(4.5)
        joules = DoseCalculator.defibrillation(4.5)
        print(f"  > Epi: {epi.format(3)} | Defib: {joules.format(0)}")
        self.assertEqual(epi.format(3), "0.045 mg")
        self.assertEqual(joules.format(0), "9 J")
        self.assertEqual(DoseCalculator.defibrillation(4.5, shock_number=2).value, 18)

    def test_02_croup_doses_capped(self):
        """[AIRWAY] 20 kg: dexamethasone 10 mg, nebulized epinephrine 5 mL"""
        print("\nTEST 2: Croup doses at 20 kg")
        dex = DoseCalculator.dexamethasone(20)
        neb = DoseCalculator.nebulized_epinephrine(20)
        print(f"  > Dex: {dex.format(1)} (capped={dex.capped}) | Neb epi: {neb.format(1)}")
        self.assertEqual(dex.format(1), "10 mg")
        self.assertTrue(dex.capped)
        self.assertEqual(neb.format(1), "5 mL")
        self.assertTrue(neb.capped)

    def test_03_shock_bolus(self):
        """[CIRCULATION] 8 kg: 80 mL bolus, 480 mL session ceiling"""
        print("\nTEST 3: Bolus at 8 kg")
        bolus = DoseCalculator.fluid_bolus(8)
        print(f"  > Bolus: {bolus.format(0)} | Ceiling: {DoseCalculator.fluid_ceiling(8)} mL")
        self.assertEqual(bolus.format(0), "80 mL")
        self.assertEqual(DoseCalculator.fluid_ceiling(8), 480)
        self.assertEqual(DoseCalculator.fluid_bolus(8, sepsis=True).value, 160)
        self.assertEqual(DoseCalculator.fluid_bolus(150, sepsis=True).value, DOSING_LIMITS.BOLUS_MAX_ML)

    def test_04_atropine_floor_and_age_cap(self):
        self.assertEqual(DoseCalculator.atropine(2).value, DOSING_LIMITS.ATROPINE_MIN_MG)
        self.assertEqual(DoseCalculator.atropine(40, age_years=8).value, DOSING_LIMITS.ATROPINE_CHILD_MAX_MG)
        self.assertAlmostEqual(DoseCalculator.atropine(40, age_years=14).value, 0.8)

    def test_05_salbutamol_split(self):
        self.assertEqual(DoseCalculator.salbutamol_neb(19.9).value, 2.5)
        self.assertEqual(DoseCalculator.salbutamol_neb(20).value, 5.0)

    def test_06_cardioversion_range(self):
        low, high = DoseCalculator.cardioversion(10)
        self.assertEqual((low.value, high.value), (5.0, 10.0))
        low, high = DoseCalculator.cardioversion(10, escalated=True)
        self.assertEqual((low.value, high.value), (20.0, 20.0))

    def test_07_format_strips_trailing_zeros(self):
        self.assertEqual(Dose(0.045, "mg").format(3), "0.045 mg")
        self.assertEqual(Dose(10.0, "mg").format(1), "10 mg")
        self.assertEqual(Dose(2.5, "mg").format(1), "2.5 mg")
        self.assertEqual(Dose(80.0, "mL").format(0), "80 mL")


class TestVitalSignRanges(unittest.TestCase):

    def test_01_heart_rate_bands(self):
        """[AGE] Bands switch at 12 and 60 months"""
        print("\nTEST 1: Heart rate bands")
        self.assertEqual(VitalSignRanges.heart_rate(11), (100, 180))
        self.assertEqual(VitalSignRanges.heart_rate(12), (80, 160))
        self.assertEqual(VitalSignRanges.heart_rate(59), (80, 160))
        self.assertEqual(VitalSignRanges.heart_rate(60), (60, 140))

    def test_02_respiratory_rate_bands(self):
        self.assertEqual(VitalSignRanges.respiratory_rate(11), (30, 60))
        self.assertEqual(VitalSignRanges.respiratory_rate(12), (20, 40))
        self.assertEqual(VitalSignRanges.respiratory_rate(60), (12, 30))

    def test_03_systolic_floor(self):
        self.assertEqual(VitalSignRanges.systolic_floor(0), 60)
        self.assertEqual(VitalSignRanges.systolic_floor(5), 80)
        self.assertEqual(VitalSignRanges.systolic_floor(15), 90)

if __name__ == '__main__':
    unittest.main()
