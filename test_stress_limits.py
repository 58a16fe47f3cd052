import unittest

from constants import DOSING_LIMITS, FlowVariant
from dosing import DoseCalculator
from engine import AssessmentEngine
from models import EngineConfig, PatientContext
from protocols import SCENARIO_NAMES, ScenarioLauncher

# 0.5 kg premature neonate up to an adult-sized adolescent
WEIGHTS = [0.5, 1.0, 2.3, 4.5, 8.0, 10.0, 19.9, 20.0, 33.3, 50.0, 75.0, 100.0, 150.0]


class TestStressLimits(unittest.TestCase):

    def test_01_no_dose_exceeds_its_cap(self):
        """
        SCENARIO: Every calculator at every weight on the grid.
        FAILURE MODE: a large adolescent receives more than the published maximum.
        """
        print("\nSTRESS TEST 1: Hard caps across the weight range")
        caps = [
            (DoseCalculator.epinephrine_im, DOSING_LIMITS.EPI_IM_MAX_MG),
            (DoseCalculator.epinephrine_iv, DOSING_LIMITS.EPI_IV_MAX_MG),
            (DoseCalculator.dexamethasone, DOSING_LIMITS.DEXAMETHASONE_MAX_MG),
            (DoseCalculator.nebulized_epinephrine, DOSING_LIMITS.NEB_EPI_MAX_ML),
            (DoseCalculator.adenosine, DOSING_LIMITS.ADENOSINE_FIRST_MAX_MG),
            (lambda w: DoseCalculator.adenosine(w, second_dose=True), DOSING_LIMITS.ADENOSINE_SECOND_MAX_MG),
            (DoseCalculator.amiodarone, DOSING_LIMITS.AMIODARONE_MAX_MG),
            (DoseCalculator.fluid_bolus, DOSING_LIMITS.BOLUS_MAX_ML),
            (lambda w: DoseCalculator.fluid_bolus(w, sepsis=True), DOSING_LIMITS.BOLUS_MAX_ML),
            (DoseCalculator.dextrose_10, DOSING_LIMITS.D10_MAX_ML),
            (DoseCalculator.furosemide, DOSING_LIMITS.FUROSEMIDE_MAX_MG),
            (DoseCalculator.ceftriaxone, DOSING_LIMITS.CEFTRIAXONE_SEPSIS_MAX_MG),
            (lambda w: DoseCalculator.ceftriaxone(w, meningitic=True), DOSING_LIMITS.CEFTRIAXONE_MENINGITIC_MAX_MG),
            (DoseCalculator.lorazepam, DOSING_LIMITS.LORAZEPAM_MAX_MG),
            (DoseCalculator.diazepam, DOSING_LIMITS.DIAZEPAM_MAX_MG),
            (DoseCalculator.midazolam, DOSING_LIMITS.MIDAZOLAM_MAX_MG),
            (DoseCalculator.prednisolone, DOSING_LIMITS.PREDNISOLONE_MAX_MG),
            (DoseCalculator.salbutamol_neb, DOSING_LIMITS.SALBUTAMOL_HIGH_MG),
            (DoseCalculator.defibrillation, DOSING_LIMITS.MAX_ENERGY_J),
            (lambda w: DoseCalculator.defibrillation(w, shock_number=3), DOSING_LIMITS.MAX_ENERGY_J),
            (lambda w: DoseCalculator.atropine(w, age_years=17), DOSING_LIMITS.ATROPINE_ADOLESCENT_MAX_MG),
            (lambda w: DoseCalculator.cardioversion(w, escalated=True)[1], DOSING_LIMITS.MAX_ENERGY_J),
        ]
        for calc, cap in caps:
            for weight in WEIGHTS:
                dose = calc(weight)
                self.assertLessEqual(dose.value, cap, f"{dose.value} over cap {cap} at {weight} kg")
                self.assertGreaterEqual(dose.value, 0)
        print(f"  > {len(caps)} calculators x {len(WEIGHTS)} weights within caps")

    def test_02_caps_hold_through_scenarios(self):
        """
        SCENARIO: Quick-launch at extreme weights.
        FAILURE MODE: the preset text carries an uncapped dose.
        """
        print("\nSTRESS TEST 2: Scenario presets at 150 kg")
        plan = ScenarioLauncher.plan("anaphylaxis", 150.0, 4.5)
        print(f"  > Anaphylaxis dose: {plan.action.dose}")
        self.assertEqual(plan.action.dose, "Epinephrine 0.50 mg IM")
        plan = ScenarioLauncher.plan("cardiac_arrest", 150.0, 4.5)
        self.assertIn("1.000 mg", plan.action.dose)
        self.assertIn("200 J", plan.action.dose)
        plan = ScenarioLauncher.plan("septic_shock", 150.0, 4.5)
        self.assertIn("1000 mL", plan.action.dose)
        self.assertIn("2000 mg", plan.action.dose)

    def test_03_every_scenario_at_every_weight(self):
        """Every preset builds, in both flows, across the grid."""
        print("\nSTRESS TEST 3: All presets x all weights x both flows")
        for variant in FlowVariant:
            for name in SCENARIO_NAMES:
                for weight in WEIGHTS:
                    plan = ScenarioLauncher.plan(name, weight, 4.5)
                    self.assertEqual(plan.weight_kg, weight)
                    target = plan.target_for(variant)
                    self.assertIsNotNone(target.question_id)

    def test_04_unmeasured_weight_uses_estimate_for_oldest_child(self):
        """
        SCENARIO: 18-year-old with no weight entered.
        FAILURE MODE: the estimate (72 kg) leaks an uncapped epinephrine dose.
        """
        print("\nSTRESS TEST 4: Estimated weight at the top of the age range")
        engine = AssessmentEngine(EngineConfig(flow_variant=FlowVariant.BRANCHING))
        engine.update_patient(age_years=18)
        self.assertEqual(engine.weight, 72.0)
        engine.start_assessment()
        engine.submit_answer("breathing", True)
        result = engine.submit_answer("pulse", False)
        print(f"  > CPR dose text: {result.action.dose}")
        self.assertIn("0.72 mg", result.action.dose)
        self.assertIn("144 J", result.action.dose)

    def test_05_patient_context_extremes(self):
        self.assertEqual(PatientContext(weight_kg=0.5).working_weight, 0.5)
        self.assertEqual(PatientContext(weight_kg=150.0).working_weight, 150.0)
        with self.assertRaises(ValueError):
            PatientContext(weight_kg=150.1)

if __name__ == '__main__':
    unittest.main()
