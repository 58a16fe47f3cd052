import json
import unittest
from datetime import timedelta

from constants import (
    CancellationPolicy,
    FindingSeverity,
    FlowVariant,
    GlucoseUnit,
    InterventionStatus,
    InterventionType,
    ModuleName,
    Phase,
    SafetyFlag,
)
from engine import AssessmentEngine
from handover import format_handover_text
from models import EngineConfig, InvalidAnswerError, PatientContextLockedError
from safety import AlertSink

# Unremarkable answers for every ABCDE question (2-year-old, 12 kg)
NORMAL_ANSWERS = {
    "breathing": True,
    "pulse": "present_strong",
    "responsiveness": "alert",
    "airway_patency": "patent",
    "airway_sounds": ["none"],
    "breathing_effort": "normal",
    "spo2": 98,
    "respiratory_rate": 30,
    "breath_sounds": ["clear"],
    "jvp": "not_visible",
    "hepatomegaly": "normal",
    "heart_sounds": ["normal"],
    "pulmonary_crackles": "none",
    "heart_rate": 110,
    "rhythm_regularity": "regular",
    "perfusion": "normal",
    "cap_refill": "less_2",
    "pulse_quality": "both_strong",
    "skin_temp": "warm_throughout",
    "blood_pressure": 95,
    "glucose": 5.5,
    "pupils": "normal",
    "seizure": "none",
    "temperature": 37.0,
    "rash": "none",
}


class RecordingSink(AlertSink):
    def __init__(self):
        self.alerts = []

    def alert(self, kind, action=None):
        self.alerts.append(kind)


class TestAssessmentEngine(unittest.TestCase):

    def setUp(self):
        """A 2-year-old weighing 12 kg on the ABCDE flow."""
        self.sink = RecordingSink()
        self.engine = AssessmentEngine(alert_sink=self.sink)
        self.engine.update_patient(age_years=2, weight_kg=12.0)

    def walk_to(self, question_id, overrides=None):
        """Answer normally until the cursor sits on question_id."""
        overrides = overrides or {}
        if self.engine.phase == Phase.SETUP:
            self.engine.start_assessment()
        while self.engine.current_question.id != question_id:
            qid = self.engine.current_question.id
            result = self.engine.submit_answer(qid, overrides.get(qid, NORMAL_ANSWERS[qid]))
            self.assertTrue(result.accepted, f"Answer to {qid} rejected")

    def test_01_full_normal_walkthrough(self):
        """[FLOW] Every question answered normally: complete, no actions"""
        print("\nTEST 1: Normal walkthrough")
        self.engine.start_assessment()
        last = self.engine.progress
        while self.engine.phase != Phase.COMPLETE:
            qid = self.engine.current_question.id
            self.engine.submit_answer(qid, NORMAL_ANSWERS[qid])
            self.assertGreaterEqual(self.engine.progress, last)
            last = self.engine.progress
        print(f"  > Findings: {len(self.engine.findings)} | Progress: {self.engine.progress}")
        self.assertEqual(len(self.engine.findings), 25)
        self.assertEqual(self.engine.progress, 1.0)
        self.assertIsNone(self.engine.pending_action)
        self.assertEqual(self.engine.active_interventions, [])
        self.assertFalse(self.engine.emergency_activated)
        self.assertEqual([f.sequence for f in self.engine.findings], list(range(1, 26)))

    def test_02_patient_locked_after_start(self):
        self.engine.start_assessment()
        with self.assertRaises(PatientContextLockedError):
            self.engine.update_patient(weight_kg=14.0)
        self.assertEqual(self.engine.weight, 12.0)

    def test_03_invalid_answer_records_nothing(self):
        """[GUARDRAILS] Wrong answer type never reaches a trigger"""
        print("\nTEST 3: Invalid answers")
        self.engine.start_assessment()
        with self.assertRaises(InvalidAnswerError):
            self.engine.submit_answer("breathing", "maybe")
        self.walk_to("spo2")
        with self.assertRaises(InvalidAnswerError):
            self.engine.submit_answer("spo2", 140)
        with self.assertRaises(InvalidAnswerError):
            self.engine.submit_answer("spo2", float("nan"))
        self.walk_to("breath_sounds")
        with self.assertRaises(InvalidAnswerError):
            self.engine.submit_answer("breath_sounds", ["clear", "rales"])
        self.assertEqual(self.engine.current_question.id, "breath_sounds")
        self.assertEqual(len(self.engine.findings), 8)

    def test_04_stale_answer_ignored(self):
        self.engine.start_assessment()
        result = self.engine.submit_answer("pulse", "absent")
        self.assertFalse(result.accepted)
        self.assertEqual(self.engine.findings, [])
        self.assertFalse(self.engine.emergency_activated)

    def test_05_skip_locked_in_signs_of_life(self):
        """[SAFETY] Triage questions cannot be skipped"""
        print("\nTEST 5: Skip lock")
        self.engine.start_assessment()
        self.assertFalse(self.engine.skip())
        self.assertFalse(self.engine.submit_answer("breathing", None).accepted)
        self.assertEqual(self.engine.findings, [])

    def test_06_skip_records_normal_finding_only(self):
        """[FLOW] A skipped question adds a finding, never an action"""
        self.walk_to("perfusion")
        self.assertTrue(self.engine.skip())
        finding = self.engine.findings[-1]
        self.assertEqual(finding.question_id, "perfusion")
        self.assertIsNone(finding.answer)
        self.assertEqual(finding.severity, FindingSeverity.NORMAL)
        self.assertEqual(finding.triggered_interventions, ())
        self.assertEqual(self.engine.active_interventions, [])
        self.assertFalse(self.engine.session.flags)
        self.assertEqual(self.engine.current_question.id, "cap_refill")

    def test_07_skip_allowed_when_lock_disabled(self):
        engine = AssessmentEngine(EngineConfig(lock_skip_in_critical_phases=False))
        engine.start_assessment()
        self.assertTrue(engine.skip())
        self.assertEqual(engine.current_question.id, "pulse")

    def test_08_heart_failure_then_shock(self):
        """[SAFETY] JVP flag rewrites the shock action and creates no bolus"""
        print("\nTEST 8: Heart failure blocks fluid")
        self.walk_to("perfusion", {"jvp": "very_elevated"})
        self.assertIn(SafetyFlag.HEART_FAILURE_SIGNS, self.engine.session.flags)
        result = self.engine.submit_answer("perfusion", "shock")
        print(f"  > Action: {result.action.title}")
        self.assertEqual(result.action.id, "shock-no-fluid")
        self.assertEqual(result.interventions, [])
        self.assertEqual(result.finding.action_id, "shock-no-fluid")
        self.assertEqual(result.finding.severity, FindingSeverity.CRITICAL)
        self.assertFalse(any(i.type == InterventionType.FLUID_BOLUS for i in self.engine.session.interventions))

    def test_09_shock_creates_bolus_tracked_by_module(self):
        """[CIRCULATION] Bolus completes only via the reassessment module"""
        print("\nTEST 9: Bolus lifecycle")
        self.walk_to("perfusion")
        result = self.engine.submit_answer("perfusion", "shock")
        bolus = result.interventions[0]
        self.assertEqual(result.finding.triggered_interventions, (bolus.id,))
        self.assertEqual(bolus.volume_ml, 120)
        self.assertEqual(bolus.max_volume_ml, 720)
        self.assertEqual(self.engine.current_question.id, "cap_refill")

        request = self.engine.complete_intervention(bolus.id)
        self.assertEqual(request.module, ModuleName.FLUID_BOLUS)
        self.assertIs(self.engine.open_module_request, request)
        self.assertEqual(bolus.status, InterventionStatus.ACTIVE)

        follow_up = self.engine.module_callback("fluid_bolus", "overload")
        print(f"  > Follow-up module: {follow_up.module.value}")
        self.assertEqual(bolus.status, InterventionStatus.COMPLETED)
        self.assertEqual(follow_up.module, ModuleName.INOTROPE)
        self.assertIn(SafetyFlag.FLUID_OVERLOAD, self.engine.session.flags)

    def test_10_back_keeps_findings(self):
        """[FLOW] Back moves the pointer only"""
        self.walk_to("airway_sounds")
        count = len(self.engine.findings)
        self.assertTrue(self.engine.go_back())
        self.assertEqual(self.engine.current_question.id, "airway_patency")
        self.assertEqual(len(self.engine.findings), count)
        # Re-answer appends rather than replaces
        self.engine.submit_answer("airway_patency", "partial")
        self.assertEqual(len(self.engine.findings), count + 1)

    def test_11_pending_advance_with_delay(self):
        """[CONCURRENCY] With an ack delay the host applies the advance"""
        print("\nTEST 11: Pending advance")
        engine = AssessmentEngine(EngineConfig(ack_delay_seconds=0.3))
        engine.start_assessment()
        self.assertTrue(engine.submit_answer("breathing", True).accepted)
        self.assertTrue(engine.pending_advance)
        self.assertEqual(engine.current_question.id, "breathing")
        # Double tap while pending is ignored
        self.assertFalse(engine.submit_answer("breathing", False).accepted)
        self.assertEqual(len(engine.findings), 1)
        self.assertTrue(engine.apply_pending_advance())
        self.assertEqual(engine.current_question.id, "pulse")
        self.assertFalse(engine.apply_pending_advance())

    def test_12_glucose_in_mg_dl(self):
        """[UNITS] 45 mg/dL is converted to 2.5 mmol/L and triggers dextrose"""
        engine = AssessmentEngine()
        engine.update_patient(age_years=2, weight_kg=12.0, glucose_unit="mg/dL")
        self.engine = engine
        self.walk_to("glucose")
        view = engine.snapshot()["current_question"]
        self.assertEqual(view["answer_unit"], GlucoseUnit.MG_DL.value)
        self.assertEqual((view["min"], view["max"]), (0, 900))
        result = engine.submit_answer("glucose", 45)
        self.assertEqual(result.action.id, "hypoglycemia")
        self.assertEqual(result.action.dose, "D10% 24 mL")
        self.assertEqual(result.finding.answer, 45)

    def test_13_cancel_policy_from_config(self):
        engine = AssessmentEngine(EngineConfig(cancellation_policy=CancellationPolicy.RETAIN))
        engine.update_patient(age_years=2, weight_kg=12.0)
        self.engine = engine
        self.walk_to("perfusion")
        iv = engine.submit_answer("perfusion", "poor").interventions[0]
        self.assertTrue(engine.cancel_intervention(iv.id))
        self.assertEqual(iv.status, InterventionStatus.CANCELLED)
        self.assertIn(iv, engine.session.interventions)

    def test_14_escalate_iv_through_engine(self):
        self.walk_to("perfusion")
        iv = self.engine.submit_answer("perfusion", "poor").interventions[0]
        io = self.engine.escalate_intervention(iv.id, "No veins")
        self.assertEqual(io.type, InterventionType.IO_ACCESS)
        self.assertEqual([i.id for i in self.engine.active_interventions], [io.id])

    def test_15_timers_alert(self):
        self.walk_to("perfusion")
        iv = self.engine.submit_answer("perfusion", "poor").interventions[0]
        due = self.engine.check_timers(iv.start_time + timedelta(seconds=91))
        self.assertEqual(due, [iv])

    def test_16_new_case_clears_everything(self):
        """[LIFECYCLE] New case wipes flags, findings and the patient"""
        self.walk_to("perfusion", {"jvp": "elevated"})
        self.engine.call_for_help()
        self.engine.new_case()
        self.assertEqual(self.engine.phase, Phase.SETUP)
        self.assertEqual(self.engine.findings, [])
        self.assertFalse(self.engine.session.flags)
        self.assertFalse(self.engine.emergency_activated)
        self.assertEqual(self.engine.weight, 4.5)
        self.engine.update_patient(age_years=3)
        self.assertEqual(self.engine.weight, 14.0)

    def test_17_dismiss_and_help(self):
        self.engine.start_assessment()
        self.engine.submit_answer("breathing", False)
        self.assertEqual(self.engine.pending_action.id, "start-bvm")
        self.engine.dismiss_action()
        self.assertIsNone(self.engine.pending_action)
        self.assertEqual(len(self.engine.active_interventions), 1)

    def test_18_snapshot_is_json(self):
        self.walk_to("perfusion", {"jvp": "elevated"})
        self.engine.submit_answer("perfusion", "shock")
        snapshot = self.engine.snapshot()
        text = json.dumps(snapshot)
        self.assertIn("shock-no-fluid", text)
        self.assertEqual(snapshot["flags"], ["heart_failure_signs"])
        self.assertEqual(snapshot["patient"]["working_weight"], 12.0)

    def test_19_handover(self):
        """[HANDOVER] SBAR summary reflects the session"""
        print("\nTEST 19: Handover")
        self.walk_to("perfusion", {"jvp": "elevated"})
        self.engine.submit_answer("perfusion", "poor")
        summary = self.engine.handover()
        text = format_handover_text(summary)
        print(text)
        self.assertEqual(summary["criticality"], "critical")
        self.assertEqual(summary["situation"]["patient"], "2 y 0 m, 12 kg")
        self.assertIn("heart_failure_signs", summary["assessment"]["safety_flags"])
        self.assertIn("circulation", summary["assessment"]["findings_by_phase"])
        self.assertTrue(text.startswith("HANDOVER [CRITICAL]"))
        self.assertIn("R - RECOMMENDATION", text)

    def test_20_branching_flow(self):
        """[FLOW] Main problem chooses the pathway"""
        engine = AssessmentEngine(EngineConfig(flow_variant=FlowVariant.BRANCHING))
        engine.update_patient(age_years=5)
        engine.start_assessment()
        engine.submit_answer("breathing", True)
        engine.submit_answer("pulse", True)
        engine.submit_answer("responsiveness", "alert")
        engine.submit_answer("main_problem", "breathing")
        self.assertEqual(engine.phase, Phase.BREATHING_PATHWAY)
        result = engine.submit_answer("breathing_signs", ["stridor"])
        self.assertIn("10 mg", result.action.dose)
        self.assertIn("5 mL", result.action.dose)
        engine.submit_answer("spo2", 85)
        self.assertEqual(engine.phase, Phase.COMPLETE)
        self.assertEqual(engine.pending_action.id, "severe-hypoxia")

    def test_21_glucose_bounds_follow_provider_unit(self):
        """[UNITS] A mmol/L provider sees mmol/L limits on a mg/dL question"""
        print("\nTEST 21: Glucose bounds in the provider's unit")
        engine = AssessmentEngine(EngineConfig(flow_variant=FlowVariant.BRANCHING))
        engine.update_patient(age_years=2, weight_kg=12.0)
        engine.start_scenario("status_epilepticus")
        engine.submit_answer("seizure_activity", "active_now")
        view = engine.snapshot()["current_question"]
        print(f"  > {view['id']}: {view['min']}-{view['max']} {view['unit']}")
        self.assertEqual(view["id"], "glucose_level")
        self.assertEqual(view["unit"], GlucoseUnit.MMOL_L.value)
        self.assertEqual(view["answer_unit"], GlucoseUnit.MMOL_L.value)
        self.assertEqual((view["min"], view["max"]), (1.2, 33.3))
        # The displayed limits are themselves accepted
        self.assertTrue(engine.submit_answer("glucose_level", 33.3).accepted)

if __name__ == '__main__':
    unittest.main()
