import unittest

from constants import ActionSeverity, AlertKind, AnswerKind, ModuleName, Phase, SafetyFlag, TemplateKey
from models import PatientContext, Question, SessionState
from questions import ABCDE_GRAPH
from safety import REWRITTEN_ACTION_ID, AlertSink, SafetyGate


class RecordingSink(AlertSink):
    def __init__(self):
        self.alerts = []
        self.compression_timers = 0

    def alert(self, kind, action=None):
        self.alerts.append((kind, action.id if action else None))

    def start_compression_timer(self):
        self.compression_timers += 1


class BrokenSink(AlertSink):
    def alert(self, kind, action=None):
        raise RuntimeError("speaker unplugged")


class TestSafetyGate(unittest.TestCase):

    def setUp(self):
        self.sink = RecordingSink()
        self.gate = SafetyGate(self.sink)
        self.session = SessionState()
        self.patient = PatientContext(age_years=1, weight_kg=8.0)
        self.weight = self.patient.working_weight

    def answer(self, question_id, value):
        question = ABCDE_GRAPH.get(question_id)
        return self.gate.evaluate(question, value, self.patient, self.weight, self.session)

    def test_01_shock_without_flags_gives_fluid(self):
        """[CIRCULATION] Shock with no contraindication recommends the bolus"""
        print("\nTEST 1: Unflagged shock")
        decision = self.answer("perfusion", "shock")
        print(f"  > Surfaced: {decision.surfaced.id} | Dose: {decision.surfaced.dose}")
        self.assertEqual(decision.surfaced.id, "shock-treatment")
        self.assertEqual(decision.surfaced.template, TemplateKey.FLUID_BOLUS)
        self.assertEqual(decision.surfaced.dose, "80 mL")
        self.assertFalse(decision.rewritten)
        self.assertTrue(self.session.emergency_activated)
        self.assertIn((AlertKind.CRITICAL_ACTION, "shock-treatment"), self.sink.alerts)

    def test_02_heart_failure_flag_rewrites_fluid(self):
        """[SAFETY] Elevated JVP blocks every later fluid recommendation"""
        print("\nTEST 2: Heart-failure rewrite")
        decision = self.answer("jvp", "elevated")
        self.assertEqual(decision.raised_flags, (SafetyFlag.HEART_FAILURE_SIGNS,))
        self.assertTrue(self.session.has_flag(SafetyFlag.HEART_FAILURE_SIGNS))

        decision = self.answer("perfusion", "shock")
        action = decision.surfaced
        print(f"  > Candidate: {decision.candidate.id} -> Surfaced: {action.id} ({action.title})")
        self.assertTrue(decision.rewritten)
        self.assertEqual(action.id, REWRITTEN_ACTION_ID)
        self.assertEqual(action.severity, ActionSeverity.CRITICAL)
        self.assertIsNone(action.template)
        self.assertIsNone(action.dose)
        self.assertEqual(action.module, ModuleName.INOTROPE)
        self.assertIn("DO NOT GIVE FLUID BOLUS", action.instruction)

    def test_03_flag_persists_across_later_findings(self):
        """[SAFETY] The rewrite holds no matter how many answers follow"""
        print("\nTEST 3: Flag persistence")
        self.answer("hepatomegaly", "mild")
        for _ in range(20):
            self.answer("cap_refill", "less_2")
            self.answer("heart_rate", 120)
            self.answer("skin_temp", "warm_throughout")
        decision = self.answer("perfusion", "shock")
        self.assertEqual(decision.surfaced.id, REWRITTEN_ACTION_ID)
        self.assertEqual(self.session.flags, {SafetyFlag.HEART_FAILURE_SIGNS})

    def test_04_svt_rule_wins(self):
        """[SAFETY] SVT is treated first when both flags are set"""
        print("\nTEST 4: Rewrite priority")
        self.answer("jvp", "elevated")
        decision = self.answer("heart_rate", 240)
        self.assertEqual(decision.surfaced.id, "svt")
        self.assertEqual(decision.raised_flags, (SafetyFlag.SVT_SUSPECTED,))

        action = self.answer("perfusion", "shock").surfaced
        print(f"  > {action.title}")
        self.assertEqual(action.module, ModuleName.ARRHYTHMIA)
        self.assertIn("0.8 mg", action.instruction)   # adenosine 0.1 mg/kg at 8 kg
        self.assertIn("8 J", action.instruction)      # cardioversion 1 J/kg

    def test_05_flags_are_write_once(self):
        self.assertEqual(self.answer("jvp", "elevated").raised_flags, (SafetyFlag.HEART_FAILURE_SIGNS,))
        self.assertEqual(self.answer("hepatomegaly", "severe").raised_flags, ())
        self.assertEqual(len(self.session.flags), 1)

    def test_06_fails_closed_without_rewrite_rule(self):
        """[SAFETY] A flagged fluid action with no rewrite rule is dropped"""
        gate = SafetyGate(self.sink, rewrite_rules=())
        self.session.raise_flag(SafetyFlag.FLUID_OVERLOAD)
        decision = gate.evaluate(ABCDE_GRAPH.get("perfusion"), "shock", self.patient, self.weight, self.session)
        self.assertIsNone(decision.surfaced)
        self.assertTrue(decision.suppressed)
        self.assertFalse(self.session.emergency_activated)

    def test_07_overload_flag_rewrites(self):
        self.session.raise_flag(SafetyFlag.FLUID_OVERLOAD)
        action = self.answer("perfusion", "shock").surfaced
        self.assertEqual(action.id, REWRITTEN_ACTION_ID)
        self.assertIn("FLUID OVERLOAD", action.title)

    def test_08_non_fluid_actions_pass_through(self):
        self.session.raise_flag(SafetyFlag.HEART_FAILURE_SIGNS)
        decision = self.answer("perfusion", "poor")
        self.assertEqual(decision.surfaced.id, "poor-perfusion")
        self.assertEqual(decision.surfaced.template, TemplateKey.IV_ACCESS)
        self.assertIn((AlertKind.TIMER_WARNING, "poor-perfusion"), self.sink.alerts)

    def test_09_skip_never_triggers(self):
        self.assertIsNone(SafetyGate.run_trigger(ABCDE_GRAPH.get("pulse"), None, self.patient, self.weight))
        self.assertIsNone(self.answer("pulse", None).surfaced)
        self.assertFalse(self.session.cpr_active)

    def test_10_failing_trigger_is_no_action(self):
        broken = Question("broken", Phase.EXPOSURE, "Broken?", AnswerKind.BOOLEAN,
                          trigger=lambda answer, patient, weight: 1 / 0)
        decision = self.gate.evaluate(broken, True, self.patient, self.weight, self.session)
        self.assertIsNone(decision.candidate)
        self.assertIsNone(decision.surfaced)

    def test_11_cpr_starts_compression_clock_once(self):
        """[RESUS] Pulseless: CPR clock starts and the session is in emergency"""
        print("\nTEST 11: CPR side effects")
        decision = self.answer("pulse", "absent")
        self.assertEqual(decision.surfaced.id, "start-cpr")
        self.assertTrue(self.session.cpr_active)
        self.assertEqual(self.sink.compression_timers, 1)
        self.answer("pulse", "absent")
        self.assertEqual(self.sink.compression_timers, 1)

    def test_12_broken_sink_never_blocks(self):
        gate = SafetyGate(BrokenSink())
        decision = gate.evaluate(ABCDE_GRAPH.get("pulse"), "absent", self.patient, self.weight, self.session)
        self.assertEqual(decision.surfaced.id, "start-cpr")
        self.assertTrue(self.session.emergency_activated)
        self.assertTrue(self.session.cpr_active)

if __name__ == '__main__':
    unittest.main()
