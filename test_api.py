import unittest
from unittest import mock

from fastapi.testclient import TestClient

from main import SESSIONS, app, serve


class TestAssessmentApi(unittest.TestCase):

    def setUp(self):
        self.client = TestClient(app)
        response = self.client.post("/sessions", json={"flow_variant": "abcde", "ack_delay_seconds": 0})
        self.assertEqual(response.status_code, 201)
        self.sid = response.json()["session_id"]

    def tearDown(self):
        SESSIONS.clear()

    def post(self, path, payload=None):
        return self.client.post(f"/sessions/{self.sid}{path}", json=payload)

    def answer(self, question_id, answer):
        return self.post("/answer", {"question_id": question_id, "answer": answer})

    def test_01_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "active")

    def test_02_round_trip(self):
        """[HTTP] Patient -> start -> answer -> state"""
        print("\nTEST 2: HTTP round trip")
        response = self.post("/patient", {"age_years": 0, "age_months": 10, "weight_kg": 8.0})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["state"]["patient"]["working_weight"], 8.0)

        state = self.post("/start").json()["state"]
        self.assertEqual(state["phase"], "signs_of_life")
        self.assertEqual(state["current_question"]["id"], "breathing")

        body = self.answer("breathing", True).json()
        print(f"  > Accepted: {body['accepted']} | Next: {body['state']['current_question']['id']}")
        self.assertTrue(body["accepted"])
        self.assertIsNone(body["action"])
        self.assertEqual(body["state"]["current_question"]["id"], "pulse")

        body = self.answer("pulse", "absent").json()
        self.assertEqual(body["action"]["id"], "start-cpr")
        self.assertTrue(body["state"]["emergency_activated"])
        self.assertEqual(body["interventions"][0]["type"], "cpr")

        state = self.client.get(f"/sessions/{self.sid}").json()["state"]
        self.assertEqual(len(state["findings"]), 2)

    def test_03_error_mapping(self):
        """[HTTP] 422 invalid answer, 409 locked patient, 404 unknown session"""
        print("\nTEST 3: Error mapping")
        self.post("/start")
        self.assertEqual(self.answer("breathing", "perhaps").status_code, 422)
        self.assertEqual(self.post("/patient", {"age_years": 3}).status_code, 409)
        self.assertEqual(self.client.post("/sessions/nope/start").status_code, 404)
        self.assertEqual(self.client.get("/sessions/nope/handover").status_code, 404)
        # Schema guardrail
        self.assertEqual(self.client.post("/sessions/nope/patient", json={"age_months": 14}).status_code, 422)

    def test_04_stale_answer_not_accepted(self):
        self.post("/start")
        body = self.answer("glucose", 2.0).json()
        self.assertFalse(body["accepted"])

    def test_05_skip_and_back(self):
        self.post("/start")
        self.assertFalse(self.post("/skip").json()["ok"])
        for qid, value in [("breathing", True), ("pulse", "present_strong"), ("responsiveness", "alert")]:
            self.answer(qid, value)
        body = self.post("/skip").json()
        self.assertTrue(body["ok"])
        self.assertEqual(body["state"]["current_question"]["id"], "airway_sounds")
        body = self.post("/back").json()
        self.assertTrue(body["ok"])
        self.assertEqual(body["state"]["current_question"]["id"], "airway_patency")

    def test_06_scenario(self):
        body = self.post("/scenario", {"name": "cardiac_arrest"}).json()
        self.assertTrue(body["ok"])
        self.assertEqual(body["result"]["weight_kg"], 4.5)
        self.assertIn("0.045 mg", body["state"]["pending_action"]["instruction"])
        self.assertTrue(body["state"]["cpr_active"])

    def test_07_bolus_through_module(self):
        """[HTTP] Complete -> reassessment module -> callback finalizes the bolus"""
        print("\nTEST 7: Bolus via HTTP")
        self.post("/scenario", {"name": "septic_shock"})
        state = self.client.get(f"/sessions/{self.sid}").json()["state"]
        bolus_id = state["interventions"][0]["id"]

        body = self.post(f"/interventions/{bolus_id}/complete").json()
        self.assertEqual(body["result"]["module"], "fluid_bolus")
        self.assertEqual(body["state"]["interventions"][0]["status"], "active")
        self.assertEqual(body["state"]["open_module"]["intervention_id"], bolus_id)

        body = self.post("/modules/fluid_bolus/callback", {"outcome": "resolved"}).json()
        self.assertEqual(body["state"]["interventions"][0]["status"], "completed")
        self.assertIsNone(body["state"]["open_module"])

    def test_08_escalate_and_cancel(self):
        self.post("/patient", {"age_years": 2, "weight_kg": 12.0})
        self.post("/start")
        for qid, value in [("breathing", True), ("pulse", "present_strong"), ("responsiveness", "alert")]:
            self.answer(qid, value)
        for qid in ["airway_patency", "airway_sounds",
                    "breathing_effort", "spo2", "respiratory_rate", "breath_sounds", "jvp",
                    "hepatomegaly", "heart_sounds", "pulmonary_crackles", "heart_rate",
                    "rhythm_regularity"]:
            current = self.client.get(f"/sessions/{self.sid}").json()["state"]["current_question"]
            self.assertEqual(current["id"], qid)
            self.post("/skip")
        iv_id = self.answer("perfusion", "poor").json()["interventions"][0]["id"]
        body = self.post(f"/interventions/{iv_id}/escalate", {"reason": "No veins"}).json()
        self.assertEqual(body["result"]["type"], "io_access")
        io_id = body["result"]["id"]
        body = self.post(f"/interventions/{io_id}/cancel").json()
        self.assertTrue(body["ok"])
        self.assertFalse(self.post("/interventions/missing/cancel").json()["ok"])

    def test_09_handover_and_new_case(self):
        self.post("/scenario", {"name": "anaphylaxis"})
        summary = self.client.get(f"/sessions/{self.sid}/handover").json()["handover"]
        self.assertEqual(summary["criticality"], "critical")
        text = self.client.get(f"/sessions/{self.sid}/handover", params={"text": "true"}).json()["text"]
        self.assertIn("S - SITUATION", text)

        self.post("/help")
        state = self.post("/new-case").json()["state"]
        self.assertEqual(state["phase"], "setup")
        self.assertFalse(state["emergency_activated"])

    def test_10_serve_runs_uvicorn(self):
        with mock.patch("uvicorn.run") as run:
            serve(port=8123)
        run.assert_called_once_with(app, host="0.0.0.0", port=8123, log_level="info")

if __name__ == '__main__':
    unittest.main()
