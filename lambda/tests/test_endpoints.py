"""API tests against an in-memory store and a fake oracle."""

import unittest

from fastapi.testclient import TestClient

from campus_safety.app import create_app
from campus_safety.constants import CAMPUS_LOCATIONS
from campus_safety.errors import TerminalOracleError
from campus_safety.models import IncidentAnalysis, SafetyStatus

from fakes import FakeOracle, make_store


class ApiTestCase(unittest.TestCase):

    def setUp(self):
        self.oracle = FakeOracle()
        self.store = make_store()
        self.app = create_app(store=self.store, oracle=self.oracle)
        # Fail fast instead of backing off in tests
        self.app.state.analysis.retries = 0
        self.app.state.draft_flow.retries = 0
        self.client = TestClient(self.app)

    def incidents(self):
        return self.client.get("/v1/incidents").json()


class TestIncidentEndpoints(ApiTestCase):

    def test_health(self):
        self.assertEqual(self.client.get("/health").json(), {"status": "ok"})

    def test_list_seeds_campus_landmarks(self):
        response = self.client.get("/v1/incidents")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(len(body), len(CAMPUS_LOCATIONS))
        self.assertIn("locationName", body[0])
        self.assertEqual(body[0]["status"], "confirmed")

    def test_create_incident_generates_id(self):
        response = self.client.post("/v1/create_incident", json={
            "type": "Theft Reported",
            "description": "Bike stolen",
            "location": [29.7176, -95.3444],
            "locationName": "Student Center South",
            "severity": "MEDIUM",
        })
        self.assertEqual(response.status_code, 201)
        created = response.json()
        self.assertTrue(created["id"])
        self.assertEqual(created["status"], "pending")
        self.assertEqual(self.incidents()[0]["id"], created["id"])

    def test_update_status_and_unknown_id(self):
        target = self.incidents()[0]["id"]
        response = self.client.put("/v1/update-status", json={"incidentId": target, "status": "resolved"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.incidents()[0]["status"], "resolved")

        response = self.client.put("/v1/update-status", json={"incidentId": "nope", "status": "resolved"})
        self.assertEqual(response.status_code, 200)

    def test_update_status_rejects_unknown_status(self):
        response = self.client.put("/v1/update-status", json={"incidentId": "seed-0", "status": "archived"})
        self.assertEqual(response.status_code, 422)

    def test_delete(self):
        self.assertEqual(self.client.delete("/v1/incidents/seed-0").status_code, 200)
        self.assertNotIn("seed-0", [i["id"] for i in self.incidents()])
        self.assertEqual(self.client.delete("/v1/incidents/seed-0").status_code, 200)

    def test_hours_window(self):
        self.client.post("/v1/create_incident", json={
            "id": "ancient",
            "timestamp": "2020-01-01T00:00:00Z",
            "location": [29.72, -95.34],
        })
        ids = [i["id"] for i in self.client.get("/v1/incidents", params={"hours": 48}).json()]
        self.assertNotIn("ancient", ids)
        self.assertIn("ancient", [i["id"] for i in self.incidents()])

    def test_status_filter(self):
        self.client.put("/v1/update-status", json={"incidentId": "seed-0", "status": "resolved"})

        resolved = self.client.get("/v1/incidents", params={"status": "resolved"}).json()
        self.assertEqual([i["id"] for i in resolved], ["seed-0"])
        self.assertEqual(self.client.get("/v1/incidents", params={"status": "pending"}).json(), [])
        confirmed = self.client.get("/v1/incidents", params={"status": "confirmed"}).json()
        self.assertEqual(len(confirmed), len(CAMPUS_LOCATIONS) - 1)

    def test_status_filter_rejects_unknown_status(self):
        response = self.client.get("/v1/incidents", params={"status": "archived"})
        self.assertEqual(response.status_code, 422)

    def test_create_with_existing_id_replaces_record(self):
        payload = {"id": "dup", "type": "Theft Reported", "location": [29.72, -95.34], "severity": "LOW"}
        self.client.post("/v1/create_incident", json=payload)
        self.client.post("/v1/create_incident", json={**payload, "severity": "HIGH"})

        matches = [i for i in self.incidents() if i["id"] == "dup"]
        self.assertEqual(len(matches), 1)
        self.assertEqual(matches[0]["severity"], "HIGH")


class TestAnalysisEndpoints(ApiTestCase):

    def test_safety_summary(self):
        self.oracle.summary = SafetyStatus(score=40, summary="Two breaches.", recommendations=[], reasoning_steps=[])
        body = self.client.post("/v1/safety-summary", json={"location": [29.72, -95.34]}).json()
        self.assertEqual(body["status"]["score"], 40)
        self.assertEqual(body["agentStatus"], "alert")
        self.assertEqual(body["incidentCount"], len(CAMPUS_LOCATIONS))
        self.assertFalse(body["stale"])

    def test_safety_summary_refreshes_agent_roster(self):
        self.oracle.summary = SafetyStatus(
            score=40, summary="Two breaches.", reasoning_steps=["Breach cluster near Fertitta"]
        )
        agents = self.client.post("/v1/safety-summary", json={"location": [29.72, -95.34]}).json()["agents"]

        self.assertEqual([a["name"] for a in agents], ["Central Watch"])
        self.assertEqual(agents[0]["status"], "alert")
        self.assertEqual(agents[0]["lastInsight"], "Breach cluster near Fertitta")
        self.assertEqual(self.app.state.agents[0].status, "alert")

    def test_safety_summary_failure_without_history(self):
        self.oracle.summary = TerminalOracleError("down")
        with self.assertLogs("campus_safety.endpoints", level="ERROR") as logs:
            response = self.client.post("/v1/safety-summary", json={"location": [29.72, -95.34]})
        self.assertEqual(response.status_code, 502)
        self.assertIsNotNone(logs.records[0].exc_info)

    def test_safety_summary_failure_keeps_previous(self):
        self.client.post("/v1/safety-summary", json={"location": [29.72, -95.34]})
        self.oracle.summary = TerminalOracleError("down")
        response = self.client.post("/v1/safety-summary", json={"location": [29.72, -95.34]})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["stale"])
        self.assertEqual(response.json()["status"]["score"], 72)

    def test_chat(self):
        body = self.client.post("/v1/chat", json={"message": "Any threats?", "location": [29.72, -95.34]}).json()
        self.assertEqual(body["text"], "All clear near the library.")
        self.assertEqual(body["links"], [])

    def test_analyze(self):
        self.oracle.analysis = IncidentAnalysis(severity="MEDIUM", analysis="Monitor.")
        body = self.client.post("/v1/analyze", json={"description": "loud argument"}).json()
        self.assertEqual(body["severity"], "MEDIUM")


class TestSosEndpoints(ApiTestCase):

    def test_draft_falls_back_when_oracle_fails(self):
        self.oracle.draft_text = TerminalOracleError("down")
        body = self.client.post("/v1/sos/draft", json={
            "location": [29.72, -95.34],
            "extraDetails": "fire",
            "selectedBuilding": "Library",
        }).json()
        self.assertEqual(body["draft"], "UH SOS: EMERGENCY at Library. fire. NEED IMMEDIATE ASSISTANCE.")

    def test_transmit_promotes_incident(self):
        response = self.client.post("/v1/sos/transmit", json={
            "message": "UH SOS: Library - fire. IMMEDIATE HELP REQ.",
            "location": [29.7199, -95.3448],
            "building": "MD Anderson Library",
        })
        self.assertEqual(response.status_code, 201)
        log = response.json()

        head = self.incidents()[0]
        self.assertEqual(head["id"], f"sos-{log['id']}")
        self.assertEqual(head["severity"], "CRITICAL")
        self.assertEqual(head["type"], "SOS TRANSMISSION")
        self.assertEqual(self.client.get("/v1/emergency-logs").json()[0]["id"], log["id"])

    def test_transmit_rejects_empty_message(self):
        response = self.client.post("/v1/sos/transmit", json={"message": "  ", "location": [0, 0]})
        self.assertEqual(response.status_code, 400)


class TestSmsIntake(ApiTestCase):

    def test_sms_becomes_pending_incident(self):
        self.oracle.analysis = IncidentAnalysis(
            severity="HIGH", analysis="Possible break-in.", type="Facility Breach", location_name="fertitta center"
        )
        response = self.client.post(
            "/v1/post-sms",
            content="Body=Someone+forcing+a+door+at+Fertitta&From=%2B17135550100",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        self.assertEqual(response.status_code, 201)

        head = self.incidents()[0]
        self.assertEqual(head["description"], "Someone forcing a door at Fertitta")
        self.assertEqual(head["severity"], "HIGH")
        self.assertEqual(head["status"], "pending")
        self.assertEqual(head["location"], [29.7232, -95.3475])
        self.assertEqual(head["uri"], "tel:+17135550100")

    def test_sms_without_body(self):
        response = self.client.post(
            "/v1/post-sms",
            content="From=%2B17135550100",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        self.assertEqual(response.status_code, 400)

    def test_sms_analysis_failure_is_logged(self):
        self.oracle.analysis = TerminalOracleError("down")
        with self.assertLogs("campus_safety.endpoints", level="ERROR") as logs:
            response = self.client.post(
                "/v1/post-sms",
                content="Body=Smoke+in+hallway&From=%2B17135550100",
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        self.assertEqual(response.status_code, 502)
        self.assertIsNotNone(logs.records[0].exc_info)


if __name__ == "__main__":
    unittest.main()
