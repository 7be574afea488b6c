import os
import sys
import unittest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from fastapi.testclient import TestClient

os.environ["USE_DB"] = "0"

import campus.main as main
from campus.stores import MemoryRecordStore


def _student(custom_id: str, name: str, department: str = "Physics") -> dict:
    return {"customId": custom_id, "name": name, "department": department, "password": "pw"}


def _coordinator(custom_id: str, name: str = "Cora") -> dict:
    return {"customId": custom_id, "name": name, "department": "Physics", "password": "pw"}


class ApiTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._previous_store = main.records_store
        main.records_store = MemoryRecordStore()
        self.client = TestClient(main.app, raise_server_exceptions=False)

    def tearDown(self) -> None:
        main.records_store = self._previous_store

    def post(self, resource: str, body) -> object:
        return self.client.post(f"/api/{resource}", json=body)


class TestScenarios(ApiTestCase):
    def test_department_duplicate(self) -> None:
        res = self.post("departments", {"name": "Physics"})
        self.assertEqual(res.status_code, 201, res.text)
        self.assertIs(res.json()["isActive"], True)
        res = self.post("departments", {"name": " Physics "})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["code"], "DUPLICATE_NAME")
        self.assertEqual(len(self.client.get("/api/departments").json()), 1)

    def test_coordinator_pattern(self) -> None:
        res = self.post("coordinators", _coordinator("X1"))
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["code"], "INVALID_CUSTOM_ID_FORMAT")
        res = self.post("coordinators", _coordinator("COORD1001"))
        self.assertEqual(res.status_code, 201, res.text)

    def test_story_hierarchy(self) -> None:
        res = self.post("story-batches", {"name": "2024-25"})
        self.assertEqual(res.status_code, 201)
        self.assertEqual(res.json()["id"], 1)
        res = self.post("story-albums", {"batchId": 1, "name": "Orientation"})
        self.assertEqual(res.status_code, 201, res.text)
        res = self.post("story-albums", {"batchId": 999, "name": "X"})
        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.json(), {"error": "Story batch not found", "code": "BATCH_NOT_FOUND"})
        self.assertEqual(len(self.client.get("/api/story-albums").json()), 1)

    def test_student_search(self) -> None:
        self.post("students", _student("S1", "Jane Doe"))
        self.post("students", _student("S2", "Bob Smith", department="doe studies"))
        self.post("students", _student("S3", "Carl Roe"))
        res = self.client.get("/api/students", params={"search": "Doe"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(sorted(r["customId"] for r in res.json()), ["S1", "S2"])


class TestListing(ApiTestCase):
    def test_limit_clamped(self) -> None:
        store = main.records_store
        for idx in range(105):
            store.insert("departments", {"name": f"D{idx}", "isActive": True})
        self.assertEqual(len(self.client.get("/api/departments", params={"limit": "1000"}).json()), 100)
        self.assertEqual(len(self.client.get("/api/departments", params={"limit": "0"}).json()), 1)
        self.assertEqual(len(self.client.get("/api/departments", params={"limit": "-3"}).json()), 1)
        self.assertEqual(len(self.client.get("/api/departments").json()), 10)
        page = self.client.get("/api/departments", params={"limit": "5", "offset": "100"}).json()
        self.assertEqual([r["name"] for r in page], ["D100", "D101", "D102", "D103", "D104"])

    def test_id_shortcut(self) -> None:
        self.post("students", _student("S1", "Jane"))
        res = self.client.get("/api/students", params={"id": "1"})
        self.assertEqual(res.json()["customId"], "S1")
        res = self.client.get("/api/students", params={"id": "abc"})
        self.assertEqual((res.status_code, res.json()["code"]), (400, "INVALID_ID"))
        res = self.client.get("/api/students", params={"id": "9"})
        self.assertEqual((res.status_code, res.json()["code"]), (404, "STUDENT_NOT_FOUND"))

    def test_coordinators_newest_first_and_active_filter(self) -> None:
        self.post("coordinators", _coordinator("COORD1", "First"))
        self.post("coordinators", dict(_coordinator("COORD2", "Second"), isActive=False))
        self.post("coordinators", _coordinator("COORD3", "Third"))
        names = [r["name"] for r in self.client.get("/api/coordinators").json()]
        self.assertEqual(names, ["Third", "Second", "First"])
        active = self.client.get("/api/coordinators", params={"isActive": "true"}).json()
        self.assertEqual([r["name"] for r in active], ["Third", "First"])
        inactive = self.client.get("/api/coordinators", params={"isActive": "false"}).json()
        self.assertEqual([r["name"] for r in inactive], ["Second"])

    def test_scope_filters(self) -> None:
        self.post("story-batches", {"name": "A"})
        self.post("story-batches", {"name": "B"})
        self.post("story-albums", {"batchId": 1, "name": "a1"})
        self.post("story-albums", {"batchId": 2, "name": "b1"})
        res = self.client.get("/api/story-albums", params={"batchId": "2"})
        self.assertEqual([r["name"] for r in res.json()], ["b1"])
        res = self.client.get("/api/story-albums", params={"batchId": "two"})
        self.assertEqual((res.status_code, res.json()["code"]), (400, "INVALID_BATCH_ID"))
        res = self.client.get("/api/story-media", params={"albumId": "x"})
        self.assertEqual((res.status_code, res.json()["code"]), (400, "INVALID_ALBUM_ID"))

    def test_activities_by_student(self) -> None:
        for student in ("S1", "S2"):
            body = {"studentCustomId": student, "badge": "green", "title": "t", "content": "c"}
            self.assertEqual(self.post("student-activities", body).status_code, 201)
        res = self.client.get("/api/student-activities", params={"studentId": "S2"})
        self.assertEqual([r["studentCustomId"] for r in res.json()], ["S2"])


class TestMutations(ApiTestCase):
    def test_missing_required_writes_nothing(self) -> None:
        res = self.post("students", {"customId": "S1", "name": "Jane", "department": "Physics"})
        self.assertEqual((res.status_code, res.json()["code"]), (400, "MISSING_PASSWORD"))
        self.assertEqual(self.client.get("/api/students").json(), [])

    def test_partial_update(self) -> None:
        created = self.post(
            "programs",
            {"title": "Drive", "description": "Food", "date": "2025-02-01", "time": "10:00", "venue": "Gym"},
        ).json()
        res = self.client.put(f"/api/programs/{created['id']}", json={"venue": "Hall"})
        self.assertEqual(res.status_code, 200, res.text)
        updated = res.json()
        for key in ("title", "description", "date", "time", "coordinatorIds", "participantIds", "createdAt"):
            self.assertEqual(updated[key], created[key])
        self.assertEqual(updated["venue"], "Hall")
        self.assertGreater(updated["updatedAt"], created["updatedAt"])

    def test_update_by_query_id(self) -> None:
        self.post("departments", {"name": "Physics"})
        res = self.client.put("/api/departments", params={"id": "1"}, json={"isActive": False})
        self.assertEqual(res.json()["isActive"], False)
        res = self.client.put("/api/departments", json={"isActive": False})
        self.assertEqual((res.status_code, res.json()["code"]), (400, "INVALID_ID"))

    def test_media_empty_update_refreshes_stamp(self) -> None:
        self.post("story-batches", {"name": "A"})
        self.post("story-albums", {"batchId": 1, "name": "a"})
        media = self.post("story-media", {"albumId": 1, "type": "image", "url": "http://x/1.png"}).json()
        self.assertIs(media["isFeatured"], False)
        self.assertIsNone(media["title"])
        res = self.client.put(f"/api/story-media/{media['id']}", json={})
        self.assertEqual(res.status_code, 200, res.text)
        self.assertEqual(res.json()["url"], media["url"])
        self.assertGreater(res.json()["updatedAt"], media["updatedAt"])

    def test_activity_rejects_empty_update(self) -> None:
        body = {"studentCustomId": "S1", "badge": "yellow", "title": "t", "content": "c"}
        activity = self.post("student-activities", body).json()
        res = self.client.put(f"/api/student-activities/{activity['id']}", json={})
        self.assertEqual((res.status_code, res.json()["code"]), (400, "NO_UPDATES"))

    def test_blank_profile_image_stored_as_null(self) -> None:
        res = self.post("students", dict(_student("S1", "Jane"), profileImageUrl=""))
        self.assertEqual(res.status_code, 201)
        self.assertIsNone(res.json()["profileImageUrl"])

    def test_delete(self) -> None:
        self.post("story-batches", {"name": "A"})
        self.post("story-albums", {"batchId": 1, "name": "a"})
        res = self.client.delete("/api/story-batches", params={"id": "1"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["message"], "Story batch deleted successfully")
        self.assertEqual(res.json()["batch"]["name"], "A")
        # albums survive their batch
        self.assertEqual(len(self.client.get("/api/story-albums", params={"batchId": "1"}).json()), 1)
        res = self.client.delete("/api/story-batches/1")
        self.assertEqual((res.status_code, res.json()["code"]), (404, "BATCH_NOT_FOUND"))


class TestOfficerCredentials(ApiTestCase):
    def test_default_lookup_and_update(self) -> None:
        res = self.client.get("/api/officer-credentials")
        self.assertEqual((res.status_code, res.json()["code"]), (404, "NOT_FOUND"))
        self.assertEqual(self.post("officer-credentials", {"officerId": "OFFICER001", "password": "a"}).status_code, 201)
        res = self.post("officer-credentials", {"officerId": "OFFICER001", "password": "b"})
        self.assertEqual(res.json()["code"], "DUPLICATE_OFFICER_ID")
        self.assertEqual(self.client.get("/api/officer-credentials").json()["officerId"], "OFFICER001")
        res = self.client.put("/api/officer-credentials", json={"password": "new"})
        self.assertEqual(res.json()["code"], "MISSING_OFFICER_ID")
        res = self.client.put("/api/officer-credentials", params={"officerId": "OFFICER001"}, json={"password": ""})
        self.assertEqual(res.json()["code"], "MISSING_PASSWORD")
        res = self.client.put("/api/officer-credentials", params={"officerId": "OFFICER001"}, json={"password": "  "})
        self.assertEqual(res.json()["code"], "MISSING_PASSWORD")
        res = self.client.get("/api/officer-credentials", params={"officerId": ""})
        self.assertEqual((res.status_code, res.json()["code"]), (404, "NOT_FOUND"))
        res = self.client.put("/api/officer-credentials", params={"officerId": "OFFICER001"}, json={"password": "new"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["password"], "new")


class TestLogin(ApiTestCase):
    def test_login(self) -> None:
        self.post("students", _student("S1", "Jane"))
        res = self.client.post("/api/auth/login", json={"id": "S1", "password": "pw"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["role"], "student")
        self.assertNotIn("password", res.json()["user"])
        res = self.client.post("/api/auth/login", json={"id": "S1", "password": "nope"})
        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.json(), {"error": "Invalid credentials", "code": "INVALID_CREDENTIALS"})


class TestErrors(ApiTestCase):
    def test_unknown_resource(self) -> None:
        res = self.client.get("/api/widgets")
        self.assertEqual((res.status_code, res.json()["code"]), (404, "RESOURCE_NOT_FOUND"))

    def test_invalid_json_and_payload(self) -> None:
        res = self.client.post("/api/departments", content=b"{nope", headers={"content-type": "application/json"})
        self.assertEqual((res.status_code, res.json()["code"]), (400, "INVALID_JSON"))
        res = self.post("departments", ["Physics"])
        self.assertEqual((res.status_code, res.json()["code"]), (400, "INVALID_PAYLOAD"))

    def test_store_failure_maps_to_500(self) -> None:
        class BrokenStore(MemoryRecordStore):
            def select(self, *args, **kwargs):
                raise RuntimeError("connection lost")

        main.records_store = BrokenStore()
        res = self.client.get("/api/students")
        self.assertEqual(res.status_code, 500)
        self.assertEqual(res.json(), {"error": "Internal server error: connection lost"})

    def test_health(self) -> None:
        self.assertEqual(self.client.get("/health").json(), {"ok": True})


if __name__ == "__main__":
    unittest.main()
