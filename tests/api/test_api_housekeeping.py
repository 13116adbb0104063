"""
清洁任务 API 测试
"""


def _task(client, headers, room_id, **extra):
    payload = {"room_id": room_id}
    payload.update(extra)
    response = client.post("/housekeeping", headers=headers, json=payload)
    assert response.status_code == 201
    return response.json()["data"]


class TestTasks:

    def test_create_and_get(self, client, user_headers, sample_rooms):
        task = _task(client, user_headers, sample_rooms[0].id, task_type="Deep Clean", priority="High")
        assert task["status"] == "Pending"
        assert task["room_number"] == "101"

        fetched = client.get(f"/housekeeping/{task['id']}", headers=user_headers).json()["data"]
        assert fetched["task_type"] == "Deep Clean"

    def test_complete_releases_dirty_room(self, client, user_headers, sample_rooms):
        room_id = sample_rooms[0].id
        client.patch(f"/rooms/{room_id}/status", headers=user_headers, json={"status": "Dirty"})
        task = _task(client, user_headers, room_id)

        response = client.patch(f"/housekeeping/{task['id']}/status", headers=user_headers,
                                json={"status": "Completed", "notes": "布草已更换"})
        assert response.status_code == 200
        assert response.json()["data"]["completed_at"] is not None

        room = client.get(f"/rooms/{room_id}", headers=user_headers).json()["data"]
        assert room["status"] == "Available"

    def test_invalid_transition(self, client, user_headers, sample_rooms):
        task = _task(client, user_headers, sample_rooms[0].id)
        client.patch(f"/housekeeping/{task['id']}/status", headers=user_headers, json={"status": "Completed"})

        response = client.patch(f"/housekeeping/{task['id']}/status", headers=user_headers,
                                json={"status": "Pending"})
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "invalid_transition"
        assert body["errors"] == {"from": "Completed", "to": "Pending"}

    def test_assign_and_summary(self, client, user_headers, sample_rooms):
        task = _task(client, user_headers, sample_rooms[0].id)
        response = client.patch(f"/housekeeping/{task['id']}/assign", headers=user_headers,
                                json={"staff_name": "王阿姨"})
        assert response.json()["data"]["staff_name"] == "王阿姨"

        summary = client.get("/housekeeping/summary", headers=user_headers).json()["data"]
        assert summary["Pending"] == 1
        assert summary["total"] == 1

    def test_mark_overdue(self, client, user_headers, sample_rooms):
        task = _task(client, user_headers, sample_rooms[0].id, due_date="2026-01-01T10:00:00")
        response = client.post("/housekeeping/mark-overdue", headers=user_headers,
                               params={"now": "2026-01-02T10:00:00"})
        assert [t["id"] for t in response.json()["data"]] == [task["id"]]
        assert response.json()["data"][0]["status"] == "Delayed"

    def test_delete(self, client, user_headers, sample_rooms):
        task = _task(client, user_headers, sample_rooms[0].id)
        assert client.delete(f"/housekeeping/{task['id']}", headers=user_headers).status_code == 200
        assert client.get(f"/housekeeping/{task['id']}", headers=user_headers).status_code == 404

    def test_unknown_room(self, client, user_headers):
        response = client.post("/housekeeping", headers=user_headers, json={"room_id": 999})
        assert response.status_code == 404
