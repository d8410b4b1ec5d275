from conftest import auth_headers, make_principal

API = "/api/v1"


async def join(client, patient):
    res = await client.post(f"{API}/visits/queue", headers=auth_headers(patient))
    assert res.status_code == 201, res.text
    return res.json()


async def approve(client, staff, doctor, visit_id, room="101"):
    res = await client.put(
        f"{API}/visits/{visit_id}/process",
        json={"decision": "approved", "room_number": room, "doctor_id": str(doctor.user_id)},
        headers=auth_headers(staff),
    )
    assert res.status_code == 200, res.text
    return res.json()


async def test_health(client):
    res = await client.get(f"{API}/health")
    assert res.json() == {"status": "ok"}


async def test_missing_or_bad_token_is_unauthorized(client):
    assert (await client.post(f"{API}/visits/queue")).status_code == 401
    res = await client.post(f"{API}/visits/queue", headers={"Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401


async def test_request_id_is_echoed(client):
    res = await client.get(f"{API}/health", headers={"x-request-id": "abc-123"})
    assert res.headers["x-request-id"] == "abc-123"


async def test_end_to_end_visit(client, patient, staff, doctor):
    visit = await join(client, patient)
    assert visit["status"] == "pending"

    res = await client.get(f"{API}/visits/status", headers=auth_headers(patient))
    assert res.json()["position"] is None

    pending = (await client.get(f"{API}/visits/pending", headers=auth_headers(staff))).json()
    assert [v["id"] for v in pending] == [visit["id"]]

    await approve(client, staff, doctor, visit["id"])
    res = await client.get(f"{API}/visits/status", headers=auth_headers(patient))
    body = res.json()
    assert body["visit"]["room_number"] == "101"
    assert body["position"] == 1

    res = await client.post(f"{API}/triage/{visit['id']}/start", headers=auth_headers(patient))
    assert res.json()["question"]["text"] == "What is your main symptom today?"

    step = None
    for answer in ("Fever", "1-3 days", "No", "No", "No"):
        res = await client.post(
            f"{API}/triage/{visit['id']}/respond", json={"answer": answer}, headers=auth_headers(patient),
        )
        assert res.status_code == 200, res.text
        step = res.json()
        if answer == "Fever":
            assert step["question"]["text"] == "How long have you had the fever?"
    assert step["is_complete"] is True
    assert step["question"] is None
    assert step["summary"]["primarySymptom"] == "Fever"
    assert step["summary"]["duration"] == "1-3 days"

    queue = (await client.get(f"{API}/visits/doctor-queue", headers=auth_headers(doctor))).json()
    assert [v["id"] for v in queue] == [visit["id"]]
    assert queue[0]["status"] == "waiting"

    res = await client.get(f"{API}/triage/{visit['id']}/summary", headers=auth_headers(doctor))
    assert len(res.json()["symptoms"]) == 5
    assert res.json()["summary"]["severity"] == "Moderate"

    for status in ("with_doctor", "completed"):
        res = await client.put(
            f"{API}/visits/{visit['id']}/consultation", json={"status": status}, headers=auth_headers(doctor),
        )
        assert res.status_code == 200, res.text
    assert res.json()["status"] == "completed"
    assert res.json()["consultation_end_time"] is not None

    history = (await client.get(f"{API}/visits/history", headers=auth_headers(patient))).json()
    assert [v["status"] for v in history] == ["completed"]

    audit = (await client.get(f"{API}/audit", headers=auth_headers(staff))).json()
    assert [a["resource_type"] for a in audit] == ["triage_summary"]


async def test_error_kinds_map_to_distinct_statuses(client, patient, staff, doctor):
    visit = await join(client, patient)
    vid = visit["id"]

    res = await client.post(f"{API}/visits/queue", headers=auth_headers(patient))
    assert (res.status_code, res.json()["code"]) == (409, "conflict")

    res = await client.put(f"{API}/visits/{vid}/process", json={"decision": "approved"}, headers=auth_headers(staff))
    assert (res.status_code, res.json()["code"]) == (422, "validation_error")

    res = await client.put(f"{API}/visits/{vid}/process", json={"decision": "rejected"}, headers=auth_headers(patient))
    assert (res.status_code, res.json()["code"]) == (403, "forbidden")

    res = await client.post(f"{API}/triage/{vid}/start", headers=auth_headers(patient))
    assert (res.status_code, res.json()["code"]) == (400, "invalid_transition")

    res = await client.post(f"{API}/triage/{vid}/respond", json={"answer": "Fever"}, headers=auth_headers(patient))
    assert (res.status_code, res.json()["code"]) == (412, "invalid_state")

    other = "00000000-0000-0000-0000-00000000beef"
    res = await client.put(f"{API}/visits/{other}/process", json={"decision": "rejected"}, headers=auth_headers(staff))
    assert (res.status_code, res.json()["code"]) == (404, "not_found")


async def test_summary_hidden_from_other_patients(client, patient, staff, doctor):
    visit = await join(client, patient)
    res = await client.get(f"{API}/triage/{visit['id']}/summary", headers=auth_headers(make_principal("patient")))
    assert res.status_code == 403
    res = await client.get(f"{API}/triage/{visit['id']}/summary", headers=auth_headers(patient))
    assert res.status_code == 200
    assert res.json() == {"symptoms": [], "summary": None}


async def test_second_patient_sees_position_two(client, staff, doctor):
    first, second = make_principal("patient"), make_principal("patient")
    v1 = await join(client, first)
    v2 = await join(client, second)
    await approve(client, staff, doctor, v1["id"], room="101")
    await approve(client, staff, doctor, v2["id"], room="102")

    res = await client.get(f"{API}/visits/status", headers=auth_headers(second))
    assert res.json()["position"] == 2

    approved = (await client.get(f"{API}/visits", params={"status": "approved"}, headers=auth_headers(staff))).json()
    assert [v["id"] for v in approved] == [v1["id"], v2["id"]]


async def test_staff_notes_and_priority(client, patient, staff):
    visit = await join(client, patient)
    res = await client.patch(f"{API}/visits/{visit['id']}/notes", json={"notes": "needs interpreter"}, headers=auth_headers(staff))
    assert res.json()["notes"] == "needs interpreter"
    res = await client.patch(f"{API}/visits/{visit['id']}/priority", json={"priority": 0}, headers=auth_headers(staff))
    assert res.status_code == 422
    res = await client.patch(f"{API}/visits/{visit['id']}/priority", json={"priority": 2}, headers=auth_headers(staff))
    assert res.json()["priority"] == 2
