import uuid


def create_grade(client, teacher_id, class_id, subject_id, grade=None, student_id=None):
    response = client.post("/api/grades/records", json={
        "student_id": str(student_id or uuid.uuid4()),
        "subject_id": str(subject_id),
        "class_id": str(class_id),
        "term": "term1",
        "exam_type": "end_term",
        "actor_id": str(teacher_id),
        "grade": grade or {"curriculum_type": "standard", "score": 42, "max_score": 50},
    })
    assert response.status_code == 201, response.text
    return response.json()


def test_calculate_endpoint(client):
    response = client.post("/api/grades/calculate", json={"curriculum_type": "igcse",
                                                          "coursework_score": 80, "exam_score": 60})
    assert response.status_code == 200
    body = response.json()
    assert body["is_valid"] is True
    assert body["letter_grade"] == "C"
    assert body["percentage"] == 66


def test_calculate_endpoint_unsupported_curriculum(client):
    response = client.post("/api/grades/calculate", json={"curriculum_type": "french_bac", "score": 12})
    assert response.status_code == 200
    assert response.json()["is_valid"] is False
    assert response.json()["error"] == "Unsupported curriculum type: french_bac"


def test_validate_endpoint(client):
    response = client.post("/api/grades/validate", json={"score": 60, "max_score": 50, "letter_grade": "A"})
    assert response.json() == {"is_valid": False, "errors": ["Score cannot exceed maximum score"]}


def test_scale_endpoint(client):
    response = client.get("/api/grades/scales/igcse")
    assert [band["label"] for band in response.json()][0] == "A*"
    assert client.get("/api/grades/scales/ib").status_code == 422


def test_create_rejects_unknown_curriculum_shape(client, teacher_id, class_id, subject_id):
    response = client.post("/api/grades/records", json={
        "student_id": str(uuid.uuid4()),
        "subject_id": str(subject_id),
        "actor_id": str(teacher_id),
        "grade": {"curriculum_type": "ib", "score": 5},
    })
    assert response.status_code == 422


def test_full_workflow_over_http(client, teacher_id, principal_id, class_id, subject_id):
    student_id = uuid.uuid4()
    grade = create_grade(client, teacher_id, class_id, subject_id, student_id=student_id)
    assert grade["status"] == "draft"
    assert grade["percentage"] == 84.0
    assert grade["letter_grade"] == "A"

    outcome = client.post("/api/grades/submit", json={
        "grade_ids": [grade["id"]], "actor_id": str(teacher_id),
    }).json()
    assert outcome["success"] is True
    assert outcome["affected_count"] == 1
    assert outcome["effects"] == ["lock_editing"]

    pending = client.get("/api/grades/pending", params={"class_id": str(class_id)}).json()
    assert [g["id"] for g in pending] == [grade["id"]]

    outcome = client.post("/api/grades/approve", json={
        "grade_ids": [grade["id"]], "actor_id": str(principal_id), "actor_role": "principal",
        "principal_notes": "Fine",
    }).json()
    assert outcome["affected_count"] == 1

    overridden = client.post(f"/api/grades/records/{grade['id']}/override", json={
        "actor_id": str(principal_id), "actor_role": "principal", "new_score": 46,
    })
    assert overridden.status_code == 200
    assert overridden.json()["letter_grade"] == "A+"
    assert overridden.json()["original_score"] == 42

    assert client.get(f"/api/grades/students/{student_id}/released").json() == []

    outcome = client.post("/api/grades/release", json={
        "grade_ids": [grade["id"]], "actor_id": str(principal_id), "actor_role": "principal",
    }).json()
    assert outcome["effects"] == ["notify_parents"]

    released = client.get(f"/api/grades/students/{student_id}/released").json()
    assert [g["id"] for g in released] == [grade["id"]]
    assert released[0]["released_to_parents"] is True

    audit = client.get(f"/api/grades/records/{grade['id']}/audit").json()
    assert [entry["action"] for entry in audit] == ["create", "submit", "approve", "override", "release"]

    summary = client.get("/api/grades/workflow-summary").json()
    assert summary["released"] == 1
    assert summary["total"] == 1


def test_reject_without_reason_over_http(client, teacher_id, principal_id, class_id, subject_id):
    grade = create_grade(client, teacher_id, class_id, subject_id)
    client.post("/api/grades/submit", json={"grade_ids": [grade["id"]], "actor_id": str(teacher_id)})

    outcome = client.post("/api/grades/reject", json={
        "grade_ids": [grade["id"]], "actor_id": str(principal_id), "actor_role": "principal",
    }).json()

    assert outcome["success"] is False
    assert outcome["failed_count"] == 1
    assert outcome["errors"][0]["code"] == "missing_rejection_reason"
    assert client.get(f"/api/grades/records/{grade['id']}").json()["status"] == "pending_approval"


def test_revise_after_rejection_over_http(client, teacher_id, principal_id, class_id, subject_id):
    grade = create_grade(client, teacher_id, class_id, subject_id)
    client.post("/api/grades/submit", json={"grade_ids": [grade["id"]], "actor_id": str(teacher_id)})
    client.post("/api/grades/reject", json={
        "grade_ids": [grade["id"]], "actor_id": str(principal_id), "actor_role": "principal",
        "rejection_reason": "Wrong paper",
    })

    response = client.put(f"/api/grades/records/{grade['id']}/revise", json={
        "actor_id": str(teacher_id), "grade": {"curriculum_type": "cbc", "score": 45},
    })

    assert response.status_code == 200
    assert response.json()["status"] == "draft"
    assert response.json()["curriculum_type"] == "cbc"
    assert response.json()["cbc_performance_level"] == "AE"


def test_override_errors_map_to_http_status(client, teacher_id, principal_id, class_id, subject_id):
    grade = create_grade(client, teacher_id, class_id, subject_id)

    not_approved = client.post(f"/api/grades/records/{grade['id']}/override", json={
        "actor_id": str(principal_id), "actor_role": "principal", "new_score": 40,
    })
    assert not_approved.status_code == 409
    assert not_approved.json()["detail"]["code"] == "illegal_transition"

    missing = client.post(f"/api/grades/records/{uuid.uuid4()}/override", json={
        "actor_id": str(principal_id), "actor_role": "principal", "new_score": 40,
    })
    assert missing.status_code == 404


def test_override_by_teacher_is_forbidden(client, teacher_id, principal_id, class_id, subject_id):
    grade = create_grade(client, teacher_id, class_id, subject_id)
    client.post("/api/grades/submit", json={"grade_ids": [grade["id"]], "actor_id": str(teacher_id)})
    client.post("/api/grades/approve", json={
        "grade_ids": [grade["id"]], "actor_id": str(principal_id), "actor_role": "principal",
    })

    response = client.post(f"/api/grades/records/{grade['id']}/override", json={
        "actor_id": str(teacher_id), "actor_role": "teacher", "new_score": 50,
    })
    assert response.status_code == 403


def test_parent_cannot_create_grade(client, class_id, subject_id):
    response = client.post("/api/grades/records", json={
        "student_id": str(uuid.uuid4()),
        "subject_id": str(subject_id),
        "actor_id": str(uuid.uuid4()),
        "actor_role": "parent",
        "grade": {"curriculum_type": "standard", "score": 50},
    })
    assert response.status_code == 403


def test_empty_batch_is_a_validation_error(client, principal_id):
    response = client.post("/api/grades/approve", json={
        "grade_ids": [], "actor_id": str(principal_id), "actor_role": "principal",
    })
    assert response.status_code == 422


def test_sheet_endpoints(client, teacher_id, class_id, subject_id):
    for score in (20, 30, 45):
        create_grade(client, teacher_id, class_id, subject_id,
                     grade={"curriculum_type": "standard", "score": score, "max_score": 50})

    sheet = client.get("/api/grades/sheet", params={"class_id": str(class_id), "subject_id": str(subject_id)})
    assert len(sheet.json()) == 3

    stats = client.get("/api/grades/sheet/statistics", params={
        "class_id": str(class_id), "subject_id": str(subject_id),
    }).json()
    assert stats["statistics"]["count"] == 3
    assert stats["class_average"] == 63.33
    assert stats["passing_threshold"] == 50
