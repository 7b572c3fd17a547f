"""HTTP surface: auth, role checks, results, notifications and the CBT flow."""

from decimal import Decimal

from app.models.user import UserRole

API = "/api/v1"


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_login_and_me(client, admin):
    response = client.post(f"{API}/auth/login", json={"username": "admin", "password": "password123"})
    assert response.status_code == 200
    tokens = response.json()
    assert tokens["token_type"] == "bearer"

    me = client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"})
    assert me.status_code == 200
    assert me.json()["username"] == "admin"
    assert me.json()["role"] == "admin"


def test_login_with_wrong_password(client, admin):
    response = client.post(f"{API}/auth/login", json={"username": "admin", "password": "wrong-pass"})
    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "AUTH_FAILED"


def test_refresh_issues_new_tokens(client, admin):
    tokens = client.post(f"{API}/auth/login", json={"username": "admin", "password": "password123"}).json()

    response = client.post(f"{API}/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 200

    # An access token is not accepted as a refresh token
    rejected = client.post(f"{API}/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert rejected.status_code == 401


def test_invalid_token_is_rejected(client):
    response = client.get(f"{API}/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTH_FAILED"


def test_student_cannot_use_staff_endpoints(client, make_user, auth_headers, subject, term):
    student_user = make_user(UserRole.STUDENT)
    response = client.get(
        f"{API}/results/cohort",
        params={"subject_id": subject.id, "term_id": term.id},
        headers=auth_headers(student_user),
    )
    assert response.status_code == 403
    assert response.json()["error"]["details"]["required_roles"] == ["admin", "teacher"]


def test_register_is_admin_only(client, admin, teacher, auth_headers):
    payload = {"name": "New Teacher", "username": "newteacher", "password": "longenough", "role": "teacher"}

    assert client.post(f"{API}/auth/register", json=payload, headers=auth_headers(teacher)).status_code == 403

    response = client.post(f"{API}/auth/register", json=payload, headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["role"] == "teacher"

    duplicate = client.post(f"{API}/auth/register", json=payload, headers=auth_headers(admin))
    assert duplicate.status_code == 409


def test_result_lifecycle_over_http(client, teacher, auth_headers, make_student, subject, term):
    headers = auth_headers(teacher)
    first, second = make_student(), make_student()

    created = client.post(
        f"{API}/results",
        json={"student_id": first.id, "subject_id": subject.id, "term_id": term.id, "ca_score": "30", "exam_score": "50"},
        headers=headers,
    )
    assert created.status_code == 200
    assert Decimal(created.json()["total_score"]) == Decimal("80")
    assert created.json()["position"] == 1

    client.post(
        f"{API}/results",
        json={"student_id": second.id, "subject_id": subject.id, "term_id": term.id, "ca_score": "40", "exam_score": "55"},
        headers=headers,
    )

    cohort = client.get(
        f"{API}/results/cohort", params={"subject_id": subject.id, "term_id": term.id}, headers=headers
    ).json()
    assert [(e["student_id"], e["position"]) for e in cohort["entries"]] == [(second.id, 1), (first.id, 2)]

    result_id = created.json()["id"]
    updated = client.patch(f"{API}/results/{result_id}", json={"exam_score": "60"}, headers=headers)
    assert updated.json()["position"] == 1

    assert client.delete(f"{API}/results/{result_id}", headers=headers).status_code == 200
    assert client.get(f"{API}/results/{result_id}", headers=headers).status_code == 404


def test_out_of_range_score_is_a_validation_error(client, teacher, auth_headers, make_student, subject, term):
    response = client.post(
        f"{API}/results",
        json={"student_id": make_student().id, "subject_id": subject.id, "term_id": term.id, "ca_score": "41", "exam_score": "10"},
        headers=auth_headers(teacher),
    )
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_export_returns_spreadsheet(client, teacher, auth_headers, make_student, save_result, term):
    save_result(make_student(), "30", "40")
    response = client.get(
        f"{API}/results/export", params={"term_id": term.id, "class_name": "JSS1"}, headers=auth_headers(teacher)
    )
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/vnd.openxmlformats")
    assert f"results_JSS1_term{term.id}.xlsx" in response.headers["content-disposition"]


def test_student_sees_own_results_and_notifications(client, auth_headers, make_student, save_result, db):
    from app.models.user import User

    student = make_student()
    save_result(student, "30", "40")
    save_result(make_student(), "20", "20")
    headers = auth_headers(db.get(User, student.user_id))

    mine = client.get(f"{API}/results/me", headers=headers).json()
    assert [r["student_id"] for r in mine] == [student.id]

    notes = client.get(f"{API}/notifications", headers=headers).json()
    assert notes["total"] == 1
    assert notes["items"][0]["notification_type"] == "result"

    client.post(f"{API}/notifications/mark-all-read", headers=headers)
    stats = client.get(f"{API}/notifications/stats", headers=headers).json()
    assert stats["unread"] == 0


def test_cbt_flow_over_http(client, auth_headers, make_student, published_exam, teacher, term, db):
    from app.models.user import User

    student = make_student()
    headers = auth_headers(db.get(User, student.user_id))

    session = client.post(f"{API}/cbt/exams/{published_exam.id}/start", headers=headers)
    assert session.status_code == 200
    body = session.json()
    assert "correct_answer" not in body["questions"][0]
    attempt_id = body["attempt"]["id"]

    first = body["questions"][0]["question_id"]
    answer = client.post(
        f"{API}/cbt/attempts/{attempt_id}/answers", json={"question_id": first, "answer": "b"}, headers=headers
    )
    assert answer.json()["is_correct"] is True

    submitted = client.post(f"{API}/cbt/attempts/{attempt_id}/submit", headers=headers)
    assert submitted.json()["status"] == "completed"

    again = client.post(f"{API}/cbt/attempts/{attempt_id}/submit", headers=headers)
    assert again.status_code == 409

    results = client.get(f"{API}/cbt/results", params={"term_id": term.id}, headers=auth_headers(teacher)).json()
    assert len(results) == 1
    assert Decimal(results[0]["exam_score"]) == Decimal("43.20")
    assert results[0]["cbt_exam_attempt_id"] == attempt_id


def test_result_history_in_audit_log(client, admin, teacher, auth_headers, make_student, subject, term):
    created = client.post(
        f"{API}/results",
        json={"student_id": make_student().id, "subject_id": subject.id, "term_id": term.id, "ca_score": "30", "exam_score": "40"},
        headers=auth_headers(teacher),
    ).json()
    client.patch(f"{API}/results/{created['id']}", json={"ca_score": "35"}, headers=auth_headers(teacher))

    assert client.get(f"{API}/audit", headers=auth_headers(teacher)).status_code == 403

    history = client.get(
        f"{API}/audit",
        params={"resource_type": "result", "resource_id": str(created["id"])},
        headers=auth_headers(admin),
    ).json()
    assert [e["action"] for e in history["items"]] == ["RESULT_UPDATED", "RESULT_CREATED"]
    assert history["items"][0]["user_name"] == teacher.name


def test_sub_cent_score_is_a_validation_error(client, teacher, auth_headers, make_student, subject, term):
    response = client.post(
        f"{API}/results",
        json={"student_id": make_student().id, "subject_id": subject.id, "term_id": term.id, "ca_score": "10.004", "exam_score": "10"},
        headers=auth_headers(teacher),
    )
    assert response.status_code == 422
