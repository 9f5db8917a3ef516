from juku_admin.models.user import User

TEACHER = {"username": "yamada", "password": "secret123", "name": "山田太郎", "kana_name": "ヤマダタロウ", "email": "yamada@example.com"}
STUDENT = {"username": "suzuki", "password": "secret123", "name": "鈴木一郎", "email": "suzuki@example.com"}


def test_teacher_lifecycle(client, db, staff_headers, branch):
    r = client.post("/api/teachers", json=TEACHER, headers=staff_headers)
    assert r.status_code == 201
    t = r.json()["data"]
    assert t["username"] == "yamada"
    assert t["branch_ids"] == [branch.branch_id]
    assert "password" not in t and "password_hash" not in t

    account = db.query(User).filter(User.username == "yamada").one()
    assert account.role == "TEACHER"

    r = client.put(f"/api/teachers/{t['teacher_id']}", json={"university": "東京大学", "username": "yamada2"}, headers=staff_headers)
    assert r.status_code == 200
    assert r.json()["data"]["university"] == "東京大学"
    assert r.json()["data"]["username"] == "yamada2"

    r = client.get("/api/teachers?name=ヤマダ", headers=staff_headers)
    assert [x["teacher_id"] for x in r.json()["data"]] == [t["teacher_id"]]

    r = client.delete(f"/api/teachers/{t['teacher_id']}", headers=staff_headers)
    assert r.status_code == 200
    db.expire_all()
    assert db.query(User).filter(User.role == "TEACHER").count() == 0


def test_teacher_username_taken(client, staff_headers):
    client.post("/api/teachers", json=TEACHER, headers=staff_headers)
    r = client.post("/api/teachers", json={**TEACHER, "email": "other@example.com"}, headers=staff_headers)

    assert r.status_code == 409
    assert r.json()["error"] == "Username 'yamada' is already taken"


def test_teacher_delete_blocked_by_sessions(client, staff_headers):
    t = client.post("/api/teachers", json=TEACHER, headers=staff_headers).json()["data"]
    client.post(
        "/api/class-sessions",
        json={"date": "2030-01-10", "start_time": "10:00", "end_time": "11:00", "teacher_id": t["teacher_id"]},
        headers=staff_headers,
    )

    r = client.delete(f"/api/teachers/{t['teacher_id']}", headers=staff_headers)
    assert r.status_code == 409
    assert r.json()["details"] == {"class_sessions": 1}


def test_teachers_are_scoped_by_branch(client, staff_headers, make_branch, make_user, headers_for):
    other = make_branch("駅前校")
    t = client.post("/api/teachers", json=TEACHER, headers=staff_headers).json()["data"]

    other_staff = make_user("staff2", "STAFF", [other.branch_id])
    other_headers = headers_for(other_staff, other.branch_id)
    assert client.get("/api/teachers", headers=other_headers).json()["data"] == []
    assert client.get(f"/api/teachers/{t['teacher_id']}", headers=other_headers).status_code == 404


def test_unknown_branch_in_body(client, staff_headers):
    r = client.post("/api/teachers", json={**TEACHER, "branch_ids": ["nope"]}, headers=staff_headers)

    assert r.status_code == 400
    assert r.json() == {"error": "Unknown branch: nope"}


def test_student_lifecycle_and_status_filter(client, db, staff_headers):
    r = client.post("/api/students", json={**STUDENT, "status": "SICK", "school_type": "PRIVATE"}, headers=staff_headers)
    assert r.status_code == 201
    s = r.json()["data"]
    assert s["status"] == "SICK"
    assert s["email"] == "suzuki@example.com"

    client.post("/api/students", json={"username": "tanaka", "password": "secret123", "name": "田中"}, headers=staff_headers)

    r = client.get("/api/students?status=SICK", headers=staff_headers)
    assert [x["username"] for x in r.json()["data"]] == ["suzuki"]

    r = client.put(f"/api/students/{s['student_id']}", json={"status": "ACTIVE", "email": "new@example.com"}, headers=staff_headers)
    assert r.json()["data"]["status"] == "ACTIVE"
    assert r.json()["data"]["email"] == "new@example.com"

    r = client.put(f"/api/students/{s['student_id']}", json={"status": "GONE"}, headers=staff_headers)
    assert r.status_code == 400


def test_student_email_conflict(client, staff_headers):
    client.post("/api/students", json=STUDENT, headers=staff_headers)
    r = client.post("/api/students", json={**STUDENT, "username": "other"}, headers=staff_headers)

    assert r.status_code == 409
    assert r.json()["error"] == "Email 'suzuki@example.com' is already in use"


def test_student_enrollments_and_delete(client, db, staff_headers):
    s = client.post("/api/students", json=STUDENT, headers=staff_headers).json()["data"]
    course = client.post("/api/courses", json={"name": "夏期講習"}, headers=staff_headers).json()["data"]
    client.post(
        "/api/enrollments",
        json={"course_id": course["course_id"], "student_id": s["student_id"], "enrollment_date": "2030-07-01"},
        headers=staff_headers,
    )

    r = client.get(f"/api/students/{s['student_id']}/enrollments", headers=staff_headers)
    assert [(e["course_name"], e["enrollment_date"]) for e in r.json()["data"]] == [("夏期講習", "2030-07-01")]

    r = client.delete(f"/api/students/{s['student_id']}", headers=staff_headers)
    assert r.status_code == 200
    assert client.get("/api/enrollments", headers=staff_headers).json()["data"] == []


def test_staff_admin_only(client, staff_headers):
    assert client.get("/api/staffs", headers=staff_headers).status_code == 403


def test_staff_crud(client, admin_headers, branch):
    r = client.post(
        "/api/staffs",
        json={"username": "staff9", "password": "secret123", "branch_ids": [branch.branch_id]},
        headers=admin_headers,
    )
    assert r.status_code == 201
    staff = r.json()["data"]
    assert staff["role"] == "STAFF"
    assert staff["branch_ids"] == [branch.branch_id]

    r = client.put(f"/api/staffs/{staff['id']}", json={"is_active": False}, headers=admin_headers)
    assert r.json()["data"]["is_active"] is False

    r = client.post("/auth/login", data={"username": "staff9", "password": "secret123"})
    assert r.status_code == 403

    assert client.delete(f"/api/staffs/{staff['id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/staffs/{staff['id']}", headers=admin_headers).status_code == 404


def test_staff_endpoints_ignore_other_roles(client, admin_headers, admin_user):
    assert client.get(f"/api/staffs/{admin_user.id}", headers=admin_headers).status_code == 404
