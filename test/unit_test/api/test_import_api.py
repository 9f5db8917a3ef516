import io

import pytest
from openpyxl import load_workbook

from juku_admin.config import settings
from juku_admin.models.booth import Booth
from juku_admin.models.subject import Subject
from juku_admin.models.teacher import Teacher
from juku_admin.models.user import User
from juku_admin.routers import imports as imports_router
from juku_admin.utils.csv_parser import parse_csv
from juku_admin.utils.hashing import verify_password
from juku_admin.utils.import_lock import acquire_import_lock, is_import_locked
from juku_admin.utils.import_session import import_sessions


def _upload(client, headers, entity, text, params="", encoding="utf-8", filename="data.csv"):
    return client.post(
        f"/api/import/{entity}{params}",
        files={"file": (filename, io.BytesIO(text.encode(encoding)), "text/csv")},
        headers=headers,
    )


def test_import_success(client, db, staff_headers, staff_user):
    r = _upload(client, staff_headers, "subjects", "科目名,備考\n英語,必修\n数学,\n")

    assert r.status_code == 200
    data = r.json()["data"]
    assert (data["processed"], data["created"], data["updated"], data["skipped"]) == (2, 2, 0, 0)
    assert data["errors"] == []
    assert db.query(Subject).count() == 2

    session = import_sessions.get(data["session_id"])
    assert session.status == "succeeded"
    assert session.user_id == staff_user.id
    assert session.filename == "data.csv"
    assert not is_import_locked(staff_user.id)


def test_partial_failure_is_207_with_error_csv(client, staff_headers):
    r = _upload(client, staff_headers, "evaluations", "評価名,スコア\nS,5\nA,abc\n", params="?return=errors_csv")

    assert r.status_code == 207
    data = r.json()["data"]
    assert data["created"] == 1
    assert data["errors"] == [{"row": 3, "errors": ["スコア: must be a number"]}]
    assert data["error_csv_filename"].startswith("evaluations_import_errors_")
    rows = parse_csv(data["error_csv"].encode("utf-8")).data
    assert [r["評価名"] for r in rows] == ["A"]
    assert import_sessions.get(data["session_id"]).message == "Completed with errors"


def test_all_rows_failed_is_400(client, db, staff_headers):
    r = _upload(client, staff_headers, "evaluations", "評価名,スコア\nS,x\nA,y\n")

    assert r.status_code == 400
    body = r.json()
    assert body["error"] == "All rows failed to import"
    assert len(body["details"]["errors"]) == 2
    assert import_sessions.get(body["details"]["session_id"]).status == "failed"


def test_dry_run(client, db, staff_headers):
    r = _upload(client, staff_headers, "subjects", "科目名\n英語\n", params="?dry_run=true")

    assert r.status_code == 200
    assert r.json()["data"]["dry_run"] is True
    assert r.json()["data"]["created"] == 1
    assert db.query(Subject).count() == 0


def test_shift_jis_upload(client, staff_headers):
    r = _upload(client, staff_headers, "subjects", "科目名\n国語\n", encoding="cp932")

    assert r.status_code == 200
    assert r.json()["data"]["encoding"] == "shift_jis"


def test_missing_columns_fail_the_session(client, staff_headers, staff_user):
    r = _upload(client, staff_headers, "subjects", "備考\nx\n")

    assert r.status_code == 400
    assert r.json()["error"] == "Missing required columns: 科目名"
    sessions = import_sessions.list_for_user(staff_user.id)
    assert [s.status for s in sessions] == ["failed"]


def test_file_checks(client, staff_headers, monkeypatch):
    r = client.post("/api/import/subjects", headers=staff_headers)
    assert r.status_code == 400
    assert r.json() == {"error": "No file uploaded"}

    r = _upload(client, staff_headers, "subjects", "  \n")
    assert r.status_code == 400
    assert r.json() == {"error": "CSV file is empty"}

    monkeypatch.setattr(settings, "IMPORT_MAX_BYTES", 10)
    r = _upload(client, staff_headers, "subjects", "科目名\n英語\n数学\n")
    assert r.status_code == 413


def test_unknown_entity_and_role_guards(client, staff_headers, make_user, headers_for, branch):
    assert _upload(client, staff_headers, "rooms", "a\nb\n").status_code == 404
    # branches are ADMIN only
    assert _upload(client, staff_headers, "branches", "校舎名\n駅前校\n").status_code == 403

    teacher = make_user("teacher1", "TEACHER", [branch.branch_id])
    assert _upload(client, headers_for(teacher, branch.branch_id), "subjects", "科目名\n英語\n").status_code == 403


def test_concurrent_import_is_rejected(client, staff_headers, staff_user):
    acquire_import_lock(staff_user.id)

    r = _upload(client, staff_headers, "subjects", "科目名\n英語\n")
    assert r.status_code == 429
    assert r.json() == {"error": "An import is already running. Retry after it completes."}


def test_import_rate_limit(client, staff_headers, monkeypatch):
    monkeypatch.setattr(settings, "IMPORT_RATE_CAPACITY", 1)
    monkeypatch.setattr(settings, "IMPORT_RATE_REFILL_PER_SEC", 0.0)

    assert _upload(client, staff_headers, "subjects", "科目名\n英語\n").status_code == 200
    r = _upload(client, staff_headers, "subjects", "科目名\n数学\n")
    assert r.status_code == 429
    assert r.json() == {"error": "Too many import requests. Please wait and retry."}


def test_background_import(client, db, staff_headers, staff_user):
    r = _upload(client, staff_headers, "subjects", "科目名\n英語\n数学\n", params="?background=1")

    assert r.status_code == 202
    pending = r.json()["data"]
    assert pending["status"] == "pending"

    # TestClient runs background tasks before returning
    r = client.get(f"/api/import/sessions/{pending['id']}", headers=staff_headers)
    assert r.status_code == 200
    done = r.json()["data"]
    assert done["status"] == "succeeded"
    assert done["created"] == 2
    assert done["started_at"] is not None
    assert db.query(Subject).count() == 2
    assert not is_import_locked(staff_user.id)


def test_session_visibility(client, staff_headers, admin_headers, make_user, headers_for, branch):
    r = _upload(client, staff_headers, "subjects", "科目名\n英語\n")
    session_id = r.json()["data"]["session_id"]

    other = make_user("staff2", "STAFF", [branch.branch_id])
    assert client.get(f"/api/import/sessions/{session_id}", headers=headers_for(other)).status_code == 403
    assert client.get(f"/api/import/sessions/{session_id}", headers=admin_headers).status_code == 200
    assert client.get("/api/import/sessions/nope", headers=admin_headers).status_code == 404

    assert [s["id"] for s in client.get("/api/import/sessions", headers=staff_headers).json()["data"]] == [session_id]
    assert client.get("/api/import/sessions", headers=headers_for(other)).json()["data"] == []


def test_booth_import_uses_selected_branch(client, db, staff_headers, branch):
    r = _upload(client, staff_headers, "booths", "ブース名,ステータス\nBooth-1,有効\nBooth-2,無効\n")

    assert r.status_code == 200
    assert {b.branch_id for b in db.query(Booth).all()} == {branch.branch_id}


def test_template_download(client, staff_headers):
    r = client.get("/api/import/teachers/template", headers=staff_headers)

    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert 'filename="teachers_template.csv"' in r.headers["content-disposition"]
    first_line = r.content.decode("utf-8").lstrip("\ufeff").splitlines()[0]
    assert first_line.split(",")[:4] == ["ID", "名前", "カナ", "ユーザー名"]


def test_export_csv_and_xlsx(client, staff_headers):
    _upload(client, staff_headers, "subjects", "科目名,備考\n英語,必修\n")

    r = client.get("/api/export/subjects", headers=staff_headers)
    assert r.status_code == 200
    rows = parse_csv(r.content).data
    assert [(row["科目名"], row["備考"]) for row in rows] == [("英語", "必修")]
    assert rows[0]["ID"]

    r = client.get("/api/export/subjects?format=xlsx", headers=staff_headers)
    assert r.status_code == 200
    ws = load_workbook(io.BytesIO(r.content)).active
    assert [c.value for c in ws[1]] == ["ID", "科目名", "備考"]
    assert ws.cell(row=2, column=2).value == "英語"

    assert client.get("/api/export/subjects?format=pdf", headers=staff_headers).status_code == 400


def test_export_then_reimport_updates(client, db, staff_headers):
    _upload(client, staff_headers, "subjects", "科目名,備考\n英語,old\n")
    exported = client.get("/api/export/subjects", headers=staff_headers).content.decode("utf-8")
    edited = exported.replace("old", "new")

    r = _upload(client, staff_headers, "subjects", edited)
    assert r.status_code == 200
    assert r.json()["data"]["updated"] == 1
    db.expire_all()
    assert db.query(Subject).one().notes == "new"


def test_overflowing_cell_is_reported_per_row(client, staff_headers, staff_user):
    r = _upload(client, staff_headers, "evaluations", "評価名,スコア\nA,inf\nB,5\n")

    assert r.status_code == 207
    assert r.json()["data"]["errors"] == [{"row": 2, "errors": ["スコア: must be a number"]}]
    assert [s.status for s in import_sessions.list_for_user(staff_user.id)] == ["succeeded"]


def test_unexpected_error_fails_the_session(client, staff_headers, staff_user, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(imports_router, "run_import", boom)

    with pytest.raises(RuntimeError):
        _upload(client, staff_headers, "subjects", "科目名\n英語\n")

    sessions = import_sessions.list_for_user(staff_user.id)
    assert [(s.status, s.message) for s in sessions] == [("failed", "Internal server error")]
    assert not is_import_locked(staff_user.id)


def test_people_import_and_export_stay_in_selected_branch(client, db, staff_headers, make_branch, make_user):
    other = make_branch("駅前校")
    account = make_user("t_other", "TEACHER", [other.branch_id])
    teacher = Teacher(user_id=account.id, name="講師")
    db.add(teacher)
    db.commit()

    r = _upload(
        client, staff_headers, "teachers",
        f"ID,名前,ユーザー名,パスワード\n{teacher.teacher_id},乗っ取り,t_other,hacked123\n",
    )
    assert r.status_code == 400
    assert r.json()["details"]["errors"] == [
        {"row": 2, "errors": [f"Teacher with ID '{teacher.teacher_id}' not found"]}
    ]
    db.expire_all()
    assert db.get(Teacher, teacher.teacher_id).name == "講師"
    assert not verify_password("hacked123", db.get(User, account.id).password_hash)

    r = client.get("/api/export/teachers", headers=staff_headers)
    assert r.status_code == 200
    assert parse_csv(r.content).data == []


def test_staff_import_is_admin_only(client, db, staff_headers, admin_headers):
    csv_text = "ユーザー名,パスワード,所属校舎\nstaff9,secret123,本校\n"
    assert _upload(client, staff_headers, "staffs", csv_text).status_code == 403

    r = _upload(client, admin_headers, "staffs", csv_text)
    assert r.status_code == 200
    assert r.json()["data"]["created"] == 1
    assert db.query(User).filter(User.username == "staff9").one().role == "STAFF"

    rows = parse_csv(client.get("/api/export/staffs", headers=admin_headers).content).data
    assert [(row["ユーザー名"], row["所属校舎"]) for row in rows] == [("staff1", "本校"), ("staff9", "本校")]
