from juku_admin.models.line_channel import LineChannel
from juku_admin.utils.encryption import decrypt, encrypt, is_encrypted

BASE = "/api/admin/line-channels"
TOKEN = "abcdefghij-long-channel-access-token-0123456789"
SECRET = "s3cr3t-channel-secret-value"


def _create(client, headers, **overrides):
    body = {"name": "本校 講師用", "channel_access_token": TOKEN, "channel_secret": SECRET}
    body.update(overrides)
    return client.post(BASE, json=body, headers=headers)


def test_admin_only(client, staff_headers):
    assert client.get(BASE, headers=staff_headers).status_code == 403


def test_create_stores_encrypted_and_returns_previews(client, db, admin_headers):
    r = _create(client, admin_headers)
    assert r.status_code == 201
    c = r.json()["data"]
    assert c["channel_access_token_preview"] == "abcdefghij...0123456789"
    assert c["channel_secret_preview"] == "s3cr...alue"
    assert c["webhook_url"] == f"https://juku.example.com/api/line/webhook/{c['channel_id']}"
    assert TOKEN not in r.text and SECRET not in r.text

    row = db.get(LineChannel, c["channel_id"])
    assert is_encrypted(row.channel_access_token)
    assert decrypt(row.channel_access_token) == TOKEN
    assert decrypt(row.channel_secret) == SECRET


def test_single_default(client, admin_headers):
    a = _create(client, admin_headers, name="A", is_default=True).json()["data"]
    b = _create(client, admin_headers, name="B", is_default=True).json()["data"]

    channels = {c["channel_id"]: c["is_default"] for c in client.get(BASE, headers=admin_headers).json()["data"]}
    assert channels == {a["channel_id"]: False, b["channel_id"]: True}

    client.put(f"{BASE}/{a['channel_id']}", json={"is_default": True}, headers=admin_headers)
    channels = {c["channel_id"]: c["is_default"] for c in client.get(BASE, headers=admin_headers).json()["data"]}
    assert channels == {a["channel_id"]: True, b["channel_id"]: False}


def test_update_blank_credentials_keep_old_values(client, db, admin_headers):
    c = _create(client, admin_headers).json()["data"]

    r = client.put(
        f"{BASE}/{c['channel_id']}",
        json={"name": "改名", "channel_access_token": "", "channel_secret": "new-secret-value"},
        headers=admin_headers,
    )
    assert r.status_code == 200
    assert r.json()["data"]["name"] == "改名"

    db.expire_all()
    row = db.get(LineChannel, c["channel_id"])
    assert decrypt(row.channel_access_token) == TOKEN
    assert decrypt(row.channel_secret) == "new-secret-value"


def test_branch_assignment_one_role_channel_per_branch(client, admin_headers, branch):
    a = _create(client, admin_headers, name="A").json()["data"]
    b = _create(client, admin_headers, name="B").json()["data"]

    r = client.put(
        f"{BASE}/{a['channel_id']}/branches",
        json={"branches": [{"branch_id": branch.branch_id, "channel_type": "TEACHER"}]},
        headers=admin_headers,
    )
    assert r.status_code == 200
    assert r.json()["data"]["branches"] == [{"branch_id": branch.branch_id, "channel_type": "TEACHER"}]

    r = client.put(
        f"{BASE}/{b['channel_id']}/branches",
        json={"branches": [{"branch_id": branch.branch_id, "channel_type": "TEACHER"}]},
        headers=admin_headers,
    )
    assert r.status_code == 409
    assert r.json()["details"] == {"branch_id": branch.branch_id, "channel_id": a["channel_id"]}

    r = client.put(
        f"{BASE}/{b['channel_id']}/branches",
        json={"branches": [{"branch_id": branch.branch_id, "channel_type": "STUDENT"}]},
        headers=admin_headers,
    )
    assert r.status_code == 200

    r = client.put(
        f"{BASE}/{b['channel_id']}/branches",
        json={"branches": [{"branch_id": "nope"}]},
        headers=admin_headers,
    )
    assert r.status_code == 400


def test_check_encryption_and_reencrypt_legacy_plaintext(client, db, admin_headers):
    legacy = LineChannel(name="legacy", channel_access_token="plain-token-value-0123456789", channel_secret="plain-secret")
    lost = LineChannel(
        name="lost-key",
        channel_access_token=encrypt("x" * 20, secret="old-key"),
        channel_secret=encrypt("y" * 20, secret="old-key"),
    )
    db.add_all([legacy, lost])
    db.commit()
    _create(client, admin_headers, name="healthy")

    r = client.get(f"{BASE}/check-encryption", headers=admin_headers)
    report = r.json()["data"]
    assert report["total_channels"] == 3
    assert report["healthy_channels"] == 1
    by_name = {c["name"]: c for c in report["channels"]}
    assert by_name["legacy"]["token_encrypted"] is False
    assert by_name["lost-key"]["token_encrypted"] is True
    assert by_name["lost-key"]["token_decryptable"] is False

    # legacy plaintext previews still work
    legacy_out = client.get(f"{BASE}/{legacy.channel_id}", headers=admin_headers).json()["data"]
    assert legacy_out["channel_access_token_preview"] == "plain-toke...0123456789"
    lost_out = client.get(f"{BASE}/{lost.channel_id}", headers=admin_headers).json()["data"]
    assert lost_out["channel_secret_preview"] == "****"

    r = client.post(f"{BASE}/{legacy.channel_id}/reencrypt", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["data"]["reencrypted"] == ["channel_access_token", "channel_secret"]

    r = client.post(f"{BASE}/{lost.channel_id}/reencrypt", headers=admin_headers)
    assert r.status_code == 400

    r = client.post(f"{BASE}/{lost.channel_id}/reencrypt", json={"channel_access_token": "new-token"}, headers=admin_headers)
    assert r.status_code == 400

    r = client.post(
        f"{BASE}/{lost.channel_id}/reencrypt",
        json={"channel_access_token": "new-token-value", "channel_secret": "new-secret-value"},
        headers=admin_headers,
    )
    assert r.status_code == 200

    report = client.get(f"{BASE}/check-encryption", headers=admin_headers).json()["data"]
    assert report["problem_channels"] == 0


def test_delete_removes_branch_links(client, admin_headers, branch):
    c = _create(client, admin_headers, branch_ids=[branch.branch_id]).json()["data"]
    assert c["branches"] == [{"branch_id": branch.branch_id, "channel_type": "UNSPECIFIED"}]

    assert client.delete(f"{BASE}/{c['channel_id']}", headers=admin_headers).status_code == 200
    assert client.get(f"{BASE}/{c['channel_id']}", headers=admin_headers).status_code == 404
