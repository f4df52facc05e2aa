"""
Tests for the /stamps lifecycle endpoints.

Background tasks run inside TestClient before the call returns, so the
status after a request already reflects the finished mock job.
"""
import pytest

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def _upload(client, headers, n=2):
    files = [("images", (f"p{i}.png", PNG, "image/png")) for i in range(n)]
    res = client.post("/images/upload", files=files, headers=headers)
    assert res.status_code == 200
    return res.json()["stampId"]


def _seed_processed(db, stamp_id, count=8):
    # inserted out of order on purpose
    for seq in reversed(range(1, count + 1)):
        db.put("images", f"{stamp_id}-p{seq}", {
            "stampId": stamp_id, "type": "processed", "url": f"https://cdn/{seq}.png",
            "sequence": seq, "filename": f"processed_{seq}.png", "createdAt": "2024-01-01T00:00:00.000Z",
        })


# ───────────────────────── set-preset / generate ─────────────────────────
def test_set_preset_snapshots_config_and_generates(client, db, alice):
    client.get("/presets/list", headers=alice["headers"])      # seeds defaults
    stamp_id = _upload(client, alice["headers"])

    res = client.post("/stamps/set-preset", json={"stampId": stamp_id, "presetId": "colorful-pop"},
                      headers=alice["headers"])

    assert res.status_code == 200
    assert res.json() == {"stampId": stamp_id, "presetId": "colorful-pop", "status": "generating"}
    stamp = db.doc("stamps", stamp_id)
    assert stamp["presetId"] == "colorful-pop"
    assert stamp["presetConfig"]["backgroundColor"] == "#FFE4E1"
    assert len(stamp["presetConfig"]["prompts"]) == 8
    # background generation already finished
    assert stamp["status"] == "generated"
    assert len([d for d in db.all("images") if d["type"] == "processed"]) == 8


def test_preset_edits_after_selection_do_not_change_stamp(client, db, alice):
    client.get("/presets/list", headers=alice["headers"])
    stamp_id = _upload(client, alice["headers"])
    client.post("/stamps/set-preset", json={"stampId": stamp_id, "presetId": "simple-white"},
                headers=alice["headers"])

    preset = db.doc("presets", "simple-white")
    preset["config"]["backgroundColor"] = "#000000"
    db.put("presets", "simple-white", preset)

    assert db.doc("stamps", stamp_id)["presetConfig"]["backgroundColor"] == "#FFFFFF"


def test_set_preset_unknown_preset(client, db, alice, make_stamp):
    stamp_id = make_stamp(status="generated")
    before = db.doc("stamps", stamp_id)

    res = client.post("/stamps/set-preset", json={"stampId": stamp_id, "presetId": "nope"},
                      headers=alice["headers"])

    assert res.status_code == 400
    assert res.json()["message"] == "Invalid preset ID"
    assert db.doc("stamps", stamp_id) == before


def test_set_preset_missing_fields(client, alice):
    res = client.post("/stamps/set-preset", json={"stampId": "x"}, headers=alice["headers"])
    assert res.status_code == 400
    assert res.json()["message"] == "stampId and presetId are required"


def test_set_preset_unknown_stamp(client, alice):
    res = client.post("/stamps/set-preset", json={"stampId": "missing", "presetId": "simple-white"},
                      headers=alice["headers"])
    assert res.status_code == 404
    assert res.json() == {"error": "Not Found", "message": "Stamp not found"}


@pytest.mark.parametrize("status", ["pending_upload", "pending_generate"])
def test_generate_from_pending(client, db, alice, make_stamp, status):
    stamp_id = make_stamp(status=status)

    res = client.post("/stamps/generate", json={"stampId": stamp_id}, headers=alice["headers"])

    assert res.status_code == 200
    assert res.json() == {"stampId": stamp_id, "status": "generating"}
    assert db.doc("stamps", stamp_id)["status"] == "generated"


def test_generate_rejects_wrong_status(client, db, alice, make_stamp):
    stamp_id = make_stamp(status="submitted")

    res = client.post("/stamps/generate", json={"stampId": stamp_id}, headers=alice["headers"])

    assert res.status_code == 400
    assert res.json()["message"].startswith("Invalid status: submitted")
    assert db.doc("stamps", stamp_id)["status"] == "submitted"


def test_generate_requires_stamp_id(client, alice):
    res = client.post("/stamps/generate", json={}, headers=alice["headers"])
    assert res.status_code == 400
    assert res.json()["message"] == "stampId is required"


def test_generation_failure_marks_stamp_failed(client, app, db, alice, make_stamp):
    class Broken:
        def generate(self, *args, **kwargs):
            raise RuntimeError("model offline")

    app.state.generator = Broken()
    stamp_id = make_stamp(status="pending_generate")

    res = client.post("/stamps/generate", json={"stampId": stamp_id}, headers=alice["headers"])

    assert res.status_code == 200
    assert db.doc("stamps", stamp_id)["status"] == "failed"


# ───────────────────────── status / preview ─────────────────────────
def test_stamp_status(client, alice, make_stamp):
    stamp_id = make_stamp(status="generated", presetId="simple-white")

    res = client.get(f"/stamps/{stamp_id}/status", headers=alice["headers"])

    assert res.status_code == 200
    body = res.json()
    assert body["stampId"] == stamp_id
    assert body["status"] == "generated"
    assert body["retryCount"] == 0
    assert body["presetId"] == "simple-white"


def test_status_list_newest_first(client, alice, bob, make_stamp):
    first = make_stamp(status="generated")
    make_stamp(user_id="bob", status="generated")
    second = make_stamp(status="failed")

    res = client.get("/stamps/status", params={"userId": "alice"}, headers=alice["headers"])

    assert res.status_code == 200
    body = res.json()
    assert body["userId"] == "alice"
    assert [s["stampId"] for s in body["stamps"]] == [second, first]


def test_status_list_for_someone_else(client, alice):
    res = client.get("/stamps/status", params={"userId": "bob"}, headers=alice["headers"])
    assert res.status_code == 403
    assert res.json()["message"] == "You can only access your own stamp statuses"


def test_preview_returns_processed_in_sequence(client, db, alice, make_stamp):
    stamp_id = make_stamp(status="generated")
    _seed_processed(db, stamp_id)

    res = client.get(f"/stamps/{stamp_id}/preview", headers=alice["headers"])

    assert res.status_code == 200
    body = res.json()
    assert [img["sequence"] for img in body["processedImages"]] == list(range(1, 9))
    assert "mainImage" not in body


def test_preview_after_generation_includes_main(client, db, alice, make_stamp):
    stamp_id = make_stamp(status="pending_generate")
    client.post("/stamps/generate", json={"stampId": stamp_id}, headers=alice["headers"])

    body = client.get(f"/stamps/{stamp_id}/preview", headers=alice["headers"]).json()

    assert len(body["processedImages"]) == 8
    assert body["mainImage"]["filename"] == "main.png"


@pytest.mark.parametrize("call", [
    lambda c, sid, h: c.get(f"/stamps/{sid}/status", headers=h),
    lambda c, sid, h: c.get(f"/stamps/{sid}/preview", headers=h),
    lambda c, sid, h: c.post("/stamps/set-preset", json={"stampId": sid, "presetId": "simple-white"}, headers=h),
    lambda c, sid, h: c.post("/stamps/generate", json={"stampId": sid}, headers=h),
    lambda c, sid, h: c.post("/stamps/submit", json={"stampId": sid}, headers=h),
    lambda c, sid, h: c.post("/stamps/retry", json={"stampId": sid}, headers=h),
])
def test_non_owner_is_forbidden_and_nothing_changes(client, db, alice, bob, make_stamp, call):
    stamp_id = make_stamp(user_id="alice", status="failed", retryCount=1)
    before = db.doc("stamps", stamp_id)

    res = call(client, stamp_id, bob["headers"])

    assert res.status_code == 403
    assert res.json()["error"] == "Forbidden"
    assert db.doc("stamps", stamp_id) == before


# ───────────────────────── submit / retry ─────────────────────────
def test_submit_generated_stamp(client, db, alice, make_stamp):
    stamp_id = make_stamp(status="generated")

    res = client.post("/stamps/submit", json={"stampId": stamp_id}, headers=alice["headers"])

    assert res.status_code == 200
    assert res.json() == {"stampId": stamp_id, "status": "submitting"}
    assert db.doc("stamps", stamp_id)["status"] == "submitted"


def test_submit_when_session_expires(client, db, alice, make_stamp, session_ok):
    session_ok.valid = False
    stamp_id = make_stamp(status="generated")

    client.post("/stamps/submit", json={"stampId": stamp_id}, headers=alice["headers"])
    assert db.doc("stamps", stamp_id)["status"] == "session_expired"

    # the user signs in again and resubmits
    session_ok.valid = True
    res = client.post("/stamps/submit", json={"stampId": stamp_id}, headers=alice["headers"])
    assert res.status_code == 200
    assert db.doc("stamps", stamp_id)["status"] == "submitted"


def test_submit_rejects_failed_stamp(client, alice, make_stamp):
    stamp_id = make_stamp(status="failed")
    res = client.post("/stamps/submit", json={"stampId": stamp_id}, headers=alice["headers"])
    assert res.status_code == 400


def test_retry_failed_stamp(client, db, alice, make_stamp):
    stamp_id = make_stamp(status="failed", retryCount=1)

    res = client.post("/stamps/retry", json={"stampId": stamp_id}, headers=alice["headers"])

    assert res.status_code == 200
    assert res.json() == {"stampId": stamp_id, "status": "submitting", "retryCount": 2}
    doc = db.doc("stamps", stamp_id)
    assert doc["retryCount"] == 2
    assert doc["status"] == "submitted"


def test_retry_only_from_failed(client, db, alice, make_stamp):
    stamp_id = make_stamp(status="generated", retryCount=0)

    res = client.post("/stamps/retry", json={"stampId": stamp_id}, headers=alice["headers"])

    assert res.status_code == 400
    assert res.json()["message"] == "Invalid status: generated. Expected one of: failed"
    assert db.doc("stamps", stamp_id)["retryCount"] == 0


def test_submission_failure_marks_failed_then_retry_counts(client, app, db, alice, make_stamp):
    class Flaky:
        calls = 0

        def submit(self, stamp_id):
            Flaky.calls += 1
            if Flaky.calls == 1:
                raise RuntimeError("upload form rejected")

    app.state.submitter = Flaky()
    stamp_id = make_stamp(status="generated")

    client.post("/stamps/submit", json={"stampId": stamp_id}, headers=alice["headers"])
    assert db.doc("stamps", stamp_id)["status"] == "failed"

    res = client.post("/stamps/retry", json={"stampId": stamp_id}, headers=alice["headers"])
    assert res.json()["retryCount"] == 1
    assert db.doc("stamps", stamp_id)["status"] == "submitted"
