# seed_data.py
"""
Seed the Firestore emulator with the default presets, two test users and a
sample stamp. Points at ``localhost:8080`` unless FIRESTORE_EMULATOR_HOST is
already set.
"""
import logging
import os
import sys

os.environ.setdefault("FIRESTORE_EMULATOR_HOST", "localhost:8080")
os.environ.setdefault("FIREBASE_PROJECT_ID", "demo-line-stamp")

from linestamp.core.config import get_settings  # noqa: E402
from linestamp.models.catalog import DEFAULT_PRESETS  # noqa: E402
from linestamp.services.gcp_clients import build_clients  # noqa: E402
from linestamp.services.storage_gcp import fs_safe, now_iso  # noqa: E402

logging.basicConfig(stream=sys.stderr, level=logging.INFO)

TEST_USERS = [
    {"uid": "test-user-1", "displayName": "テストユーザー1", "email": "test1@example.com", "tokenBalance": 100},
    {"uid": "test-user-2", "displayName": "テストユーザー2", "email": "test2@example.com", "tokenBalance": 50},
]


def run(db) -> None:
    now = now_iso()
    batch = db.batch()

    for preset_id, data in DEFAULT_PRESETS.items():
        batch.set(db.collection("presets").document(preset_id),
                  fs_safe({"id": preset_id, **data, "createdAt": now, "updatedAt": now}))
    for user in TEST_USERS:
        batch.set(db.collection("users").document(user["uid"]),
                  {**user, "photoURL": None, "createdAt": now, "updatedAt": now})

    first = next(iter(DEFAULT_PRESETS))
    batch.set(db.collection("stamps").document("test-stamp-1"), {
        "userId": TEST_USERS[0]["uid"],
        "status": "generated",
        "presetId": first,
        "presetConfig": fs_safe(DEFAULT_PRESETS[first]["config"]),
        "retryCount": 0,
        "createdAt": now,
        "updatedAt": now,
    })
    batch.commit()

    print(f"✅ Seeded {len(DEFAULT_PRESETS)} presets, {len(TEST_USERS)} users and 1 stamp")
    print(f"   emulator: {os.environ['FIRESTORE_EMULATOR_HOST']}")


if __name__ == "__main__":
    clients = build_clients(get_settings())
    if clients is None:
        sys.exit("Could not connect to the Firestore emulator")
    run(clients.db)
