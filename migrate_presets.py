# migrate_presets.py
"""
One-off: overwrite ``config.prompts`` of the default presets with the
current prompt set. Other preset fields are left alone.
"""
import logging
import sys

from linestamp.core.config import get_settings
from linestamp.models.catalog import DEFAULT_PRESETS
from linestamp.services.gcp_clients import build_clients

logging.basicConfig(stream=sys.stderr, level=logging.INFO)
logger = logging.getLogger("migrate_presets")


def run(db, dry_run: bool = False) -> int:
    presets = db.collection("presets")
    batch = db.batch()
    updated = 0

    for preset_id, data in DEFAULT_PRESETS.items():
        ref = presets.document(preset_id)
        if not ref.get().exists:
            logger.info("Skipping %s: not in Firestore", preset_id)
            continue
        prompts = data["config"]["prompts"]
        if dry_run:
            print(f"[DRY] would update {preset_id}: {len(prompts)} prompts")
        else:
            batch.update(ref, {"config.prompts": prompts})
        updated += 1

    if not dry_run and updated:
        batch.commit()
    print(f"Migrated {updated} presets. {'(dry-run)' if dry_run else '(written)'}")
    return updated


if __name__ == "__main__":
    import argparse
    ap = argparse.ArgumentParser()
    ap.add_argument("--dry-run", action="store_true", help="print changes, don't write")
    args = ap.parse_args()

    clients = build_clients(get_settings())
    if clients is None:
        sys.exit("Firebase is not configured (set FIREBASE_PROJECT_ID or GOOGLE_APPLICATION_CREDENTIALS)")
    run(clients.db, dry_run=args.dry_run)
