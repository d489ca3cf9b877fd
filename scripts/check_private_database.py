"""
Check a Cosmos DB private database end to end.

Steps:
1. Readiness (container, database and account usable)
2. Save a random name to the test record
3. Read it back through a fresh refresh
4. Delete the test record

Usage:
    export PRIVATE_RECORD_CONTAINER="iCloud.com.example.PrivateDatabase"
    export PRIVATE_RECORD_USER_ID="user-abc123"
    export PRIVATE_RECORD_COSMOS_ENDPOINT="https://your-account.documents.azure.com:443/"
    export PRIVATE_RECORD_COSMOS_AUTH_METHOD="default_credential"

    python scripts/check_private_database.py [--settings settings.yaml] [--json-logs]
"""

import argparse
import asyncio
import logging
import sys
import uuid
from pathlib import Path

from private_record_sync import (
    RecordSyncController,
    SyncConfig,
    check_readiness,
)
from private_record_sync.logging_utils import configure_structured_logging
from private_record_sync.store.cosmos import CosmosRecordStore


async def check(config: SyncConfig) -> bool:
    """Run the checks, returning True when all of them passed."""
    print(f"Endpoint:  {config.cosmos_endpoint}")
    print(f"Container: {config.container_identifier}")
    print(f"Database:  {config.database}")
    print(f"Auth:      {config.cosmos_auth_method.value}")
    print()

    async with CosmosRecordStore.from_config(config) as store:
        print("1. Checking readiness...")
        readiness = await check_readiness(store)
        if not readiness.is_ready:
            print(f"   ✗ {readiness.status.value}: {readiness.hint}")
            return False
        print(f"   ✓ {readiness.status.value} ({readiness.zone_count} zone(s))")

        controller = RecordSyncController.create(store, use_test_identifier=True)
        await controller.wait_until_ready()

        random_name = str(uuid.uuid4())
        print(f"2. Saving {random_name}...")
        await controller.save_record(random_name)
        print("   ✓ Saved")

        print("3. Reading back...")
        await controller.refresh_last_person()
        if controller.last_person != random_name:
            print(f"   ✗ Read {controller.last_person!r}")
            return False
        print("   ✓ Matches")

        print("4. Cleaning up test record...")
        await controller.delete_last_person()
        print("   ✓ Deleted")

    return True


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--settings", type=Path, help="YAML settings file (default: environment)")
    parser.add_argument("--json-logs", action="store_true", help="Emit structured JSON logs")
    args = parser.parse_args()

    if args.json_logs:
        configure_structured_logging(logging.INFO)
    else:
        logging.basicConfig(
            level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    config = SyncConfig.from_file(args.settings) if args.settings else SyncConfig.from_environment()

    try:
        ok = asyncio.run(check(config))
    except Exception as e:
        print(f"\n❌ Error: {type(e).__name__}: {e}")
        return 1
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
