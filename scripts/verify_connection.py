#!/usr/bin/env python3
"""
Connection Verification Script

This script verifies that every configured WEMS datasource can obtain a
bearer token and list its endpoints. Run it after editing config.json to make
sure credentials and base URLs are correct.

Usage:
    python scripts/verify_connection.py [config.json]

Expected output:
    - Connection successful: token acquired, endpoint list status printed
    - Connection failed: error details for troubleshooting
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

try:
    from wems_datasource.adapters.wems import WemsDatasource
    from wems_datasource.config.models import (
        AppConfig,
        DatasourceInstanceSettings,
        DatasourceSettings,
    )
    from wems_datasource.schemas.wems_contract import HealthStatus, ResourcePath
except ImportError as e:
    print(f"❌ Critical Import Error: {e}")
    print("   Ensure you are running from project root; dependencies installed.")
    sys.exit(1)

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def verify_single_datasource(
    uid: str, blob: DatasourceInstanceSettings
) -> bool:
    """Verify a single datasource: token, then endpoint list."""
    logger.info("-" * 50)
    logger.info(f"🔌 Verifying datasource: {uid}")

    try:
        settings = DatasourceSettings.from_instance_settings(blob)
    except ValueError as e:
        logger.error(f"❌ Invalid settings for '{uid}'")
        logger.error(f"   Error: {e}")
        return False

    datasource = WemsDatasource.from_settings(settings)
    try:
        logger.info(f"   Target: {datasource.base_url}")
        health = await datasource.check_health()
        if health.status is not HealthStatus.OK:
            logger.error(f"❌ {health.message}")
            logger.info("")
            logger.info("💡 Troubleshooting:")
            logger.info("   1. Check client_id in jsonData")
            logger.info("   2. Check client_secret in secureJsonData")
            logger.info("   3. Check base_url is reachable")
            return False
        logger.info("✓ Token acquired")

        listing = await datasource.call_resource(ResourcePath.ENDPOINT_LIST.value)
        if listing.status != 200:
            logger.error(f"❌ Endpoint list answered {listing.status}")
            logger.error(f"   Body: {listing.body[:500]!r}")
            return False
        try:
            endpoints = listing.json_body()
        except ValueError as e:
            logger.error("❌ Endpoint list answered 200 but is not valid JSON")
            logger.error(f"   Error: {e}")
            logger.error(f"   Body: {listing.body[:500]!r}")
            return False
        count = len(endpoints) if isinstance(endpoints, list) else "Unknown"
        logger.info("✅ CONNECTION SUCCESSFUL!")
        logger.info(f"  Endpoints accessible: {count}")
        return True
    finally:
        await datasource.dispose()


async def verify_connection(config_path: Path) -> bool:
    """
    Verify connection of all configured datasources.
    """
    try:
        logger.info(f"🔍 Loading configuration from {config_path}...")
        if not config_path.exists():
            raise FileNotFoundError(f"{config_path} does not exist")

        config = AppConfig.load(config_path)

        if not config.datasources:
            logger.warning(f"⚠️ No datasources configured in {config_path}.")
            logger.info("   Add datasources to the 'datasources' block")
            return True

        logger.info(
            f"✓ Configuration loaded: {len(config.datasources)} datasource(s) found"
        )

        results = []
        for uid, blob in config.datasources.items():
            results.append(await verify_single_datasource(uid, blob))

        all_success = all(results)

        logger.info("-" * 50)
        if all_success:
            logger.info("🎉 Your datasource configuration is working correctly!")
        else:
            logger.error("❌ Some datasources failed verification. See logs above.")

        return all_success

    except FileNotFoundError as e:
        logger.error("❌ Configuration file not found")
        logger.error(f"   Error: {e}")
        logger.info("")
        logger.info("💡 Troubleshooting:")
        logger.info("   1. Copy config.example.json to config.json")
        return False

    except ValueError as e:
        logger.error("❌ Configuration file is invalid")
        logger.error(f"   Error: {e}")
        logger.info("")
        logger.info("💡 Troubleshooting:")
        logger.info("   1. Verify the file is valid JSON")
        logger.info('   2. Expected shape: {"datasources": {"<uid>": {...}}}')
        return False


def main():
    """Main entry point."""
    print("=" * 70)
    print("WEMS Datasource - Connection Verification")
    print("=" * 70)
    print()

    config_path = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("config.json")
    success = asyncio.run(verify_connection(config_path))

    print()
    print("=" * 70)

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
