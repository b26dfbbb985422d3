#!/usr/bin/env python3
"""Script to wipe the local Illustra cache (sessions, messages, selection).

Usage:
  python scripts/reset_cache.py [--force] [--keep-auth]
"""

import argparse
import sys
from pathlib import Path

# Add project root to sys.path so we can import the illustra package
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

from illustra.core.persistence import LocalCache


def reset_cache(force: bool, keep_auth: bool) -> int:
    """Delete cached entries after confirmation. Returns the number removed."""
    print("🧊 Resetting local cache...")
    cache = LocalCache()

    if not cache.is_healthy():
        print("  ❌ Could not open the cache database. Check CACHE_DATABASE_URL.")
        return 0

    keys = cache.keys()
    if not keys:
        print("  ℹ️ Cache is already empty.")
        return 0

    if not force:
        scope = "all cached chats" + ("" if keep_auth else " and the saved login")
        confirm = input(f"  This will delete {scope} ({len(keys)} entries). Continue? [y/N]: ")
        if confirm.lower() != 'y':
            print("  Skipping cache reset.")
            return 0

    removed = cache.clear(keep_auth=keep_auth)
    print(f"  ✅ Removed {removed} cached entries.")
    return removed


def main():
    parser = argparse.ArgumentParser(description="Reset the Illustra local cache.")
    parser.add_argument("--force", "-f", action="store_true", help="Skip confirmation prompt")
    parser.add_argument("--keep-auth", action="store_true", help="Keep the saved login token")
    args = parser.parse_args()

    load_dotenv(project_root / ".env")

    print("\n⚠️ WARNING: Cache Reset ⚠️\n")
    reset_cache(args.force, args.keep_auth)
    print("\n✅ Done!")


if __name__ == "__main__":
    main()
