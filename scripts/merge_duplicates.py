#!/usr/bin/env python3
"""
Merge duplicate person records.

People sharing a normalized name (case-insensitive, whitespace-collapsed) are
merged into the most complete member of their group: every fact moves to the
survivor and the other records are deleted. Without --execute the script only
reports what it would do.

Usage:
    python scripts/merge_duplicates.py                  # list duplicate groups
    python scripts/merge_duplicates.py --execute        # merge them
    python scripts/merge_duplicates.py --ensure-origin  # merge, then fix the Origin
    python scripts/merge_duplicates.py --search "name pattern"
"""
import sys
import logging
import argparse
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from api.services.consolidator import (
    completeness_score,
    ensure_origin,
    find_duplicate_groups,
    merge_duplicates,
    pick_keeper,
)
from api.services.crm_store import CrmStore
from api.services.identity import normalize_email, normalize_phone

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


def search_people(store: CrmStore, pattern: str) -> list:
    """Search for people matching a pattern in name, email or phone."""
    pattern_lower = pattern.lower()
    pattern_digits = normalize_phone(pattern)

    matches = []
    for p in store.list_people():
        if pattern_lower in (p.name or "").lower():
            matches.append(p)
        elif pattern_lower in (normalize_email(p.primary_email) or ""):
            matches.append(p)
        elif pattern_digits and pattern_digits in (normalize_phone(p.phone) or ""):
            matches.append(p)
    return matches


def describe_duplicates(store: CrmStore) -> list[dict]:
    """Duplicate groups with the member each merge would keep."""
    groups = []
    for group in find_duplicate_groups(store.list_people()):
        groups.append({
            'name': group[0].name,
            'keeper': pick_keeper(group),
            'people': group,
        })
    return groups


def main(argv=None):
    parser = argparse.ArgumentParser(description='Merge duplicate person records')
    parser.add_argument('--db', help='Path to the SQLite database (default: BRIDGE_DB_PATH)')
    parser.add_argument('--execute', action='store_true', help='Actually apply changes')
    parser.add_argument('--ensure-origin', action='store_true',
                        help='Merge duplicates, then guarantee a single Origin')
    parser.add_argument('--search', help='Search for people by name/email/phone')
    args = parser.parse_args(argv)

    store = CrmStore(args.db)

    if args.search:
        matches = search_people(store, args.search)
        print(f"\nFound {len(matches)} matches for '{args.search}':\n")
        for p in matches:
            print(f"  ID: {p.id}")
            print(f"  Name: {p.name}")
            print(f"  Email: {p.primary_email}")
            print(f"  Phone: {p.phone}")
            print(f"  Origin: {p.is_origin}")
            print()
        return 0

    if args.ensure_origin:
        origin = ensure_origin(store)
        print(f"Origin: {origin.person.name} ({origin.person.id}), {len(origin.facts)} facts")
        return 0

    duplicates = describe_duplicates(store)
    print(f"\nFound {len(duplicates)} duplicate groups:\n")
    for i, dup in enumerate(duplicates, 1):
        print(f"{i}. {dup['name']}")
        for p in dup['people']:
            marker = "keep" if p.id == dup['keeper'].id else "merge"
            facts = len(store.get_facts(p.id))
            print(f"   [{marker}] {p.name} (ID: {p.id[:8]}..., score: {completeness_score(p)}, facts: {facts})")
        print()

    if not duplicates:
        return 0

    if not args.execute:
        logger.info("DRY RUN - no changes made. Use --execute to apply.")
        return 0

    report = merge_duplicates(store)
    logger.info(
        f"Merged {report.groups_merged} groups: {report.people_removed} people removed, "
        f"{report.facts_moved} facts moved"
    )
    return 0


if __name__ == '__main__':
    sys.exit(main())
