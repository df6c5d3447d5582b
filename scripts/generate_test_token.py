#!/usr/bin/env python3
"""Print bearer tokens for existing user ids, for manual API smoke testing.

Usage: python scripts/generate_test_token.py <user-id> [<user-id> ...]

Role and school are read from the database on every request, so the user ids
must exist in the target database.
"""
import sys

from src.api.deps import issue_smoke_token


def main(user_ids: list[str]) -> int:
    if not user_ids:
        print(__doc__, file=sys.stderr)
        return 1
    for user_id in user_ids:
        print(f"{user_id}:\n{issue_smoke_token(user_id)}\n")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
