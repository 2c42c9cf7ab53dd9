"""Mint a JWT bearer token for a user id.

Usage:
    python scripts/issue_token.py <user_id>
"""

from __future__ import annotations

import sys

from app.infra.auth import create_access_token


def issue(user_id: str) -> None:
    token = create_access_token(user_id)
    print(token.access_token)
    print(f"# expires {token.expires_at.isoformat()}", file=sys.stderr)


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python scripts/issue_token.py <user_id>")
        sys.exit(1)
    issue(sys.argv[1])
