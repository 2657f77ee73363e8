from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from backend.app.main import app  # noqa: E402

REQUIRED_PATHS = [
    "/api/health",
    "/api/challenges/catalog/today",
    "/api/challenges/catalog/{challenge_date}",
    "/api/challenges/users/{user_id}/today",
    "/api/challenges/users/{user_id}/evaluate",
    "/api/challenges/users/{user_id}/history",
    "/api/challenges/users/{user_id}/stats",
    "/api/progress/{user_id}/games",
    "/api/progress/{user_id}/login",
    "/api/admin/challenges/{challenge_id}",
]


def main() -> int:
    spec = app.openapi()
    paths = spec.get("paths", {})

    missing = [path for path in REQUIRED_PATHS if path not in paths]
    if missing:
        for path in missing:
            print(f"[error] OpenAPI spec is missing {path}", file=sys.stderr)
        return 1

    print("OpenAPI required paths present")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
