"""
Seed the authored verification flow into Redis.
Reads a JSON list of steps (default: scripts/sample_flow.json), refuses to
write it if any step fails validation, and prints dangling-reference warnings.
This script is idempotent and safe to run in local/dev/CI.
"""
import json
import os
import sys

from redis import Redis

from verifychat.store.step_repo import parse_steps, validate_flow

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
KEY = os.getenv("STEPS_KEY", "flow:steps")
DEFAULT_FLOW = os.path.join(os.path.dirname(__file__), "sample_flow.json")


def load_flow(path: str) -> list:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def main(path: str = DEFAULT_FLOW) -> int:
    raw = load_flow(path)
    steps, problems = parse_steps(raw)
    if problems:
        for p in problems:
            print(f"ERROR: {p}")
        return 1
    for w in validate_flow(steps):
        print(f"WARN: {w}")

    r = Redis.from_url(REDIS_URL, decode_responses=True)
    r.set(KEY, json.dumps(raw, ensure_ascii=False))
    print(f"OK: wrote {len(steps)} steps to {KEY} in {REDIS_URL}")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1] if len(sys.argv) > 1 else DEFAULT_FLOW))
