#!/usr/bin/env python3
import sys
import os

print("Running preflight check...")
try:
    # Set dummy env vars to avoid KeyErrors during config load if any
    os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

    import verifychat.main
    print("Import verifychat.main: OK")

    import verifychat.core.scheduler
    print("Import verifychat.core.scheduler: OK")

    # Validate a flow file without touching Redis
    flow_path = os.getenv("STEPS_FILE") or os.path.join(os.path.dirname(__file__), "sample_flow.json")
    from verifychat.store.step_repo import _read_file, parse_steps, validate_flow

    steps, problems = parse_steps(_read_file(flow_path))
    for p in problems:
        print(f"Step problem: {p}")
    for w in validate_flow(steps):
        print(f"Step warning: {w}")
    if problems:
        raise ValueError(f"{len(problems)} invalid step(s) in {flow_path}")
    print(f"Flow {flow_path}: {len(steps)} steps OK")

    print("Preflight check passed.")
    sys.exit(0)
except Exception as e:
    print(f"Preflight check FAILED: {e}")
    import traceback
    traceback.print_exc()
    sys.exit(1)
