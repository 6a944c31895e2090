import os
import sys
from pathlib import Path

from content_lifecycle.rules.models import Rules

DB_FILENAME = "lifecycle.db"


class Settings:
    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.data_dir = Path(os.environ.get("LIFECYCLE_DATA_DIR", "./data"))
        self.db_path = str(self.data_dir / DB_FILENAME)
        self.rules_path = Path(os.environ.get("LIFECYCLE_RULES_PATH", str(self.base_dir / "rules.yaml")))


def validate_ops_rules(rules: Rules) -> None:
    """
    Validate operational requirements before startup.
    Exits the process when the deployment cannot run safely.
    """
    # 1. Required env
    missing = [env_var for env_var in rules.ops.required_env if env_var not in os.environ]
    if missing:
        print(
            f"CRITICAL: Missing required environment variables: {', '.join(missing)}",
            file=sys.stderr,
        )
        sys.exit(1)

    # 2. Shard assignment
    sched = rules.scheduling
    if not 0 <= sched.shard_index < sched.shard_count:
        print(
            f"CRITICAL: shard_index {sched.shard_index} outside 0..{sched.shard_count - 1}",
            file=sys.stderr,
        )
        sys.exit(1)

    print("Configuration Validated.")
