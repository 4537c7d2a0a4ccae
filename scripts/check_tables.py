import sys
from pathlib import Path
from typing import Dict, List, Optional

# Ensure project root is on sys.path
current_dir = Path(__file__).resolve().parent
project_root = current_dir.parent

if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import boto3
from botocore.exceptions import ClientError

try:
    from shared_utils.config_loader import get_settings
    from shared_utils.constants import LogScope, TableKeys
    from shared_utils.logging_utils import get_scoped_logger
except ImportError:
    print("Error: Could not import project modules. Run this from the project root.")
    sys.exit(1)


logger = get_scoped_logger(LogScope.SCRIPTS)

# logical table → expected key attribute names (partition key, then sort key)
EXPECTED_KEYS: Dict[str, List[str]] = {
    "meetings": [TableKeys.MEETING_ID],
    "responses": [TableKeys.MEETING_ID, TableKeys.USER_ID],
    "matches": [TableKeys.MEETING_ID],
    "accounts": [TableKeys.USER_ID],
    "credits": [TableKeys.USER_ID],
    "wallet_transactions": [TableKeys.TRANSACTION_ID],
    "notifications": [TableKeys.NOTIFICATION_ID],
    "admin_logs": [TableKeys.LOG_ID],
}


def check_tables(dynamodb_client: Optional[object] = None) -> Dict[str, str]:
    """
    Readiness check: every configured table exists, is ACTIVE and has the
    expected key schema. The engine assumes this and never degrades at runtime.

    Returns a map of logical table → "ok" or a problem description.
    """
    settings = get_settings()
    client_kwargs: dict = {"region_name": settings.aws_region}
    if settings.aws_endpoint_url:
        client_kwargs["endpoint_url"] = settings.aws_endpoint_url
    client = dynamodb_client or boto3.client("dynamodb", **client_kwargs)

    report: Dict[str, str] = {}
    for logical, table_name in settings.table_names().items():
        try:
            table = client.describe_table(TableName=table_name)["Table"]
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == "ResourceNotFoundException":
                report[logical] = f"missing table {table_name}"
            else:
                report[logical] = f"describe failed: {exc}"
            continue

        key_names = [
            k["AttributeName"]
            for k in sorted(table.get("KeySchema", []), key=lambda k: k["KeyType"] != "HASH")
        ]
        if table.get("TableStatus") != "ACTIVE":
            report[logical] = f"table {table_name} is {table.get('TableStatus')}"
        elif key_names != EXPECTED_KEYS[logical]:
            report[logical] = f"unexpected key schema {key_names}, expected {EXPECTED_KEYS[logical]}"
        else:
            report[logical] = "ok"

    problems = {k: v for k, v in report.items() if v != "ok"}
    if problems:
        logger.error("table_check_failed", problems=problems)
    else:
        logger.info("table_check_passed", tables=len(report))
    return report


if __name__ == "__main__":
    results = check_tables()
    for name, outcome in results.items():
        print(f"{name:22s} {outcome}")
    sys.exit(0 if all(v == "ok" for v in results.values()) else 1)
