from __future__ import annotations

import argparse
import os

import boto3


def _table_name(cli_value: str | None) -> str:
    v = (cli_value or os.environ.get("DDB_TABLE_NAME", "")).strip()
    if not v:
        raise SystemExit("DDB_TABLE_NAME (or --table) is required")
    return v


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Create the DynamoDB table used by STORE_BACKEND=dynamodb."
    )
    parser.add_argument("--table", help="table name (defaults to $DDB_TABLE_NAME)")
    args = parser.parse_args()
    table_name = _table_name(args.table)

    ddb = boto3.client("dynamodb")
    existing = ddb.list_tables().get("TableNames", [])
    if table_name in existing:
        print(f"Table already exists: {table_name}")
        return

    # pk: TRACKER#{tracker_id}, sk: META | SESSION#{session_id}
    ddb.create_table(
        TableName=table_name,
        AttributeDefinitions=[
            {"AttributeName": "pk", "AttributeType": "S"},
            {"AttributeName": "sk", "AttributeType": "S"},
        ],
        KeySchema=[
            {"AttributeName": "pk", "KeyType": "HASH"},
            {"AttributeName": "sk", "KeyType": "RANGE"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )

    ddb.get_waiter("table_exists").wait(TableName=table_name)
    print(f"Created table: {table_name}")


if __name__ == "__main__":
    main()
