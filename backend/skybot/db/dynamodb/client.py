from __future__ import annotations

from functools import lru_cache

import boto3
from botocore.config import Config

from ...settings import settings


@lru_cache(maxsize=1)
def botocore_config() -> Config:
    # botocore retries stay on; ddb_call adds an app-layer retry for throttling only.
    # Timeouts are short because every caller sits on the Slack reply path.
    return Config(
        retries={"max_attempts": 4, "mode": "adaptive"},
        connect_timeout=2,
        read_timeout=5,
    )


@lru_cache(maxsize=1)
def dynamodb_resource():
    return boto3.resource(
        "dynamodb",
        region_name=settings.aws_region,
        config=botocore_config(),
    )


def table_resource(table_name: str):
    return dynamodb_resource().Table(table_name)
