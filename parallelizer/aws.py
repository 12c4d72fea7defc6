"""
boto3 client construction.
"""

from typing import Any

import boto3
from botocore.config import Config

from parallelizer.config import Settings

_CLIENT_CONFIG = Config(retries={"max_attempts": 5, "mode": "standard"})


def create_client(service_name: str, settings: Settings) -> Any:
    """
    Create a boto3 client honouring the configured region and endpoint.

    Credentials come from the standard AWS provider chain. Setting
    PARALLELIZER_AWS_ENDPOINT_URL points every client at a local emulator.
    """
    session = boto3.session.Session(region_name=settings.aws_region)
    return session.client(
        service_name,
        endpoint_url=settings.aws_endpoint_url,
        config=_CLIENT_CONFIG,
    )
