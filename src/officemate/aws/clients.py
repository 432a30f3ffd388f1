"""boto3 client/resource factories shared by the AWS adapters."""

from functools import lru_cache

import boto3

from officemate.config import get_settings


def _client_kwargs() -> dict:
    settings = get_settings()
    kwargs = {"region_name": settings.aws_region}
    if settings.aws_endpoint_url:
        kwargs["endpoint_url"] = settings.aws_endpoint_url
    return kwargs


@lru_cache
def get_client(service: str):
    """Get a cached boto3 client (sns, ses, kms, dynamodb)."""
    return boto3.client(service, **_client_kwargs())


@lru_cache
def get_resource(service: str):
    """Get a cached boto3 resource (dynamodb)."""
    return boto3.resource(service, **_client_kwargs())
