"""Shared DynamoDB utilities.

This package centralizes:
- boto3 resource configuration
- retry/backoff policy
- typed errors so callers can tell throttling from conflicts from outages

"""
