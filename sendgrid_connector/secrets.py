"""Cloud-native secret resolution for the SendGrid API key and database password.

A configured value may be a literal or a reference into AWS Secrets Manager or
GCP Secret Manager. The cloud SDKs are imported only when a reference of their
kind is actually resolved.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Optional

from sendgrid_connector.errors import ConfigError

logger = logging.getLogger("sendgrid.secrets")

_AWS_PREFIX = "aws-secret://"
_GCP_PREFIX = "gcp-secret://"


def resolve_secret(value: str) -> str:
    """Resolve a secret reference to its plaintext value.

    Supported formats:
      - "aws-secret://name"             -> AWS Secrets Manager
      - "aws-secret://name#json_key"    -> one key of a JSON secret
      - "gcp-secret://name"             -> GCP Secret Manager, latest version
      - "gcp-secret://projects/.../versions/N"
      - anything else                   -> returned unchanged
    """
    if value.startswith(_AWS_PREFIX):
        return _resolve_aws_secret(value[len(_AWS_PREFIX):])
    if value.startswith(_GCP_PREFIX):
        return _resolve_gcp_secret(value[len(_GCP_PREFIX):])
    return value


def _resolve_aws_secret(ref: str) -> str:
    import boto3

    secret_name, _, json_key = ref.partition("#")
    logger.info("Resolving secret %s from AWS Secrets Manager", secret_name)
    region = os.environ.get("AWS_REGION", "us-east-1")
    client = boto3.client("secretsmanager", region_name=region)
    secret_string = client.get_secret_value(SecretId=secret_name)["SecretString"]

    if not json_key:
        return secret_string
    try:
        return str(json.loads(secret_string)[json_key])
    except (ValueError, KeyError) as exc:
        raise ConfigError(f"secret {secret_name!r} has no JSON key {json_key!r}") from exc


def _resolve_gcp_secret(ref: str) -> str:
    from google.cloud import secretmanager

    if ref.startswith("projects/"):
        name = ref
    else:
        project = os.environ.get("GCP_PROJECT_ID") or _gcp_project_from_metadata()
        name = f"projects/{project}/secrets/{ref}/versions/latest"
    logger.info("Resolving secret %s from GCP Secret Manager", name)

    client = secretmanager.SecretManagerServiceClient()
    response = client.access_secret_version(request={"name": name})
    return response.payload.data.decode("UTF-8")


def _gcp_project_from_metadata() -> str:
    """Ask the metadata server (Cloud Run / GCE) for the project id."""
    import requests

    try:
        resp = requests.get(
            "http://metadata.google.internal/computeMetadata/v1/project/project-id",
            headers={"Metadata-Flavor": "Google"},
            timeout=2,
        )
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise ConfigError("Cannot determine GCP project ID. Set GCP_PROJECT_ID.") from exc
    return resp.text


def resolve_api_key() -> str:
    raw = os.environ.get("SENDGRID_API_KEY", "").strip()
    if not raw:
        raise ConfigError("SENDGRID_API_KEY environment variable is required")
    key = resolve_secret(raw).strip()
    if not key:
        raise ConfigError("SENDGRID_API_KEY resolved to an empty value")
    return key


def resolve_database_url() -> Optional[str]:
    """DATABASE_URL, else PG_* variables, else None (no persistent sink)."""
    url = os.environ.get("DATABASE_URL", "")
    if url:
        return resolve_secret(url)

    host = os.environ.get("PG_HOST")
    if not host:
        return None
    port = os.environ.get("PG_PORT", "5432")
    user = os.environ.get("PG_USER", "sendgrid")
    password = resolve_secret(os.environ.get("PG_PASSWORD", ""))
    database = os.environ.get("PG_DATABASE", "sendgrid_identity")
    return f"postgresql://{user}:{password}@{host}:{port}/{database}"
