"""
Catalog of configuration keys that must be encrypted at rest, per integration
or backing-store type. Consulted before every write and after every read of a
configuration object. Unknown types have no sensitive fields.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Tuple

SENSITIVE_FIELDS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    # E-commerce platforms
    "akeneo": ("clientSecret", "password"),
    "magento": ("apiKey", "password"),
    "shopify": ("accessToken", "apiSecret"),
    "woocommerce": ("consumerSecret",),

    # Database integrations
    "supabase": ("accessToken", "refreshToken", "serviceRoleKey", "databaseUrl"),
    "supabase-database": ("accessToken", "refreshToken", "serviceRoleKey", "connectionString"),
    "postgresql": ("password", "connectionString"),
    "mysql": ("password", "connectionString"),

    # Storage providers
    "supabase-storage": ("serviceRoleKey", "accessToken"),
    "google-cloud-storage": ("privateKey", "credentials"),
    "aws-s3": ("accessKeyId", "secretAccessKey", "sessionToken"),
    "cloudflare-r2": ("accessKeyId", "secretAccessKey"),
    "local-storage": (),

    # Marketplaces
    "amazon": ("mwsAuthToken", "awsAccessKeyId", "awsSecretAccessKey"),
    "ebay": ("appId", "certId", "devId", "authToken"),
    "google-shopping": ("apiKey",),
    "facebook": ("accessToken",),
    "instagram": ("accessToken",),
})


def get_sensitive_fields(integration_type: object) -> Tuple[str, ...]:
    """Ordered sensitive field names for `integration_type`; empty for anything unknown."""
    if not isinstance(integration_type, str):
        return ()
    return SENSITIVE_FIELDS.get(integration_type, ())


def is_known_type(integration_type: object) -> bool:
    return isinstance(integration_type, str) and integration_type in SENSITIVE_FIELDS
