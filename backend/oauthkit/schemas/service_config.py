"""Marshmallow schemas validating OAuth service and token cache configuration."""

from __future__ import annotations

from typing import Any

from marshmallow import EXCLUDE, INCLUDE, Schema, fields, post_load, validate

from oauthkit.infra.oauth.signature import HMAC_SHA1, PLAINTEXT

CACHE_BACKENDS = ("memory", "file", "redis", "model", "session")


class ServiceConfigSchema(Schema):
    """
    Validate the merged options of one service in one environment.

    Unknown keys are kept and moved under ``extra`` (provider specific named
    paths such as API endpoints).
    """

    class Meta:
        unknown = INCLUDE

    adapter = fields.String(load_default="oauth", validate=validate.Length(min=1))
    temp_cache = fields.String(load_default="default", validate=validate.Length(min=1))
    token_cache = fields.String(load_default="default", validate=validate.Length(min=1))
    consumer_app_id = fields.String(load_default="app")
    consumer_key = fields.String(load_default="key")
    consumer_secret = fields.String(load_default="secret")
    base = fields.String(load_default=None, allow_none=True)
    request_token = fields.String(load_default="/oauth/get_request_token")
    access_token = fields.String(load_default="/oauth/get_token")
    authorize = fields.String(load_default="/oauth/request_auth")
    proxy = fields.String(load_default=None, allow_none=True)
    realm = fields.String(load_default="oauthkit")
    signature_method = fields.String(
        load_default=HMAC_SHA1, validate=validate.OneOf([HMAC_SHA1, PLAINTEXT])
    )
    headers = fields.Boolean(load_default=True)

    @post_load
    def split_extra(self, data: dict[str, Any], **_: Any) -> dict[str, Any]:
        declared = set(self.fields)
        extra = {k: v for k, v in data.items() if k not in declared}
        known = {k: v for k, v in data.items() if k in declared}
        known["extra"] = extra
        return known


class CacheConfigSchema(Schema):
    """Validate one ``OAUTH_CACHES`` entry (``{"backend": ..., **options}``)."""

    backend = fields.String(required=True, validate=validate.OneOf(CACHE_BACKENDS))
    directory = fields.String(load_default=None, allow_none=True)
    prefix = fields.String(load_default=None, allow_none=True)
    expiry = fields.Integer(load_default=None, allow_none=True, validate=validate.Range(min=1))
    lock_ttl = fields.Float(load_default=None, allow_none=True, validate=validate.Range(min=0))


class ReturnQuerySchema(Schema):
    """Query string of the OAuth front door: where to send the user afterwards."""

    class Meta:
        unknown = EXCLUDE

    return_to = fields.String(data_key="return", load_default=None, allow_none=True)
