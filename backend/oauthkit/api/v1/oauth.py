"""
OAuth front door.

Maps user-agent requests onto :class:`OAuthConsumer` operations for one
service. Success redirects to the request's ``return`` URL (or answers with
JSON when there is none); failure answers with problem+json carrying the
error message and the ``return`` URL.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any
from uuid import uuid4

from flask import Blueprint, Response, redirect, request, url_for

from oauthkit.api.deps import json_response, parse_oauth_request, timing
from oauthkit.core.errors import OAUTH_STATUS, APIError
from oauthkit.core.oauth import get_consumer
from oauthkit.services.consumer.dto import OperationResult, VerifyResult

log = logging.getLogger(__name__)

bp = Blueprint("oauth", __name__)


def _success(service: str, context: dict[str, Any]) -> Response:
    if context.get("return"):
        return redirect(context["return"])
    return json_response({"status": "authorized", "service": service})


def _failure(result: OperationResult[Any] | VerifyResult, context: dict[str, Any]) -> APIError:
    code = result.error_code or "oauth_error"
    return APIError(
        result.error or "Unknown Error",
        status_code=OAUTH_STATUS.get(code, HTTPStatus.BAD_REQUEST),
        code=code,
        details={"return": context.get("return")},
    )


def _authorize(service: str, context: dict[str, Any]) -> Response:
    context["nonce"] = uuid4().hex[:5]
    context["callback"] = url_for(".confirm", service=service, _external=True)
    result = get_consumer().request_authorization(service, context)
    if result.value is True:
        return _success(service, context)
    if result.value:
        return redirect(result.value)
    raise _failure(result, context)


@bp.get("/<service>", strict_slashes=False)
@timing
def index(service: str):
    """Report success when access is already granted, otherwise start authorizing."""
    context = parse_oauth_request()
    if get_consumer().has_access(service, context):
        return _success(service, context)
    return _authorize(service, context)


@bp.get("/<service>/authorize")
@timing
def authorize(service: str):
    return _authorize(service, parse_oauth_request())


@bp.get("/<service>/confirm")
@timing
def confirm(service: str):
    """Provider callback: verify the authorization and resume the pending request."""
    result = get_consumer().verify_authorization(service, request.args.to_dict())
    if result:
        return _success(service, result.request)
    raise _failure(result, result.request)


@bp.post("/<service>/refresh")
@timing
def refresh(service: str):
    context = parse_oauth_request()
    result = get_consumer().refresh(service)
    if result:
        return _success(service, context)
    raise _failure(result, context)


@bp.post("/<service>/deauthorize")
@timing
def deauthorize(service: str):
    context = parse_oauth_request()
    result = get_consumer().release(service)
    if result:
        return _success(service, context)
    raise _failure(result, context)
