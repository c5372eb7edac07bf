"""
HTTP client for the external invite-issuing function.

The issuing function owns row creation and decides whether a resend reuses
or replaces an expired/cancelled row; this client only sends the request
and reconciles the per-email accounting of the response.
"""

import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from app.contracts.invitation import InviteError, InviteRequest, InviteResponse
from app.core.exceptions import ResendFailure

logger = logging.getLogger(__name__)

MISSING_OUTCOME_ERROR = "No outcome reported for this email"


def reconcile_outcomes(request: InviteRequest, response: InviteResponse) -> InviteResponse:
    """
    Guarantee exactly one result-or-error entry per requested email.

    Emails the upstream did not report are added as errors; entries for
    emails that were never requested, or duplicates, are dropped.
    """
    requested = [item.email for item in request.invitations]
    pending = {email.lower(): email for email in requested}

    results = []
    for result in response.results:
        if pending.pop(result.email.lower(), None) is not None:
            results.append(result)

    errors = []
    for error in response.errors:
        if pending.pop(error.email.lower(), None) is not None:
            errors.append(error)

    for email in pending.values():
        logger.warning("Invite function returned no outcome for %s", email)
        errors.append(InviteError(email=email, error=MISSING_OUTCOME_ERROR))

    return response.model_copy(update={"results": results, "errors": errors})


class InviteIssuerClient:
    """Thin async wrapper around the invite-issuing function's HTTP endpoint."""

    def __init__(
        self,
        url: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def issue(self, request: InviteRequest, bearer_token: str) -> InviteResponse:
        """
        POST the invitations and return the reconciled response.

        Raises:
            ResendFailure: transport error, non-2xx status or malformed body.
        """
        if not self.url:
            raise ResendFailure("Invite function URL is not configured")

        payload = request.model_dump(by_alias=True, mode="json")
        headers = {"Authorization": f"Bearer {bearer_token}"}

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                resp = await client.post(self.url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error("Invite function unreachable: %s", e)
            raise ResendFailure("Invite function unreachable", detail=str(e)) from e

        if resp.status_code >= 400:
            detail = _error_detail(resp)
            logger.error("Invite function returned %s: %s", resp.status_code, detail)
            raise ResendFailure(
                f"Invite function returned {resp.status_code}", detail=detail
            )

        try:
            response = InviteResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            logger.error("Invite function returned an unreadable body: %s", e)
            raise ResendFailure("Invite function returned an unreadable body", detail=str(e)) from e

        return reconcile_outcomes(request, response)


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return resp.text
