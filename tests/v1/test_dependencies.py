"""Tests for shared API dependencies."""

import pytest
from fastapi import status

from kiosk_settlement.api.v1.dependencies import http_error
from kiosk_settlement.services.errors import (
    AuthorizationError,
    ClaimInProgressError,
    ConcurrentUpdateError,
    InputError,
    NotFoundError,
    RemoteTransientError,
    TerminalError,
)


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (InputError("bad chain"), status.HTTP_400_BAD_REQUEST),
        (AuthorizationError("wrong pin"), status.HTTP_403_FORBIDDEN),
        (NotFoundError("no session"), status.HTTP_404_NOT_FOUND),
        (ConcurrentUpdateError("stale"), status.HTTP_409_CONFLICT),
        (ClaimInProgressError("busy"), status.HTTP_409_CONFLICT),
        (TerminalError("settled"), status.HTTP_409_CONFLICT),
        (RemoteTransientError("gateway down"), status.HTTP_502_BAD_GATEWAY),
    ],
)
def test_http_error_mapping(error, expected):
    """Each settlement error maps to one HTTP status and keeps its message."""
    exc = http_error(error)
    assert exc.status_code == expected
    assert exc.detail == str(error)
