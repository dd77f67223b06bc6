"""Shared helpers for API controllers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from litestar import Request

if TYPE_CHECKING:
    from pictobox.app_factory import ImageServices


def get_services(request: Request) -> ImageServices:
    """The image pipeline stored on the app at startup."""
    return request.app.state.services
