"""Exceptions raised while driving the portal."""

from __future__ import annotations


class PortalError(Exception):
    """Base class for portal navigation and extraction failures."""


class AuthenticationFailed(PortalError):
    """Login could not be confirmed."""


class NavigationFailed(PortalError):
    """A required control never appeared or a click/navigation failed."""


class ExtractionFailed(PortalError):
    """Expected data markup was missing after its wait budget."""
