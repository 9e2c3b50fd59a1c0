"""
Shared dependencies for admin endpoints.

This module contains the logger and the authentication dependency used
across all admin endpoint modules.
"""
import logging

from skillgate.core.auth import get_current_admin

# Configure logger for admin operations
logger = logging.getLogger(__name__)

__all__ = ["get_current_admin", "logger"]
