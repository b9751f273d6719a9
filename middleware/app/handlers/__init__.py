"""Handlers for Givebutter events and the CiviCRM records they produce"""

from app.handlers.contact_handler import contact_handler
from app.handlers.contribution_handler import contribution_handler
from app.handlers.membership_handler import membership_handler
from app.handlers.transaction_handler import transaction_handler

__all__ = [
    "contact_handler",
    "contribution_handler",
    "membership_handler",
    "transaction_handler",
]
