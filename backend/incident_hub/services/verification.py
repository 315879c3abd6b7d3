"""Verification state machine.

States are ``Unverified`` and ``Verified(method)``. Admin verification is
one-way; upvote verification follows the upvote count across the threshold
in both directions but never overrides an admin decision.
"""

import uuid
from datetime import datetime
from typing import Set

from incident_hub.models.incident import Incident, VerificationMethod


def toggle_membership(members: Set[uuid.UUID], user_id: uuid.UUID) -> bool:
    """Flip ``user_id`` in ``members``. Returns True if it is now a member."""
    if user_id in members:
        members.discard(user_id)
        return False
    members.add(user_id)
    return True


def apply_admin_verification(incident: Incident, admin_id: uuid.UUID, now: datetime) -> None:
    """Verify unconditionally; re-verifying refreshes who and when."""
    incident.is_verified = True
    incident.verification_method = VerificationMethod.ADMIN
    incident.verified_by_id = admin_id
    incident.verified_at = now


def apply_upvote_threshold(
    incident: Incident,
    upvote_count: int,
    threshold: int,
    now: datetime,
) -> bool:
    """
    Move the incident across the upvote threshold if the count requires it.

    Returns True when the verification state changed.
    """
    if upvote_count >= threshold and not incident.is_verified:
        incident.is_verified = True
        incident.verification_method = VerificationMethod.UPVOTE
        incident.verified_at = now
        return True

    if upvote_count < threshold and incident.verification_method == VerificationMethod.UPVOTE:
        incident.is_verified = False
        incident.verification_method = None
        incident.verified_at = None
        return True

    return False
