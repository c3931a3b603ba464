"""
teamgate/features/invitations/service.py
Invitation issue, redemption and revocation with hashed single-use tokens.

The raw token is returned once at issue time; only its SHA-256 hash and a
short hint are stored. Expired invitations stay in the table (inert) until
they are replaced by a new invitation for the same email.
"""

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from sqlalchemy import select, insert, delete
from sqlalchemy.exc import IntegrityError

from teamgate.core.config import settings
from teamgate.core.database import get_db_session, is_unique_violation, invitations, users as app_users
from teamgate.core.errors import (
    NotFoundError,
    PermissionError,
    AlreadyMemberError,
    DuplicateInviteError,
    SeatLimitError,
    TokenNotFoundError,
    ExpiredTokenError,
    ValidationError,
)
from teamgate.features.activity.service import record_activity
from teamgate.features.members.service import find_membership, holds_admin, insert_membership, set_default_if_unset
from teamgate.features.notifications.service import notify_owner
from teamgate.features.plans.service import load_plan
from teamgate.features.roles.service import find_role
from teamgate.features.teams import persistence
from teamgate.features.users.service import load_user, normalize_email
from teamgate.models.invitation import Invitation, InvitationStatus, InvitationSummary
from teamgate.models.membership import Membership
from teamgate.models.user import User


logger = logging.getLogger(__name__)

TOKEN_HINT_LENGTH = 6


def _generate_token() -> str:
    """Random URL-safe token of INVITE_TOKEN_LENGTH characters."""
    length = settings.INVITE_TOKEN_LENGTH
    return secrets.token_urlsafe(length)[:length]


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def _verify_token(token: str, token_hash: str) -> bool:
    """Verify raw token matches hash"""
    return hmac.compare_digest(_hash_token(token), token_hash)


def _row_to_invitation(row) -> Invitation:
    return Invitation(
        id=row.id,
        email=row.email,
        team_id=row.team_id,
        role_name=row.role_name,
        invited_by=row.invited_by,
        created_at=persistence.as_utc(row.created_at),
        expires_at=persistence.as_utc(row.expires_at),
        token_hash=row.token_hash,
        token_hint=row.token_hint,
    )


def compute_status(invitation: Invitation, now: Optional[datetime] = None) -> InvitationStatus:
    if now is None:
        now = datetime.now(timezone.utc)
    if now >= invitation.expires_at:
        return InvitationStatus.EXPIRED
    return InvitationStatus.PENDING


def to_summary(invitation: Invitation, now: Optional[datetime] = None) -> InvitationSummary:
    """Client-safe view (no token hash)."""
    return InvitationSummary(
        id=invitation.id,
        email=invitation.email,
        team_id=invitation.team_id,
        role_name=invitation.role_name,
        invited_by=invitation.invited_by,
        status=compute_status(invitation, now),
        created_at=invitation.created_at,
        expires_at=invitation.expires_at,
        token_hint=invitation.token_hint,
    )


def issue(
    team_id: int,
    email: str,
    role_name: str,
    inviter_id: str,
    ttl: Optional[timedelta] = None,
) -> Tuple[Invitation, str]:
    """
    Invite an email address into a team.

    Args:
        team_id: Target team
        email: Invitee address (matched case-insensitively at redemption)
        role_name: Role the invitee receives on redemption
        inviter_id: User issuing the invitation
        ttl: Lifetime, defaults to INVITE_TTL_DAYS

    Returns:
        (invitation, token): The stored invitation and the raw token (only returned once)

    Raises:
        ValidationError: Blank email address
        NotFoundError: Team or role missing
        AlreadyMemberError: The address already belongs to a member
        DuplicateInviteError: A pending invitation exists for the address
        SeatLimitError: Members plus pending invitations already fill the plan
    """
    address = normalize_email(email)
    if not address:
        raise ValidationError("An email address is required")
    now = datetime.now(timezone.utc)
    expires_at = now + (ttl or timedelta(days=settings.INVITE_TTL_DAYS))
    token = _generate_token()

    try:
        with get_db_session() as session:
            team = persistence.load_team(session, team_id)
            if not find_role(session, team_id, role_name):
                raise NotFoundError(f"Role '{role_name}' does not exist in team {team_id}")

            existing_user = session.execute(
                select(app_users.c.user_id).where(app_users.c.email == address)
            ).first()
            if existing_user and find_membership(session, team_id, existing_user.user_id):
                raise AlreadyMemberError(f"{address} is already a member of team {team_id}")

            previous = session.execute(
                select(invitations)
                .where(invitations.c.team_id == team_id)
                .where(invitations.c.email == address)
            ).first()
            if previous:
                if compute_status(_row_to_invitation(previous), now) == InvitationStatus.PENDING:
                    raise DuplicateInviteError(f"{address} already has a pending invitation")
                session.execute(delete(invitations).where(invitations.c.id == previous.id))

            plan = load_plan(session, team.plan_slug)
            if persistence.seats_in_use(session, team_id, now) >= plan.member_limit:
                raise SeatLimitError(
                    f"Team {team_id} has used all {plan.member_limit} seats of plan '{plan.slug}'"
                )

            result = session.execute(
                insert(invitations).values(
                    email=address,
                    token_hash=_hash_token(token),
                    token_hint=token[-TOKEN_HINT_LENGTH:],
                    team_id=team_id,
                    role_name=role_name,
                    invited_by=inviter_id,
                    created_at=now,
                    expires_at=expires_at,
                )
            )
            invitation_id = result.inserted_primary_key[0]
            row = session.execute(select(invitations).where(invitations.c.id == invitation_id)).first()
            invitation = _row_to_invitation(row)
            details = {"email": address, "role": role_name, "expires_at": expires_at.isoformat()}
            record_activity(session, team_id, "invitation.issued", f"Invited {address} as '{role_name}'", details, actor_id=inviter_id)
    except IntegrityError as exc:
        if not is_unique_violation(exc):
            raise
        raise DuplicateInviteError(f"{address} already has a pending invitation")

    notify_owner(team, "invitation.issued", details, actor_id=inviter_id)
    return invitation, token


def redeem(token: str, user: User) -> Membership:
    """
    Turn an invitation into a membership.

    The membership insert and the invitation delete share one transaction;
    the (user_id, team_id) unique constraint settles concurrent redemptions.

    Raises:
        TokenNotFoundError: Unknown token
        NotFoundError: Redeemer has no user record
        ExpiredTokenError: Invitation has expired (nothing is created)
        PermissionError: Invitation is addressed to another email
        AlreadyMemberError: Redeemer already belongs to the team
    """
    now = datetime.now(timezone.utc)
    try:
        with get_db_session() as session:
            row = session.execute(
                select(invitations).where(invitations.c.token_hash == _hash_token(token))
            ).first()
            if not row or not _verify_token(token, row.token_hash):
                raise TokenNotFoundError("Invitation not found")
            invitation = _row_to_invitation(row)

            if compute_status(invitation, now) == InvitationStatus.EXPIRED:
                raise ExpiredTokenError("Invitation has expired")
            if not load_user(session, user.user_id):
                raise NotFoundError(f"User {user.user_id} not found")
            if normalize_email(user.email) != invitation.email:
                raise PermissionError("This invitation was sent to a different email address")
            if find_membership(session, invitation.team_id, user.user_id):
                raise AlreadyMemberError(f"User {user.user_id} is already a member of team {invitation.team_id}")

            team = persistence.load_team(session, invitation.team_id)
            role_name = invitation.role_name
            if not find_role(session, team.id, role_name):
                logger.warning(
                    "[invitations] invited role no longer exists, joining without a role",
                    extra={"team_id": team.id, "role": role_name},
                )
                role_name = None

            membership = insert_membership(session, team.id, user.user_id, role_name)
            session.execute(delete(invitations).where(invitations.c.id == invitation.id))
            set_default_if_unset(session, user.user_id, team.id)
            details = {"member_id": user.user_id, "email": invitation.email, "role": role_name}
            record_activity(
                session, team.id, "invitation.redeemed", f"{invitation.email} joined the team", details, actor_id=user.user_id
            )
    except IntegrityError as exc:
        if not is_unique_violation(exc):
            raise
        raise AlreadyMemberError(f"User {user.user_id} is already a member of this team")

    notify_owner(team, "invitation.redeemed", details, actor_id=user.user_id)
    return membership


def revoke(invitation_id: int, requester: User) -> None:
    """
    Delete a pending or expired invitation.

    Raises:
        NotFoundError: Invitation missing
        PermissionError: Requester is not owner, admin or superuser of the team
    """
    with get_db_session() as session:
        row = session.execute(select(invitations).where(invitations.c.id == invitation_id)).first()
        if not row:
            raise NotFoundError(f"Invitation {invitation_id} not found")
        team = persistence.load_team(session, row.team_id)
        if not requester.is_superuser and not holds_admin(session, team, requester.user_id):
            raise PermissionError("Only the team owner or an admin can revoke invitations")
        session.execute(delete(invitations).where(invitations.c.id == invitation_id))
        record_activity(
            session, team.id, "invitation.revoked", f"Revoked the invitation for {row.email}", {"email": row.email},
            actor_id=requester.user_id,
        )

    notify_owner(team, "invitation.revoked", {"email": row.email}, actor_id=requester.user_id)


def get_invitation(invitation_id: int) -> Invitation:
    with get_db_session() as session:
        row = session.execute(select(invitations).where(invitations.c.id == invitation_id)).first()
        if not row:
            raise NotFoundError(f"Invitation {invitation_id} not found")
        return _row_to_invitation(row)


def list_invitations(team_id: int, now: Optional[datetime] = None) -> List[InvitationSummary]:
    """Invitations of a team, newest first, with computed status."""
    with get_db_session() as session:
        rows = session.execute(
            select(invitations)
            .where(invitations.c.team_id == team_id)
            .order_by(invitations.c.created_at.desc(), invitations.c.id.desc())
        ).all()
        return [to_summary(_row_to_invitation(row), now) for row in rows]
