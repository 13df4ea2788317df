"""
auth/identity.py -- Map a verified external identity to a local user.

The email address is the join key. A Google sign-in with an email that
already has a password account lands on that same account; the google_id and
avatar are backfilled but never overwritten.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.errors import ExternalIdentityError
from auth.models import ExternalIdentity, User
from auth.store import UserStore

logger = logging.getLogger("sessionauth.auth.identity")


def resolve_external_identity(store: UserStore, identity: ExternalIdentity) -> User:
    """Return the local user for identity, creating one on first sign-in."""
    user = store.get_by_email(identity.email)

    if user is None:
        try:
            user = store.create_user(
                User(
                    name=identity.name or identity.email.split("@")[0],
                    email=identity.email,
                    google_id=identity.subject,
                    avatar=identity.avatar,
                )
            )
        except IntegrityError as exc:
            # A concurrent first sign-in for the same email won the insert.
            user = store.get_by_email(identity.email)
            if user is None:
                # The google_id is already linked to an account under another email.
                raise ExternalIdentityError("Google account is linked to another user") from exc
        else:
            logger.info("Created user %s from external identity", user.id)
            return user

    updates: dict = {}
    if not user.google_id:
        updates["google_id"] = identity.subject
    if identity.avatar and not user.avatar:
        updates["avatar"] = identity.avatar
    if updates:
        try:
            user = store.update_user(user.id, **updates) or user
        except IntegrityError as exc:
            raise ExternalIdentityError("Google account is linked to another user") from exc
        logger.info("Linked external identity to user %s (%s)", user.id, ", ".join(sorted(updates)))
    return user
