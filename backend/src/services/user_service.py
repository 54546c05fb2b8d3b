"""Service layer for a user's own record: self-update and self-delete."""
import logging
from typing import TYPE_CHECKING

from schemas.user import TrackedUser, UserUpdate
from services.exceptions import CrossIdentityWriteRejectedError
from services.location_obfuscator import snap_to_accuracy

if TYPE_CHECKING:
    from core.context import ServiceContext

logger = logging.getLogger(__name__)


def apply_update(current: TrackedUser, data: UserUpdate) -> TrackedUser:
    """
    Build the replacement record for a self-update.

    Privacy settings are replaced as given. A new location replaces the old one
    wholesale (snapped to its desired accuracy, which defaults to 0); omitted
    location, push token and notification flags keep their current values.
    The record always keeps `current.id`; rejecting a body that names another
    user is `update_self`'s job.
    """
    location = current.location
    if data.location is not None:
        incoming = data.location
        if incoming.desired_accuracy is None:
            incoming = incoming.model_copy(update={"desired_accuracy": 0.0})
        location = snap_to_accuracy(incoming)

    return TrackedUser(
        id=current.id,
        identity=current.identity,
        privacy=data.privacy,
        location=location,
        push_token=data.push_token or current.push_token,
        receive_nearby_notifications=(
            data.receive_nearby_notifications
            if data.receive_nearby_notifications is not None
            else current.receive_nearby_notifications
        ),
        allow_nearby_notifications=(
            data.allow_nearby_notifications
            if data.allow_nearby_notifications is not None
            else current.allow_nearby_notifications
        ),
    )


async def update_self(
    context: "ServiceContext",
    current_user: TrackedUser,
    data: UserUpdate,
) -> TrackedUser:
    """
    Apply a self-update atomically with respect to concurrent reads of the record.

    The update is applied to the latest stored record, not to the possibly older
    copy the request authenticated with.
    """
    if data.id is not None and data.id != current_user.id:
        logger.warning(
            "cross_identity_write_rejected user_id=%s target_id=%s",
            current_user.id,
            data.id,
        )
        raise CrossIdentityWriteRejectedError(current_user.id, data.id)

    user = await context.store.update(
        current_user.id,
        lambda stored: apply_update(stored or current_user, data),
    )
    logger.info("user_updated user_id=%s has_location=%s", user.id, user.location is not None)
    return user


async def delete_self(context: "ServiceContext", user_id: str) -> None:
    """
    Purge everything held about a user.

    Removes the record, every credential mapped to it, the cached guild list and
    any nearby-notification history involving the user.
    """
    await context.store.delete(user_id)
    credentials_removed = context.credentials.invalidate_user(user_id)
    context.directory.invalidate(user_id)
    pairs_removed = context.nearby.forget_user(user_id)
    logger.info(
        "user_deleted user_id=%s credentials_removed=%s pairs_removed=%s",
        user_id,
        credentials_removed,
        pairs_removed,
    )
