"""
Bid submission flow: store the bid, then tell the gig owner.

Side effects after the insert are best-effort; a failed notification never
turns a stored bid into an error response.
"""

from gigflow.api.models import Bid, NotificationType
from gigflow.marketplace.bid_store import BidStore
from gigflow.marketplace.notification_store import NotificationStore
from gigflow.utils.logger import get_logger
from gigflow.utils.notifications import NotificationEvent, Notifier

logger = get_logger(__name__)


class BidSubmissionService:
    def __init__(
        self, bids: BidStore, notifications: NotificationStore, notifier: Notifier
    ):
        self.bids = bids
        self.notifications = notifications
        self.notifier = notifier

    async def submit(
        self, freelancer_id: str, gig_id: str, message: str, price: float
    ) -> Bid:
        """
        Place a bid and notify the gig owner.

        Raises:
            The BidStore.create errors, unchanged
        """
        bid = await self.bids.create(freelancer_id, gig_id, message, price)

        gig = bid.gig
        freelancer_name = bid.freelancer.name if bid.freelancer else "a freelancer"
        text = f'New bid received for "{gig.title}" from {freelancer_name}'

        try:
            await self.notifications.create(
                gig.owner_id,
                NotificationType.BID_RECEIVED,
                text,
                gig_id=gig.id,
                bid_id=bid.id,
            )
        except Exception as e:
            logger.error(f"Bid {bid.id}: bid_received notification failed - {e}")

        try:
            self.notifier.notify(
                gig.owner_id,
                NotificationEvent.NEW_BID,
                {
                    "gigId": gig.id,
                    "ownerId": gig.owner_id,
                    "bid": bid.to_dict(),
                    "gigTitle": gig.title,
                    "message": text,
                },
            )
        except Exception as e:
            logger.error(f"Bid {bid.id}: newBid push failed - {e}")

        return bid
