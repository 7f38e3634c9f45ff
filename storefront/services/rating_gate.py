"""
Rating gate - decides where a star rating goes.

A gate starts `idle` and moves to `decided` on the first rating selection;
later selections are ignored and return the original decision.

    rating >= minimum_rating  -> external review site (not recorded here),
                                 or an acknowledgment when no URL is set
    rating <  minimum_rating  -> recorded internally, then thank-you page

The internal submission is best-effort: the thank-you transition happens
whether or not it succeeded.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import urlencode

logger = logging.getLogger(__name__)

FALLBACK_ACKNOWLEDGMENT = (
    "Thank you for your positive rating! Unfortunately, we don't have a review "
    "link set up yet. Your feedback is still appreciated!"
)


class GateState(enum.Enum):
    IDLE = 'idle'
    DECIDED = 'decided'


class GateOutcome(enum.Enum):
    EXTERNAL = 'external'        # open the tenant's review URL
    ACKNOWLEDGE = 'acknowledge'  # no review URL configured
    THANK_YOU = 'thank_you'      # captured internally


@dataclass(frozen=True)
class GateDecision:
    outcome: GateOutcome
    rating: int
    url: Optional[str] = None
    message: Optional[str] = None
    recorded: bool = False

    def to_dict(self):
        return {
            'action': self.outcome.value,
            'rating': self.rating,
            'url': self.url,
            'message': self.message,
            'recorded': self.recorded,
        }


def thank_you_url(business_number: Optional[str], rating: Optional[int]) -> str:
    params = {}
    if business_number:
        params['BIS'] = business_number
    if rating:
        params['rating'] = rating
    query = urlencode(params)
    return f"/thank-you?{query}" if query else "/thank-you"


class RatingGate:
    """
    Single-use gate for one review page session.

    Args:
        business_number: Tenant the rating belongs to
        minimum_rating: Threshold at or above which ratings go external
        review_url: External review site, may be empty
        submit_review: Callable(rating) recording an internal review
    """

    def __init__(self, business_number: str, minimum_rating: Optional[int],
                 review_url: Optional[str], submit_review: Callable[[int], object]):
        self.business_number = business_number
        self.minimum_rating = minimum_rating or 0
        self.review_url = review_url
        self._submit_review = submit_review
        self.state = GateState.IDLE
        self.decision: Optional[GateDecision] = None

    def select(self, rating: int) -> GateDecision:
        """Handle a rating selection; only the first call has any effect."""
        if self.state is GateState.DECIDED:
            logger.debug(f"Rating gate for {self.business_number} already decided, ignoring {rating}")
            return self.decision

        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValueError(f"Rating must be an integer between 1 and 5, got {rating!r}")

        # Lock before any side effect
        self.state = GateState.DECIDED

        if rating >= self.minimum_rating:
            self.decision = self._route_external(rating)
        else:
            self.decision = self._capture_internal(rating)
        return self.decision

    def _route_external(self, rating: int) -> GateDecision:
        if self.review_url:
            return GateDecision(GateOutcome.EXTERNAL, rating, url=self.review_url)
        return GateDecision(GateOutcome.ACKNOWLEDGE, rating, message=FALLBACK_ACKNOWLEDGMENT)

    def _capture_internal(self, rating: int) -> GateDecision:
        recorded = False
        try:
            self._submit_review(rating)
            recorded = True
        except Exception as e:
            logger.error(f"Error submitting review for {self.business_number}: {e}", exc_info=True)

        return GateDecision(
            GateOutcome.THANK_YOU,
            rating,
            url=thank_you_url(self.business_number, rating),
            recorded=recorded,
        )
