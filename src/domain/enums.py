"""
Closed enumerations shared by the extraction schemas and domain models.

Every enumeration carries an OTHER member so the model always has a truthful
fallback instead of being forced to pick a value that does not apply.
"""

from enum import Enum
from typing import FrozenSet, List, Type


class DealStage(str, Enum):
    INBOUND = 'INBOUND'
    NEGOTIATION = 'NEGOTIATION'
    CONTRACTING = 'CONTRACTING'
    SCHEDULING = 'SCHEDULING'
    FULFILLMENT = 'FULFILLMENT'
    PAYMENT = 'PAYMENT'
    COMPLETED = 'COMPLETED'
    DEAD = 'DEAD'
    OTHER = 'OTHER'


class LastActionNeededBy(str, Enum):
    CREATOR = 'CREATOR'
    BRAND = 'BRAND'
    AGENT = 'AGENT'
    PLATFORM = 'PLATFORM'
    OTHER = 'OTHER'


class Currency(str, Enum):
    USD = 'USD'
    EUR = 'EUR'
    GBP = 'GBP'
    CAD = 'CAD'
    AUD = 'AUD'
    OTHER = 'OTHER'


class PaymentStatus(str, Enum):
    NOT_APPLICABLE = 'NOT_APPLICABLE'
    NOT_INVOICED = 'NOT_INVOICED'
    INVOICE_REQUESTED = 'INVOICE_REQUESTED'
    INVOICE_SENT = 'INVOICE_SENT'
    PAID = 'PAID'
    OVERDUE = 'OVERDUE'
    UNKNOWN = 'UNKNOWN'
    OTHER = 'OTHER'


class Platform(str, Enum):
    INSTAGRAM = 'INSTAGRAM'
    TIKTOK = 'TIKTOK'
    YOUTUBE = 'YOUTUBE'
    TWITCH = 'TWITCH'
    X = 'X'
    PINTEREST = 'PINTEREST'
    FACEBOOK = 'FACEBOOK'
    BLOG = 'BLOG'
    PODCAST = 'PODCAST'
    OTHER = 'OTHER'


class DeliverableType(str, Enum):
    POST = 'POST'
    REEL = 'REEL'
    STORY = 'STORY'
    TIKTOK = 'TIKTOK'
    SHORT = 'SHORT'
    VIDEO = 'VIDEO'
    LIVESTREAM = 'LIVESTREAM'
    CAROUSEL = 'CAROUSEL'
    THREAD = 'THREAD'
    BLOG_POST = 'BLOG_POST'
    PODCAST_EPISODE = 'PODCAST_EPISODE'
    OTHER = 'OTHER'


class EvidenceSource(str, Enum):
    EMAIL_SUBJECT = 'EMAIL_SUBJECT'
    EMAIL_FROM = 'EMAIL_FROM'
    EMAIL_BODY = 'EMAIL_BODY'
    PDF_TEXT = 'PDF_TEXT'
    OTHER = 'OTHER'


# Stages where contractual detail is likely enough to justify the deep pass
DEEP_ELIGIBLE_STAGES: FrozenSet[DealStage] = frozenset({
    DealStage.CONTRACTING,
    DealStage.SCHEDULING,
    DealStage.FULFILLMENT,
    DealStage.PAYMENT,
    DealStage.COMPLETED,
})


def enum_values(enum_cls: Type[Enum]) -> List[str]:
    """Return the literal wire values of an enumeration, in declaration order."""
    return [member.value for member in enum_cls]
