"""Ordering bounded context: checkout, orders, coupons and payment settlement.

Orders are plain CQRS aggregates (not event sourced) so they can be looked up
by their human-readable order number. Coupons, shipping methods and the
customer address book live here too, since checkout reads them synchronously.
"""

import structlog
from protean.domain import Domain

from ordering.utils.logging import configure_logging

configure_logging()

ordering = Domain(name="ordering")

logger = structlog.get_logger(__name__)
