"""
Reservation lifecycle.

    draft -> submitting -> committed -> choosing fulfillment -> modifiable -> locked

Validation happens locally before any request. A successful submit
decrements the local stock optimistically; the next product refresh from the
boundary is the source of truth. Picked-up is terminal and only ever arrives
from the boundary.
"""
import logging
from typing import TYPE_CHECKING, Dict, List, Optional, Union

from .config import Settings
from .core import ReservationRequest, _make_reservation_request
from .errors import BoundaryFailure, EligibilityDenied, ReservationLocked, ValidationError
from .models import (
    DeliveryConfig,
    DeliveryIntent,
    Fulfillment,
    FulfillmentOptions,
    PickupStatus,
    Reservation,
    ReservationOutcome,
)
from .state import CatalogStore, InFlightGuard, QuantityChanged, ReservationCommitted
from .windows import WindowCalculator

if TYPE_CHECKING:
    from pickup_sdk.client import PickupClient

logger = logging.getLogger(__name__)

ReservationId = Union[int, str]


class ReservationLifecycle:
    def __init__(
        self,
        boundary: "PickupClient",
        store: CatalogStore,
        windows: WindowCalculator,
        settings: Settings,
    ) -> None:
        self.boundary = boundary
        self.store = store
        self.windows = windows
        self.settings = settings
        self._guard = InFlightGuard()
        self._reservations: Dict[ReservationId, Reservation] = {}
        self._options: Dict[ReservationId, FulfillmentOptions] = {}
        self._disposed = False

    # ---------------------------
    # Draft quantity
    # ---------------------------
    def increment(self, product_id: int, step: int = 1) -> int:
        self.store.dispatch(QuantityChanged(product_id, step))
        return self.store.draft(product_id)

    def decrement(self, product_id: int, step: int = 1) -> int:
        self.store.dispatch(QuantityChanged(product_id, -step))
        return self.store.draft(product_id)

    def is_submitting(self, product_id: int) -> bool:
        return self._guard.is_held(f"product:{product_id}")

    # ---------------------------
    # Submit
    # ---------------------------
    def build_request(self, product_id: int) -> ReservationRequest:
        product = self.store.product(product_id)
        if product is None:
            raise ValidationError("Product is no longer listed.", details={"product_id": product_id})
        quantity = self.store.draft(product_id)
        if quantity <= 0:
            raise ValidationError("Select at least one item.", details={"product_id": product_id})
        if quantity > product.stock:
            raise ValidationError(
                "Cannot reserve more than the remaining stock.",
                details={"product_id": product_id, "quantity": quantity, "stock": product.stock},
            )
        if not self.windows.is_open(product):
            raise ValidationError(f"{product.name} is not open for reservation yet.", details={"product_id": product_id})
        if not self.windows.is_valid_pickup_date(product.sell_date):
            raise ValidationError(
                "This pickup date is no longer available.",
                details={"product_id": product_id, "pickup_date": str(product.sell_date)},
            )
        return _make_reservation_request(product, quantity)

    async def submit(self, product_id: int) -> Optional[ReservationOutcome]:
        """Reserve the drafted quantity of one product.

        Returns None when a submission for the same product is already in
        flight, or when the lifecycle was disposed before the response came
        back.
        """
        async with self._guard.holding(f"product:{product_id}") as acquired:
            if not acquired:
                logger.info("Reservation for product %s already in flight, ignoring submit", product_id)
                return None

            request = self.build_request(product_id)
            generation = self.store.state.generation
            reservation_id = await self.boundary.submit_reservation(
                request.product_id, request.quantity, request.pickup_date, request.amount
            )
            if self._disposed:
                logger.info("Discarding late reservation response %s for product %s", reservation_id, product_id)
                return None

            if self.store.state.generation == generation:
                self.store.dispatch(ReservationCommitted(product_id, request.quantity))
            else:
                # a refresh landed mid-flight; its stock already reflects this reservation
                logger.info("Products refreshed during reservation %s, keeping refreshed stock", reservation_id)
            product = self.store.product(product_id)
            reservation = Reservation(
                id=reservation_id,
                product_id=request.product_id,
                product_name=product.name if product else None,
                quantity=request.quantity,
                pickup_date=request.pickup_date,
                amount=request.amount,
            )
            self._reservations[reservation.id] = reservation
            logger.info(
                "Reserved %s x product %s for %s (reservation %s)",
                request.quantity, product_id, request.pickup_date, reservation.id,
            )

            options = await self.fulfillment_options(reservation)
            if self._disposed:
                return None
            return ReservationOutcome(reservation=reservation, options=options)

    # ---------------------------
    # Fulfillment choice
    # ---------------------------
    async def fulfillment_options(self, reservation: Reservation) -> FulfillmentOptions:
        product = self.store.product(reservation.product_id)

        try:
            account_eligible = await self.boundary.check_self_pick_eligibility()
        except BoundaryFailure as e:
            logger.warning("Self pickup eligibility check failed, withholding option: %s", e)
            account_eligible = False

        product_eligible = product.self_pick_allowed if product is not None else False
        reason = None
        if not account_eligible:
            reason = "Self pickup is not available for this account."
        elif not product_eligible:
            reason = "Self pickup is not available for this product."

        try:
            config = await self.boundary.fetch_delivery_config()
        except BoundaryFailure as e:
            logger.warning("Delivery config unavailable, withholding delivery: %s", e)
            config = DeliveryConfig(enabled=False)

        delivery = config.enabled and product is not None and product.delivery_available
        options = FulfillmentOptions(
            self_pickup=reason is None,
            delivery=delivery,
            delivery_min_amount=config.min_amount if config.enabled else None,
            self_pickup_denied_reason=reason,
        )
        self._options[reservation.id] = options
        return options

    def is_modifiable(self, reservation: Reservation) -> bool:
        if reservation.status is not PickupStatus.PENDING:
            return False
        return self.windows.is_before_cancellation_cutoff(reservation.pickup_date)

    def _check_modifiable(self, reservation: Reservation) -> None:
        if reservation.status is PickupStatus.PICKED_UP:
            raise ReservationLocked("This reservation has already been picked up.")
        if reservation.status is PickupStatus.CANCELED:
            raise ReservationLocked("This reservation was canceled.")
        if not self.windows.is_before_cancellation_cutoff(reservation.pickup_date):
            raise ReservationLocked(
                "The change deadline for this reservation has passed.",
                details={"cutoff": self.windows.cancellation_instant(reservation.pickup_date).isoformat()},
            )

    def _check_choice_available(self, reservation: Reservation) -> None:
        self._check_modifiable(reservation)
        if reservation.fulfillment_changed:
            raise ReservationLocked("Fulfillment was already chosen for this reservation.")

    async def _options_for(self, reservation: Reservation) -> FulfillmentOptions:
        options = self._options.get(reservation.id)
        if options is None:
            options = await self.fulfillment_options(reservation)
        return options

    async def choose_self_pickup(self, reservation_id: ReservationId) -> Optional[Reservation]:
        self._check_choice_available(self.get(reservation_id))

        async with self._guard.holding(f"reservation:{reservation_id}") as acquired:
            if not acquired:
                logger.info("Change for reservation %s already in flight, ignoring self pickup", reservation_id)
                return None

            options = await self._options_for(self.get(reservation_id))
            if not options.self_pickup:
                raise EligibilityDenied(options.self_pickup_denied_reason or "Self pickup is not available.")

            # re-read: the reservation may have changed while options were loading
            reservation = self.get(reservation_id)
            self._check_choice_available(reservation)
            await self.boundary.submit_self_pickup(reservation.id)
            if self._disposed:
                return None
            updated = reservation.model_copy(
                update={"fulfillment": Fulfillment.SELF_PICKUP, "fulfillment_changed": True}
            )
            self._reservations[updated.id] = updated
            return updated

    async def choose_delivery(self, reservation_id: ReservationId) -> Optional[DeliveryIntent]:
        """Mark the reservation for delivery and hand back what checkout needs.

        Options are loaded on demand for reservations that came from a
        refresh. Returns None when another change to the same reservation is
        in flight.
        """
        self._check_choice_available(self.get(reservation_id))

        async with self._guard.holding(f"reservation:{reservation_id}") as acquired:
            if not acquired:
                logger.info("Change for reservation %s already in flight, ignoring delivery", reservation_id)
                return None

            options = await self._options_for(self.get(reservation_id))
            if self._disposed:
                return None
            if not options.delivery:
                raise EligibilityDenied("Delivery is not available for this reservation.")

            reservation = self.get(reservation_id)
            self._check_choice_available(reservation)
            min_amount = options.delivery_min_amount or 0
            if reservation.amount < min_amount:
                raise ValidationError(
                    f"Delivery needs an order of at least {min_amount}.",
                    details={"amount": reservation.amount, "min_amount": min_amount},
                )

            updated = reservation.model_copy(
                update={"fulfillment": Fulfillment.DELIVERY, "fulfillment_changed": True}
            )
            self._reservations[updated.id] = updated
            return DeliveryIntent(reservation_id=updated.id, amount=updated.amount, min_amount=min_amount)

    # ---------------------------
    # Cancel / refresh
    # ---------------------------
    async def cancel(self, reservation_id: ReservationId) -> Optional[Reservation]:
        reservation = self.get(reservation_id)
        self._check_modifiable(reservation)

        async with self._guard.holding(f"reservation:{reservation.id}") as acquired:
            if not acquired:
                logger.info("Change for reservation %s already in flight, ignoring cancel", reservation.id)
                return None
            await self.boundary.cancel_reservation(reservation.id)
            if self._disposed:
                return None
            updated = reservation.model_copy(update={"status": PickupStatus.CANCELED})
            self._reservations[updated.id] = updated
            return updated

    async def refresh_reservations(self, date_from, date_to) -> List[Reservation]:
        fetched = await self.boundary.fetch_reservations(date_from, date_to)
        if self._disposed:
            logger.info("Discarding late reservation list")
            return self.reservations
        self._reservations = {r.id: r for r in fetched}
        self._options = {k: v for k, v in self._options.items() if k in self._reservations}
        return self.reservations

    # ---------------------------
    # Lookup
    # ---------------------------
    @property
    def reservations(self) -> List[Reservation]:
        return list(self._reservations.values())

    def get(self, reservation_id: ReservationId) -> Reservation:
        reservation = self._reservations.get(reservation_id)
        if reservation is None:
            raise ValidationError("Unknown reservation.", details={"reservation_id": reservation_id})
        return reservation

    def options_for(self, reservation_id: ReservationId) -> Optional[FulfillmentOptions]:
        return self._options.get(reservation_id)

    def dispose(self) -> None:
        self._disposed = True
