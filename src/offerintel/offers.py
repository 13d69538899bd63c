"""Offer lifecycle state machine."""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, Final, TypeVar
from zoneinfo import ZoneInfo

from offerintel import logger
from offerintel.conditions import build_conditions, condition_matching_key, parse_notice_date, rebuild_conditions
from offerintel.exceptions import (
    ExternalServiceError,
    IllegalTransitionError,
    OfferExpiredError,
    OfferLockedError,
    OfferNotFoundError,
    PackageError,
    ValidationFailureError,
)
from offerintel.logging import log_context
from offerintel.processing.normalization import parse_date_parts
from offerintel.signing import parse_signing_event, verify_event_hash
from offerintel.typing.enums import (
    ConditionStatus,
    FormType,
    MessageSubCategory,
    NotificationKind,
    OfferStatus,
    SigningEventType,
    ValidationStatus,
)
from offerintel.typing.models import Offer, Thread, WebhookOutcome

if TYPE_CHECKING:
    from offerintel.settings import Settings
    from offerintel.typing.models import (
        CounterTerms,
        DocumentAnalysis,
        FulfillmentNotice,
        InboundMessage,
        OfferCondition,
        Signer,
        SignUrl,
    )
    from offerintel.typing.protocol import Notifier, ObjectStore, OfferRepository, SigningProvider

T = TypeVar("T")

ALLOWED_TRANSITIONS: Final[dict[OfferStatus, frozenset[OfferStatus]]] = {
    OfferStatus.PENDING_REVIEW: frozenset(
        {
            OfferStatus.AWAITING_SELLER_SIGNATURE,
            OfferStatus.DECLINED,
            OfferStatus.COUNTERED,
            OfferStatus.EXPIRED,
            OfferStatus.SUPERSEDED,
        },
    ),
    OfferStatus.AWAITING_SELLER_SIGNATURE: frozenset(
        {
            OfferStatus.ACCEPTED,
            OfferStatus.PENDING_REVIEW,
            OfferStatus.DECLINED,
            OfferStatus.COUNTERED,
            OfferStatus.EXPIRED,
            OfferStatus.SUPERSEDED,
        },
    ),
    OfferStatus.COUNTERED: frozenset({OfferStatus.ACCEPTED, OfferStatus.EXPIRED, OfferStatus.SUPERSEDED}),
}

OFFER_MESSAGE_CATEGORIES: Final = frozenset(
    {MessageSubCategory.NEW_OFFER, MessageSubCategory.UPDATED_OFFER, MessageSubCategory.AMENDMENT},
)

IN_PLACE_UPDATE_CATEGORIES: Final = frozenset({MessageSubCategory.UPDATED_OFFER, MessageSubCategory.AMENDMENT})
EXPIRABLE_STATUSES: Final = frozenset({OfferStatus.PENDING_REVIEW, OfferStatus.AWAITING_SELLER_SIGNATURE})
CLOSED_FOR_CONDITIONS: Final = frozenset({OfferStatus.DECLINED, OfferStatus.EXPIRED, OfferStatus.SUPERSEDED})

SUPERSEDED_REASON = "superseded by newer offer"
THREAD_RESUBMISSION_REASON = "superseded by newer submission on the same thread"
ACCEPTED_ELSEWHERE_REASON = "superseded by accepted offer"
EXPIRED_REASON = "Offer expired"
AUTO_REJECT_REASON = "Automatic rejection: document failed validation"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class _PairLocks:
    """One re-entrant lock per (listing, buyer) pair."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, str], threading.RLock] = {}

    def __call__(self, pair: tuple[str, str]) -> threading.RLock:
        with self._guard:
            return self._locks.setdefault(pair, threading.RLock())


class OfferStateMachine:
    """Own every offer status change.

    Transitions are serialized per (listing, buyer). Each operation re-reads the offer under
    the pair lock before checking `ALLOWED_TRANSITIONS`.
    """

    def __init__(
        self,
        repository: OfferRepository,
        settings: Settings,
        *,
        signing: SigningProvider | None = None,
        store: ObjectStore | None = None,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the state machine.

        Args:
            repository (OfferRepository): Offer and thread persistence.
            settings (Settings): Runtime settings.
            signing (SigningProvider | None): E-signature provider, required to accept offers.
            store (ObjectStore | None): Object store, required to accept offers.
            notifier (Notifier | None): Notification sender.
            clock (Callable[[], datetime]): Timezone-aware clock.
        """
        self._repository = repository
        self._settings = settings
        self._signing = signing
        self._store = store
        self._notifier = notifier
        self._clock = clock
        self._locks = _PairLocks()
        self._tz = ZoneInfo(settings.offer_timezone)

    # ------------------------------------------------------------------ helpers

    def _require(self, offer_id: str) -> Offer:
        offer = self._repository.get(offer_id)
        if offer is None:
            raise OfferNotFoundError(offer_id=offer_id)
        return offer

    @staticmethod
    def _ensure_allowed(offer: Offer, target: OfferStatus) -> None:
        if target not in ALLOWED_TRANSITIONS.get(offer.status, frozenset()):
            raise IllegalTransitionError(offer_id=offer.id, current=offer.status.value, target=target.value)

    def _transition(self, offer: Offer, target: OfferStatus, **changes: Any) -> Offer:
        """Move an offer to `target`, apply field changes and persist it.

        Raises:
            IllegalTransitionError: If `target` cannot be reached from the current state.
        """
        self._ensure_allowed(offer, target)
        previous = offer.status
        offer.status = target
        for name, value in changes.items():
            setattr(offer, name, value)
        offer.updated_at = self._clock()
        self._repository.save(offer)
        logger.info(
            "Offer transitioned",
            extra={"offer_id": offer.id, "from": previous.value, "to": target.value},
        )
        return offer

    def _notify(self, offer: Offer, kind: NotificationKind, message: str) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.notify(offer, kind, message)
        except Exception as exc:
            logger.warning(
                "Offer notification failed",
                extra={"offer_id": offer.id, "kind": kind.value, "error": str(exc)},
            )

    def _provider(self) -> SigningProvider:
        if self._signing is None:
            raise ExternalServiceError(message="No signing provider configured", service="signing")
        return self._signing

    def _object_store(self) -> ObjectStore:
        if self._store is None:
            raise ExternalServiceError(message="No object store configured", service="storage")
        return self._store

    @staticmethod
    def _call(service: str, action: str, func: Callable[..., T], *args: Any) -> T:
        try:
            return func(*args)
        except PackageError:
            raise
        except Exception as exc:
            raise ExternalServiceError(message=f"{action} failed: {exc}", service=service) from exc

    def _cancel_signing(self, offer: Offer) -> None:
        if not offer.signing_request_id or self._signing is None:
            return
        try:
            self._call("signing", "Cancel request", self._signing.cancel_request, offer.signing_request_id)
        except ExternalServiceError as exc:
            logger.warning(
                "Signing request cancellation failed",
                extra={"offer_id": offer.id, "request_id": offer.signing_request_id, "error": str(exc)},
            )

    def _default_expiry(self) -> datetime:
        return self._clock() + timedelta(hours=self._settings.offer_default_expiry_hours)

    def _terms(self, analysis: DocumentAnalysis) -> dict[str, Any]:
        """Read offer terms from an analysis. Keys are present only when a value was extracted."""
        if analysis.extraction is None:
            return {}
        contract = analysis.extraction.contract
        irrevocability = contract.irrevocability
        terms: dict[str, Any] = {
            "price": contract.price_and_deposit.purchase_price.numeric,
            "deposit": contract.price_and_deposit.deposit.numeric,
            "closing_date": parse_date_parts(
                contract.completion.day,
                contract.completion.month,
                contract.completion.year,
                tz=self._tz,
            ),
            "expiry_date": parse_date_parts(
                irrevocability.day,
                irrevocability.month,
                irrevocability.year,
                time=irrevocability.time,
                tz=self._tz,
            ),
            "conditions": list(contract.schedules),
        }
        return {key: value for key, value in terms.items() if value not in (None, [])}

    @staticmethod
    def _best_analysis(message: InboundMessage) -> DocumentAnalysis | None:
        recognized = [
            analysis
            for analysis in message.analyses
            if analysis.is_recognized_form and analysis.detection.form_type != FormType.NOTICE_OF_FULFILLMENT
        ]
        if not recognized:
            return None
        return max(recognized, key=lambda analysis: analysis.relevance_score)

    @staticmethod
    def _notice_analysis(message: InboundMessage) -> DocumentAnalysis | None:
        return next((analysis for analysis in message.analyses if analysis.is_fulfillment_notice), None)

    @staticmethod
    def _shows_counter_acceptance(analysis: DocumentAnalysis) -> bool:
        visual = analysis.visual_validation
        if visual is None:
            return False
        confirmed = visual.confirmation is not None and visual.confirmation.has_confirmation_signature
        initialed = visual.party_initials is not None and visual.party_initials.is_likely_acceptance
        return confirmed or initialed

    def _set_active_offer(self, message: InboundMessage, offer_id: str) -> None:
        thread = self._repository.get_thread(message.thread_id) or Thread(
            id=message.thread_id,
            listing_id=message.listing_id,
            buyer_id=message.buyer_id,
        )
        thread.active_offer_id = offer_id
        self._repository.save_thread(thread)

    # --------------------------------------------------------------- operations

    def create_from_message(self, message: InboundMessage) -> Offer | None:
        """Create, update or supersede the offer of a classified buyer message.

        Args:
            message (InboundMessage): Message with its analyzed attachments.

        Raises:
            OfferLockedError: If the buyer already has an accepted offer on the listing.

        Returns:
            Offer | None: The offer created or updated for the message. The same offer is
            returned when the message was already processed. None when the message is not an
            offer or carries no recognized form.
        """
        if message.sub_category not in OFFER_MESSAGE_CATEGORIES:
            return None

        existing = self._repository.find_by_message(message.id)
        if existing is not None:
            return existing

        analysis = self._best_analysis(message)
        if analysis is None:
            notice = self._notice_analysis(message)
            if notice is not None:
                return self._apply_notice_message(message, notice)
            logger.info("Offer message has no recognized form", extra={"message_id": message.id})
            return None

        pair = (message.listing_id, message.buyer_id)
        with self._locks(pair), log_context(listing_id=message.listing_id, buyer_id=message.buyer_id):
            existing = self._repository.find_by_message(message.id)
            if existing is not None:
                return existing

            pair_offers = self._repository.list_for_pair(*pair)
            accepted = next((offer for offer in pair_offers if offer.status == OfferStatus.ACCEPTED), None)
            if accepted is not None:
                raise OfferLockedError(listing_id=pair[0], buyer_id=pair[1], offer_id=accepted.id)

            active = [offer for offer in pair_offers if not offer.status.is_terminal]
            terms = self._terms(analysis)

            countered = next((offer for offer in active if offer.status == OfferStatus.COUNTERED), None)
            if countered is not None and self._shows_counter_acceptance(analysis):
                return self._accept_counter_locked(countered, analysis, message_id=message.id)

            if active and message.sub_category in IN_PLACE_UPDATE_CATEGORIES:
                return self._update_in_place(active[-1], analysis, terms)

            for offer in active:
                self._transition(offer, OfferStatus.EXPIRED, decline_reason=SUPERSEDED_REASON)
            for offer in self._repository.list_for_thread(message.thread_id):
                if offer.status == OfferStatus.PENDING_REVIEW:
                    self._transition(offer, OfferStatus.EXPIRED, decline_reason=THREAD_RESUBMISSION_REASON)

            now = self._clock()
            offer = Offer(
                listing_id=message.listing_id,
                buyer_id=message.buyer_id,
                thread_id=message.thread_id,
                source_message_id=message.id,
                original_document_key=analysis.storage_key,
                validation_score=analysis.trust_score,
                condition_records=build_conditions(terms.get("conditions", [])),
                created_at=now,
                updated_at=now,
                **terms,
            )
            if offer.expiry_date is None:
                offer.expiry_date = self._default_expiry()
            self._repository.save(offer)
            self._set_active_offer(message, offer.id)
            logger.info(
                "Offer created",
                extra={"offer_id": offer.id, "message_id": message.id, "superseded": len(active)},
            )

            if self._settings.auto_reject_failed_offers and analysis.validation_status == ValidationStatus.FAILED:
                self._transition(offer, OfferStatus.DECLINED, decline_reason=AUTO_REJECT_REASON)
                self._notify(offer, NotificationKind.OFFER_AUTO_REJECTED, AUTO_REJECT_REASON)
            return offer

    def _update_in_place(self, offer: Offer, analysis: DocumentAnalysis, terms: dict[str, Any]) -> Offer:
        for name, value in terms.items():
            setattr(offer, name, value)
        if "conditions" in terms:
            offer.condition_records = rebuild_conditions(terms["conditions"], offer.condition_records)
        if analysis.storage_key:
            offer.original_document_key = analysis.storage_key
        offer.validation_score = analysis.trust_score
        offer.updated_at = self._clock()
        self._repository.save(offer)
        logger.info("Offer updated in place", extra={"offer_id": offer.id, "fields": sorted(terms)})
        return offer

    def accept(self, offer_id: str, signer: Signer) -> Offer:
        """Start seller signing for a pending offer.

        The signing request is created before any state change, so a provider failure leaves
        the offer in PENDING_REVIEW.

        Raises:
            IllegalTransitionError: If the offer is not PENDING_REVIEW.
            OfferExpiredError: If the offer's expiry date has passed. The offer is expired.
            ValidationFailureError: If the offer has no source document.
            ExternalServiceError: If the store or signing provider fails.

        Returns:
            Offer: Offer awaiting the seller's signature.
        """
        pair = self._require(offer_id).pair
        with self._locks(pair), log_context(offer_id=offer_id):
            offer = self._require(offer_id)
            if offer.status != OfferStatus.PENDING_REVIEW:
                raise IllegalTransitionError(
                    offer_id=offer.id,
                    current=offer.status.value,
                    target=OfferStatus.AWAITING_SELLER_SIGNATURE.value,
                )
            if offer.expiry_date is not None and offer.expiry_date < self._clock():
                self._transition(offer, OfferStatus.EXPIRED, decline_reason=EXPIRED_REASON)
                raise OfferExpiredError(offer_id=offer.id)
            if not offer.original_document_key:
                raise ValidationFailureError(message=f"Offer {offer.id} has no source document")

            store = self._object_store()
            provider = self._provider()
            document_url = self._call(
                "storage",
                "Signed URL",
                store.get_signed_url,
                self._settings.storage_bucket,
                offer.original_document_key,
                self._settings.signed_url_ttl_seconds,
            )
            request = self._call(
                "signing",
                "Create signing request",
                provider.create_embedded_request,
                document_url,
                [signer],
                {"offer_id": offer.id, "listing_id": offer.listing_id, "thread_id": offer.thread_id},
            )
            return self._transition(
                offer,
                OfferStatus.AWAITING_SELLER_SIGNATURE,
                signing_request_id=request.request_id,
                signature_id=request.signature_id,
            )

    def get_sign_url(self, offer_id: str) -> SignUrl:
        """Return the seller's embedded sign URL.

        Raises:
            ValidationFailureError: If no signing is in progress for the offer.
        """
        offer = self._require(offer_id)
        if offer.status != OfferStatus.AWAITING_SELLER_SIGNATURE or not offer.signature_id:
            raise ValidationFailureError(message=f"Offer {offer.id} is {offer.status.value}, no signing in progress")
        provider = self._provider()
        return self._call("signing", "Sign URL", provider.get_embedded_sign_url, offer.signature_id)

    def decline(self, offer_id: str, reason: str | None = None) -> Offer:
        """Decline an offer and notify the buyer.

        Raises:
            IllegalTransitionError: If the offer is terminal or countered.
        """
        pair = self._require(offer_id).pair
        with self._locks(pair), log_context(offer_id=offer_id):
            offer = self._require(offer_id)
            self._ensure_allowed(offer, OfferStatus.DECLINED)
            self._cancel_signing(offer)
            self._transition(
                offer,
                OfferStatus.DECLINED,
                decline_reason=reason,
                signing_request_id=None,
                signature_id=None,
            )
            self._notify(offer, NotificationKind.OFFER_DECLINED, reason or "The seller declined the offer")
            return offer

    def counter(self, offer_id: str, terms: CounterTerms) -> Offer:
        """Counter an offer with new terms and notify the buyer.

        Raises:
            IllegalTransitionError: If the offer is terminal or already countered.
        """
        pair = self._require(offer_id).pair
        with self._locks(pair), log_context(offer_id=offer_id):
            offer = self._require(offer_id)
            self._ensure_allowed(offer, OfferStatus.COUNTERED)
            self._cancel_signing(offer)
            self._transition(
                offer,
                OfferStatus.COUNTERED,
                counter_terms=terms,
                signing_request_id=None,
                signature_id=None,
            )
            self._notify(offer, NotificationKind.OFFER_COUNTERED, terms.message or "The seller sent a counter-offer")
            return offer

    def accept_counter(self, offer_id: str, analysis: DocumentAnalysis) -> Offer:
        """Accept a countered offer once the buyer's returned document shows acceptance.

        Raises:
            IllegalTransitionError: If the offer is not COUNTERED.
            ValidationFailureError: If the document shows neither a confirmation signature nor
                both parties' initials.
        """
        pair = self._require(offer_id).pair
        with self._locks(pair), log_context(offer_id=offer_id):
            return self._accept_counter_locked(self._require(offer_id), analysis)

    def _accept_counter_locked(
        self,
        offer: Offer,
        analysis: DocumentAnalysis,
        *,
        message_id: str | None = None,
    ) -> Offer:
        if offer.status != OfferStatus.COUNTERED:
            raise IllegalTransitionError(
                offer_id=offer.id,
                current=offer.status.value,
                target=OfferStatus.ACCEPTED.value,
            )
        if not self._shows_counter_acceptance(analysis):
            discrepancies = ()
            if analysis.visual_validation is not None:
                discrepancies = tuple(analysis.visual_validation.cross_validation.discrepancies)
            raise ValidationFailureError(
                message="Returned document does not show the buyer's acceptance",
                discrepancies=discrepancies,
            )
        changes: dict[str, Any] = {"buyer_signed_at": self._clock()}
        if analysis.storage_key:
            changes["signed_document_key"] = analysis.storage_key
        if message_id is not None:
            changes["related_message_ids"] = [*offer.related_message_ids, message_id]
        self._transition(offer, OfferStatus.ACCEPTED, **changes)
        self._notify(offer, NotificationKind.OFFER_ACCEPTED, "The buyer accepted the counter-offer")
        return offer

    # --------------------------------------------------------------- conditions

    def get_conditions(self, offer_id: str) -> list[OfferCondition]:
        """Return the Schedule A conditions of an offer in creation order."""
        return self._require(offer_id).condition_records

    def fulfill_conditions(
        self,
        offer_id: str,
        notice: FulfillmentNotice,
        *,
        message_id: str | None = None,
    ) -> Offer:
        """Mark the pending conditions listed on a Form 124 as fulfilled.

        Conditions are matched on their normalized text. Notice items that match no pending
        condition are logged and ignored. The offer status never changes here.

        Args:
            offer_id (str): Offer whose conditions are fulfilled.
            notice (FulfillmentNotice): Parsed notice.
            message_id (str | None): Message that carried the notice, recorded for idempotency.

        Raises:
            ValidationFailureError: If the offer is declined, expired or superseded.

        Returns:
            Offer: The updated offer.
        """
        pair = self._require(offer_id).pair
        with self._locks(pair), log_context(offer_id=offer_id):
            return self._fulfill_locked(self._require(offer_id), notice, message_id=message_id)

    def _fulfill_locked(self, offer: Offer, notice: FulfillmentNotice, *, message_id: str | None) -> Offer:
        if offer.status in CLOSED_FOR_CONDITIONS:
            raise ValidationFailureError(
                message=f"Offer {offer.id} is {offer.status.value}, its conditions cannot be fulfilled",
            )

        fulfilled_at = parse_notice_date(notice.document_date, self._tz) or self._clock()
        pending = {record.matching_key: record for record in offer.pending_conditions}
        matched = 0
        unmatched: list[str] = []
        for item in notice.fulfilled_conditions:
            record = pending.pop(condition_matching_key(item.description), None)
            if record is None:
                unmatched.append(item.description)
                continue
            record.status = ConditionStatus.FULFILLED
            record.fulfilled_at = fulfilled_at
            record.note = item.note
            matched += 1

        if message_id is not None and not offer.handles_message(message_id):
            offer.related_message_ids.append(message_id)
        offer.updated_at = self._clock()
        self._repository.save(offer)
        logger.info(
            "Conditions fulfilled",
            extra={"offer_id": offer.id, "matched": matched, "pending": len(offer.pending_conditions)},
        )
        if unmatched:
            logger.warning(
                "Fulfilled conditions match no pending condition",
                extra={"offer_id": offer.id, "descriptions": unmatched},
            )
        if matched and offer.all_conditions_fulfilled:
            self._notify(offer, NotificationKind.CONDITIONS_FULFILLED, "All conditions of the offer are fulfilled")
        return offer

    def _apply_notice_message(self, message: InboundMessage, analysis: DocumentAnalysis) -> Offer | None:
        """Apply a Form 124 to the buyer's latest open offer that still has pending conditions."""
        pair = (message.listing_id, message.buyer_id)
        with self._locks(pair), log_context(listing_id=message.listing_id, buyer_id=message.buyer_id):
            existing = self._repository.find_by_message(message.id)
            if existing is not None:
                return existing
            candidates = [
                offer
                for offer in self._repository.list_for_pair(*pair)
                if offer.status not in CLOSED_FOR_CONDITIONS and offer.pending_conditions
            ]
            if not candidates:
                logger.info(
                    "Fulfillment notice matches no offer with pending conditions",
                    extra={"message_id": message.id},
                )
                return None
            accepted = [offer for offer in candidates if offer.status == OfferStatus.ACCEPTED]
            target = (accepted or candidates)[-1]
            return self._fulfill_locked(target, analysis.fulfillment, message_id=message.id)

    def reset_signing(self, offer_id: str) -> Offer:
        """Return an offer stuck in signing to PENDING_REVIEW."""
        pair = self._require(offer_id).pair
        with self._locks(pair), log_context(offer_id=offer_id):
            offer = self._require(offer_id)
            if offer.status != OfferStatus.AWAITING_SELLER_SIGNATURE:
                raise IllegalTransitionError(
                    offer_id=offer.id,
                    current=offer.status.value,
                    target=OfferStatus.PENDING_REVIEW.value,
                )
            self._cancel_signing(offer)
            return self._transition(
                offer,
                OfferStatus.PENDING_REVIEW,
                signing_request_id=None,
                signature_id=None,
            )

    def expire_due_offers(self, now: datetime | None = None) -> list[Offer]:
        """Expire pending and awaiting offers whose expiry date has passed.

        Returns:
            list[Offer]: Offers moved to EXPIRED by this sweep.
        """
        moment = now or self._clock()
        expired: list[Offer] = []
        for candidate in self._repository.list_by_status(set(EXPIRABLE_STATUSES)):
            if candidate.expiry_date is None or candidate.expiry_date >= moment:
                continue
            with self._locks(candidate.pair):
                offer = self._repository.get(candidate.id)
                if offer is None or offer.status not in EXPIRABLE_STATUSES:
                    continue
                if offer.expiry_date is None or offer.expiry_date >= moment:
                    continue
                self._cancel_signing(offer)
                expired.append(
                    self._transition(
                        offer,
                        OfferStatus.EXPIRED,
                        decline_reason=EXPIRED_REASON,
                        signing_request_id=None,
                        signature_id=None,
                    ),
                )
        logger.info("Expiry sweep finished", extra={"expired": len(expired)})
        return expired

    # ----------------------------------------------------------------- webhooks

    def handle_signing_event(self, payload: dict[str, Any] | str | bytes) -> WebhookOutcome:
        """Apply an e-signature webhook.

        Every failure is logged and acknowledged so that the provider does not retry. The
        offer is left untouched in that case.

        Args:
            payload: Webhook body.

        Returns:
            WebhookOutcome: Always acknowledged. `processed` tells whether state changed.
        """
        try:
            event = parse_signing_event(payload)
        except ValidationFailureError as exc:
            logger.warning("Rejected signing webhook", extra={"reason": str(exc)})
            return WebhookOutcome(reason=str(exc))

        if self._settings.should_verify_webhooks and not verify_event_hash(
            event,
            self._settings.signing_webhook_secret,
        ):
            logger.warning("Signing webhook failed verification", extra={"event_type": event.event_type.value})
            return WebhookOutcome(reason="invalid event hash")

        offer = self._repository.find_by_signing_request(event.request_id) if event.request_id else None
        if offer is None:
            logger.warning("Signing webhook for unknown request", extra={"request_id": event.request_id})
            return WebhookOutcome(reason="unknown signing request")

        with self._locks(offer.pair), log_context(offer_id=offer.id, request_id=event.request_id):
            offer = self._repository.find_by_signing_request(event.request_id)
            if offer is None:
                return WebhookOutcome(reason="unknown signing request")
            try:
                self._apply_event(offer, event.event_type)
            except PackageError as exc:
                logger.warning(
                    "Signing webhook not applied",
                    extra={"event_type": event.event_type.value, "error": str(exc)},
                )
                return WebhookOutcome(offer_id=offer.id, status=offer.status, reason=str(exc))
        return WebhookOutcome(processed=True, offer_id=offer.id, status=offer.status)

    def _apply_event(self, offer: Offer, event_type: SigningEventType) -> None:
        if event_type == SigningEventType.DECLINED:
            self._transition(offer, OfferStatus.PENDING_REVIEW, signing_request_id=None, signature_id=None)
            return

        if offer.status != OfferStatus.AWAITING_SELLER_SIGNATURE:
            target = OfferStatus.ACCEPTED if event_type == SigningEventType.ALL_SIGNED else offer.status
            raise IllegalTransitionError(offer_id=offer.id, current=offer.status.value, target=target.value)

        if event_type == SigningEventType.VIEWED:
            offer.viewed_at = self._clock()
            self._repository.save(offer)
            return
        if event_type == SigningEventType.SIGNED:
            offer.seller_signed_at = self._clock()
            self._repository.save(offer)
            return

        provider = self._provider()
        store = self._object_store()
        document = self._call(
            "signing",
            "Download signed document",
            provider.download_signed_document,
            offer.signing_request_id,
        )
        key = f"signed-offers/{offer.listing_id}/{offer.thread_id}/{offer.id}/signed.pdf"
        stored_key = self._call(
            "storage",
            "Upload signed document",
            store.upload_file,
            self._settings.storage_bucket,
            key,
            document,
            "application/pdf",
        )
        self._transition(
            offer,
            OfferStatus.ACCEPTED,
            signed_document_key=stored_key or key,
            seller_signed_at=offer.seller_signed_at or self._clock(),
        )
        self._notify(offer, NotificationKind.OFFER_ACCEPTED, "The seller signed the offer")
        for other in self._repository.list_for_pair(*offer.pair):
            if other.id != offer.id and not other.status.is_terminal:
                self._transition(other, OfferStatus.SUPERSEDED, decline_reason=ACCEPTED_ELSEWHERE_REASON)
