from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from offerintel.exceptions import (
    ExternalServiceError,
    IllegalTransitionError,
    OfferExpiredError,
    OfferLockedError,
    OfferNotFoundError,
    ValidationFailureError,
)
from offerintel.offers import (
    OfferStateMachine,
    ACCEPTED_ELSEWHERE_REASON,
    AUTO_REJECT_REASON,
    EXPIRED_REASON,
    SUPERSEDED_REASON,
    THREAD_RESUBMISSION_REASON,
)
from offerintel.signing import compute_event_hash
from offerintel.typing.enums import (
    ConditionStatus,
    FormType,
    MessageSubCategory,
    NotificationKind,
    OfferStatus,
    ValidationStatus,
)
from offerintel.typing.models import (
    ConfirmationResult,
    CounterTerms,
    CrossValidation,
    DocumentAnalysis,
    FormDetectionResult,
    FulfilledCondition,
    FulfillmentNotice,
    Offer,
    Signer,
    VisualValidationResult,
)

SELLER = Signer(email="sam@example.com", name="Sam Seller")
IRREVOCABLE_UNTIL = datetime(2025, 3, 16, 3, 59, tzinfo=UTC)
FINANCING = "This Offer is conditional upon the Buyer arranging a new first mortgage satisfactory to the Buyer."
INSPECTION = "This Offer is conditional upon a home inspection satisfactory to the Buyer."


def _accepted_visual(*, confirmed: bool = True, discrepancies: list[str] | None = None) -> VisualValidationResult:
    return VisualValidationResult(
        cross_validation=CrossValidation(
            text_matches_visual=not discrepancies,
            discrepancies=discrepancies or [],
        ),
        confirmation=ConfirmationResult(has_confirmation_signature=confirmed, confidence=1.0 if confirmed else 0.0),
    )


def _event(event_type: str, request_id: str = "req-1", *, secret: str | None = None) -> dict[str, object]:
    event: dict[str, object] = {"event_type": event_type, "event_time": "1741600000"}
    if secret is not None:
        event["event_hash"] = compute_event_hash(secret, "1741600000", event_type)
    return {"event": event, "signature_request": {"signature_request_id": request_id}}


@pytest.fixture
def machine(make_state_machine):
    return make_state_machine()


@pytest.fixture
def pending(machine, make_message) -> Offer:
    return machine.create_from_message(make_message())


@pytest.fixture
def awaiting(machine, pending) -> Offer:
    return machine.accept(pending.id, SELLER)


# ----------------------------------------------------------------------- creation


def test_create_reads_terms_from_analysis(machine, make_message, repository) -> None:
    offer = machine.create_from_message(make_message())

    assert offer is not None
    assert offer.status == OfferStatus.PENDING_REVIEW
    assert offer.price == 675000.0
    assert offer.deposit == 25000.0
    assert offer.conditions == ["A"]
    assert offer.condition_records == []
    assert offer.expiry_date == IRREVOCABLE_UNTIL
    assert offer.closing_date is not None
    assert offer.closing_date.date().isoformat() == "2025-06-30"
    assert offer.original_document_key == "inbox/offer.pdf"
    assert offer.validation_score == 0.9
    assert repository.get(offer.id) == offer
    assert repository.get_thread("thread-1").active_offer_id == offer.id  # type: ignore[union-attr]


def test_create_ignores_non_offer_messages(machine, make_message, make_analysis, repository) -> None:
    assert machine.create_from_message(make_message(sub_category=MessageSubCategory.QUESTION)) is None
    assert machine.create_from_message(make_message(analyses=[make_analysis(recognized=False)])) is None
    assert machine.create_from_message(make_message(analyses=[])) is None
    assert repository.all_offers() == []


def test_create_is_idempotent_per_message(machine, make_message, repository) -> None:
    first = machine.create_from_message(make_message("msg-1"))
    second = machine.create_from_message(make_message("msg-1"))

    assert first is not None
    assert second is not None
    assert first.id == second.id
    assert len(repository.all_offers()) == 1


def test_create_picks_most_relevant_attachment(machine, make_message, make_analysis) -> None:
    analyses = [
        make_analysis(relevance=40, storage_key="inbox/cover.pdf"),
        make_analysis(relevance=90, storage_key="inbox/aps.pdf"),
    ]

    offer = machine.create_from_message(make_message(analyses=analyses))

    assert offer.original_document_key == "inbox/aps.pdf"  # type: ignore[union-attr]


def test_new_offer_expires_previous_active_offer(machine, make_message, repository) -> None:
    first = machine.create_from_message(make_message("msg-1"))
    second = machine.create_from_message(make_message("msg-2"))

    old = repository.get(first.id)  # type: ignore[union-attr]
    assert old.status == OfferStatus.EXPIRED  # type: ignore[union-attr]
    assert old.decline_reason == SUPERSEDED_REASON  # type: ignore[union-attr]
    assert second.status == OfferStatus.PENDING_REVIEW  # type: ignore[union-attr]
    assert repository.get_thread("thread-1").active_offer_id == second.id  # type: ignore[union-attr]


def test_new_submission_expires_pending_offers_on_thread(machine, make_message, repository) -> None:
    first = machine.create_from_message(make_message("msg-1", buyer_id="buyer-1"))
    machine.create_from_message(make_message("msg-2", buyer_id="buyer-2"))

    old = repository.get(first.id)  # type: ignore[union-attr]
    assert old.status == OfferStatus.EXPIRED  # type: ignore[union-attr]
    assert old.decline_reason == THREAD_RESUBMISSION_REASON  # type: ignore[union-attr]


def test_updated_offer_changes_active_offer_in_place(
    machine,
    make_message,
    make_analysis,
    repository,
    default_contract,
) -> None:
    first = machine.create_from_message(make_message("msg-1"))
    contract = {
        **default_contract,
        "price_and_deposit": {"purchase_price": {"numeric": "690,000"}, "deposit": {"numeric": "30,000"}},
    }

    updated = machine.create_from_message(
        make_message(
            "msg-2",
            sub_category=MessageSubCategory.UPDATED_OFFER,
            analyses=[make_analysis(contract=contract, storage_key="inbox/v2.pdf", score=0.75)],
        ),
    )

    assert updated.id == first.id  # type: ignore[union-attr]
    assert updated.price == 690000.0  # type: ignore[union-attr]
    assert updated.deposit == 30000.0  # type: ignore[union-attr]
    assert updated.original_document_key == "inbox/v2.pdf"  # type: ignore[union-attr]
    assert updated.validation_score == 0.75  # type: ignore[union-attr]
    assert len(repository.all_offers()) == 1


def test_missing_irrevocability_uses_default_expiry(
    make_state_machine,
    make_message,
    make_analysis,
    clock,
    default_contract,
) -> None:
    machine = make_state_machine(offer_default_expiry_hours=48)
    contract = {key: value for key, value in default_contract.items() if key != "irrevocability"}

    offer = machine.create_from_message(make_message(analyses=[make_analysis(contract=contract)]))

    assert offer.expiry_date == clock.now + timedelta(hours=48)  # type: ignore[union-attr]


def test_accepted_pair_is_locked(machine, make_message, repository) -> None:
    repository.save(
        Offer(
            listing_id="listing-1",
            buyer_id="buyer-1",
            thread_id="thread-0",
            source_message_id="msg-0",
            status=OfferStatus.ACCEPTED,
        ),
    )

    with pytest.raises(OfferLockedError):
        machine.create_from_message(make_message("msg-1"))


def test_failed_document_is_auto_rejected_when_enabled(make_state_machine, make_message, make_analysis, notifier):
    machine = make_state_machine(auto_reject_failed_offers=True)

    offer = machine.create_from_message(
        make_message(analyses=[make_analysis(status=ValidationStatus.FAILED, score=0.2)]),
    )

    assert offer is not None
    assert offer.status == OfferStatus.DECLINED
    assert offer.decline_reason == AUTO_REJECT_REASON
    assert notifier.sent == [(offer.id, NotificationKind.OFFER_AUTO_REJECTED, AUTO_REJECT_REASON)]


def test_failed_document_stays_pending_by_default(machine, make_message, make_analysis, notifier) -> None:
    offer = machine.create_from_message(make_message(analyses=[make_analysis(status=ValidationStatus.FAILED)]))

    assert offer.status == OfferStatus.PENDING_REVIEW  # type: ignore[union-attr]
    assert notifier.sent == []


def test_concurrent_messages_leave_one_active_offer(machine, make_message, repository) -> None:
    messages = [make_message(f"msg-{index}") for index in range(8)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(machine.create_from_message, messages))

    statuses = [offer.status for offer in repository.all_offers()]
    assert len(statuses) == 8
    assert statuses.count(OfferStatus.PENDING_REVIEW) == 1


# --------------------------------------------------------------------- acceptance


def test_accept_starts_seller_signing(machine, pending, signing_provider, object_store) -> None:
    offer = machine.accept(pending.id, SELLER)

    assert offer.status == OfferStatus.AWAITING_SELLER_SIGNATURE
    assert offer.signing_request_id == "req-1"
    assert offer.signature_id == "sig-1"
    assert object_store.signed == [("offers", "inbox/offer.pdf", 3600)]
    url, signers, metadata = signing_provider.requests[0]
    assert url == "https://store.example/offers/inbox/offer.pdf"
    assert signers == [SELLER]
    assert metadata == {"offer_id": pending.id, "listing_id": "listing-1", "thread_id": "thread-1"}


def test_accept_provider_failure_leaves_offer_pending(machine, pending, signing_provider, repository) -> None:
    signing_provider.create_error = RuntimeError("provider down")

    with pytest.raises(ExternalServiceError, match="provider down"):
        machine.accept(pending.id, SELLER)

    stored = repository.get(pending.id)
    assert stored.status == OfferStatus.PENDING_REVIEW  # type: ignore[union-attr]
    assert stored.signing_request_id is None  # type: ignore[union-attr]


def test_accept_past_expiry_expires_offer(machine, pending, clock, repository) -> None:
    clock.now = IRREVOCABLE_UNTIL + timedelta(minutes=1)

    with pytest.raises(OfferExpiredError):
        machine.accept(pending.id, SELLER)

    stored = repository.get(pending.id)
    assert stored.status == OfferStatus.EXPIRED  # type: ignore[union-attr]
    assert stored.decline_reason == EXPIRED_REASON  # type: ignore[union-attr]


def test_accept_requires_pending_review(machine, awaiting) -> None:
    with pytest.raises(IllegalTransitionError):
        machine.accept(awaiting.id, SELLER)


def test_accept_requires_source_document(machine, make_message, make_analysis) -> None:
    offer = machine.create_from_message(make_message(analyses=[make_analysis(storage_key=None)]))

    with pytest.raises(ValidationFailureError):
        machine.accept(offer.id, SELLER)  # type: ignore[union-attr]


def test_accept_without_signing_provider_fails(make_settings, repository, make_message, clock) -> None:
    machine = OfferStateMachine(repository, make_settings(), clock=clock)
    offer = machine.create_from_message(make_message())

    with pytest.raises(ExternalServiceError):
        machine.accept(offer.id, SELLER)  # type: ignore[union-attr]
    assert repository.get(offer.id).status == OfferStatus.PENDING_REVIEW  # type: ignore[union-attr]


def test_unknown_offer_raises(machine) -> None:
    with pytest.raises(OfferNotFoundError):
        machine.decline("missing")


def test_get_sign_url(machine, pending, awaiting) -> None:
    assert machine.get_sign_url(awaiting.id).url == "https://sign.example/sig-1"


def test_get_sign_url_requires_signing_in_progress(machine, pending) -> None:
    with pytest.raises(ValidationFailureError):
        machine.get_sign_url(pending.id)


# ----------------------------------------------------------- decline and counter


def test_decline_cancels_signing_and_notifies(machine, awaiting, signing_provider, notifier) -> None:
    offer = machine.decline(awaiting.id, "Price too low")

    assert offer.status == OfferStatus.DECLINED
    assert offer.decline_reason == "Price too low"
    assert offer.signing_request_id is None
    assert signing_provider.cancelled == ["req-1"]
    assert notifier.sent == [(offer.id, NotificationKind.OFFER_DECLINED, "Price too low")]


def test_decline_terminal_offer_is_illegal(machine, pending) -> None:
    machine.decline(pending.id)

    with pytest.raises(IllegalTransitionError):
        machine.decline(pending.id)


def test_notifier_failure_does_not_block_transition(machine, pending, notifier, monkeypatch) -> None:
    def _boom(*_args: object) -> None:
        raise RuntimeError("smtp down")

    monkeypatch.setattr(notifier, "notify", _boom)

    assert machine.decline(pending.id).status == OfferStatus.DECLINED


def test_counter_records_terms_and_notifies(machine, pending, notifier) -> None:
    terms = CounterTerms(price=700000, conditions=["inspection"], message="We can do 700k")

    offer = machine.counter(pending.id, terms)

    assert offer.status == OfferStatus.COUNTERED
    assert offer.counter_terms == terms
    assert notifier.sent == [(offer.id, NotificationKind.OFFER_COUNTERED, "We can do 700k")]
    with pytest.raises(IllegalTransitionError):
        machine.decline(offer.id)


def _decline(machine: OfferStateMachine, offer_id: str, _make_analysis) -> None:
    machine.decline(offer_id)


def _expire(machine: OfferStateMachine, offer_id: str, _make_analysis) -> None:
    machine.expire_due_offers(IRREVOCABLE_UNTIL + timedelta(minutes=1))


def _counter(machine: OfferStateMachine, offer_id: str, _make_analysis) -> None:
    machine.counter(offer_id, CounterTerms(price=700000))


def _accept_counter(machine: OfferStateMachine, offer_id: str, make_analysis) -> None:
    machine.counter(offer_id, CounterTerms(price=700000))
    machine.accept_counter(offer_id, make_analysis(visual=_accepted_visual()))


@pytest.mark.parametrize(
    ("settle", "status"),
    [
        (_decline, OfferStatus.DECLINED),
        (_expire, OfferStatus.EXPIRED),
        (_accept_counter, OfferStatus.ACCEPTED),
        (_counter, OfferStatus.COUNTERED),
    ],
)
def test_counter_is_illegal_once_offer_is_settled(
    machine,
    pending,
    make_analysis,
    repository,
    notifier,
    settle,
    status: OfferStatus,
) -> None:
    settle(machine, pending.id, make_analysis)
    sent = list(notifier.sent)

    with pytest.raises(IllegalTransitionError):
        machine.counter(pending.id, CounterTerms(price=650000, message="Final offer"))

    stored = repository.get(pending.id)
    assert stored.status == status  # type: ignore[union-attr]
    assert stored.counter_terms is None or stored.counter_terms.price == 700000  # type: ignore[union-attr]
    assert notifier.sent == sent


def test_accept_counter_requires_acceptance_evidence(machine, pending, make_analysis) -> None:
    machine.counter(pending.id, CounterTerms(price=700000))
    analysis = make_analysis(visual=_accepted_visual(confirmed=False, discrepancies=["NO_BUYER_NAME"]))

    with pytest.raises(ValidationFailureError) as exc_info:
        machine.accept_counter(pending.id, analysis)

    assert exc_info.value.discrepancies == ("NO_BUYER_NAME",)


def test_accept_counter_accepts_signed_return(machine, pending, make_analysis, notifier, clock) -> None:
    machine.counter(pending.id, CounterTerms(price=700000))

    offer = machine.accept_counter(pending.id, make_analysis(visual=_accepted_visual(), storage_key="inbox/back.pdf"))

    assert offer.status == OfferStatus.ACCEPTED
    assert offer.buyer_signed_at == clock.now
    assert offer.signed_document_key == "inbox/back.pdf"
    assert notifier.sent[-1][1] == NotificationKind.OFFER_ACCEPTED


def test_accept_counter_requires_countered_offer(machine, pending, make_analysis) -> None:
    with pytest.raises(IllegalTransitionError):
        machine.accept_counter(pending.id, make_analysis(visual=_accepted_visual()))


def test_returned_counter_message_accepts_counter(machine, pending, make_message, make_analysis, repository) -> None:
    machine.counter(pending.id, CounterTerms(price=700000))

    offer = machine.create_from_message(
        make_message("msg-2", analyses=[make_analysis(visual=_accepted_visual())]),
    )

    assert offer.id == pending.id  # type: ignore[union-attr]
    assert offer.status == OfferStatus.ACCEPTED  # type: ignore[union-attr]
    assert len(repository.all_offers()) == 1


def test_redelivered_counter_acceptance_returns_accepted_offer(
    machine,
    pending,
    make_message,
    make_analysis,
    repository,
    notifier,
) -> None:
    machine.counter(pending.id, CounterTerms(price=700000))
    message = make_message("msg-2", analyses=[make_analysis(visual=_accepted_visual())])

    first = machine.create_from_message(message)
    second = machine.create_from_message(message)

    assert first.id == second.id == pending.id  # type: ignore[union-attr]
    assert second.status == OfferStatus.ACCEPTED  # type: ignore[union-attr]
    assert second.related_message_ids == ["msg-2"]  # type: ignore[union-attr]
    assert len(repository.all_offers()) == 1
    assert [kind for _, kind, _ in notifier.sent].count(NotificationKind.OFFER_ACCEPTED) == 1
    with pytest.raises(OfferLockedError):
        machine.create_from_message(make_message("msg-3"))


def test_reset_signing_returns_to_pending(machine, awaiting, signing_provider) -> None:
    offer = machine.reset_signing(awaiting.id)

    assert offer.status == OfferStatus.PENDING_REVIEW
    assert offer.signing_request_id is None
    assert offer.signature_id is None
    assert signing_provider.cancelled == ["req-1"]
    with pytest.raises(IllegalTransitionError):
        machine.reset_signing(offer.id)


# ------------------------------------------------------------------------- expiry


def test_expire_due_offers(machine, make_message, signing_provider, repository) -> None:
    pending = machine.create_from_message(make_message("msg-1", buyer_id="buyer-1", thread_id="t-1"))
    awaiting = machine.create_from_message(make_message("msg-2", buyer_id="buyer-2", thread_id="t-2"))
    machine.accept(awaiting.id, SELLER)  # type: ignore[union-attr]

    assert machine.expire_due_offers(IRREVOCABLE_UNTIL - timedelta(minutes=1)) == []

    expired = machine.expire_due_offers(IRREVOCABLE_UNTIL + timedelta(minutes=1))

    assert {offer.id for offer in expired} == {pending.id, awaiting.id}  # type: ignore[union-attr]
    assert all(offer.decline_reason == EXPIRED_REASON for offer in expired)
    assert signing_provider.cancelled == ["req-1"]
    assert machine.expire_due_offers(IRREVOCABLE_UNTIL + timedelta(days=1)) == []


def test_expire_due_offers_defaults_to_clock(machine, pending, clock) -> None:
    clock.advance(days=7)

    assert [offer.id for offer in machine.expire_due_offers()] == [pending.id]


# ----------------------------------------------------------------------- webhooks


def test_viewed_and_signed_events_record_timestamps(machine, awaiting, repository, clock) -> None:
    viewed = machine.handle_signing_event(_event("signature_request_viewed"))
    clock.advance(minutes=5)
    signed = machine.handle_signing_event(_event("signature_request_signed"))

    assert viewed.processed is True
    assert signed.processed is True
    stored = repository.get(awaiting.id)
    assert stored.status == OfferStatus.AWAITING_SELLER_SIGNATURE  # type: ignore[union-attr]
    assert stored.viewed_at == clock.now - timedelta(minutes=5)  # type: ignore[union-attr]
    assert stored.seller_signed_at == clock.now  # type: ignore[union-attr]


def test_all_signed_accepts_and_supersedes_siblings(
    machine,
    awaiting,
    repository,
    signing_provider,
    object_store,
    notifier,
) -> None:
    sibling = Offer(
        listing_id="listing-1",
        buyer_id="buyer-1",
        thread_id="thread-9",
        source_message_id="msg-9",
    )
    repository.save(sibling)

    outcome = machine.handle_signing_event(_event("signature_request_all_signed"))

    assert outcome.processed is True
    assert outcome.status == OfferStatus.ACCEPTED
    key = f"signed-offers/listing-1/thread-1/{awaiting.id}/signed.pdf"
    stored = repository.get(awaiting.id)
    assert stored.signed_document_key == key  # type: ignore[union-attr]
    assert stored.seller_signed_at is not None  # type: ignore[union-attr]
    assert object_store.uploads == {f"offers/{key}": b"%PDF-signed"}
    assert signing_provider.downloads == ["req-1"]
    assert notifier.sent[-1][1] == NotificationKind.OFFER_ACCEPTED
    other = repository.get(sibling.id)
    assert other.status == OfferStatus.SUPERSEDED  # type: ignore[union-attr]
    assert other.decline_reason == ACCEPTED_ELSEWHERE_REASON  # type: ignore[union-attr]


def test_duplicate_all_signed_is_acknowledged_without_change(machine, awaiting, object_store) -> None:
    machine.handle_signing_event(_event("signature_request_all_signed"))

    outcome = machine.handle_signing_event(_event("signature_request_all_signed"))

    assert outcome.acknowledged is True
    assert outcome.processed is False
    assert outcome.status == OfferStatus.ACCEPTED
    assert len(object_store.uploads) == 1


def test_download_failure_keeps_offer_awaiting(machine, awaiting, signing_provider, repository) -> None:
    signing_provider.download_error = RuntimeError("timeout")

    outcome = machine.handle_signing_event(_event("signature_request_all_signed"))

    assert outcome.processed is False
    assert repository.get(awaiting.id).status == OfferStatus.AWAITING_SELLER_SIGNATURE  # type: ignore[union-attr]


def test_declined_event_returns_offer_to_review(machine, awaiting, repository) -> None:
    outcome = machine.handle_signing_event(_event("signature_request_declined"))

    assert outcome.processed is True
    stored = repository.get(awaiting.id)
    assert stored.status == OfferStatus.PENDING_REVIEW  # type: ignore[union-attr]
    assert stored.signing_request_id is None  # type: ignore[union-attr]


def test_unknown_request_and_bad_payload_are_acknowledged(machine, awaiting) -> None:
    unknown = machine.handle_signing_event(_event("signature_request_signed", "req-404"))
    malformed = machine.handle_signing_event(b"{not json")

    assert unknown.acknowledged is True
    assert unknown.processed is False
    assert unknown.reason == "unknown signing request"
    assert malformed.processed is False


def test_webhook_hash_is_enforced_when_enabled(make_state_machine, make_message, repository) -> None:
    machine = make_state_machine(verify_webhook_signatures=True, signing_webhook_secret="shh")
    offer = machine.create_from_message(make_message())
    machine.accept(offer.id, SELLER)  # type: ignore[union-attr]

    forged = machine.handle_signing_event(_event("signature_request_viewed", secret="guess"))
    genuine = machine.handle_signing_event(_event("signature_request_viewed", secret="shh"))

    assert forged.processed is False
    assert forged.reason == "invalid event hash"
    assert genuine.processed is True


# --------------------------------------------------------------------- conditions


def _conditional_message(make_message, make_analysis, default_contract, message_id: str = "msg-1", **kwargs):
    contract = {**default_contract, "schedules": ["A", f"1. {FINANCING}", f"2. {INSPECTION}"]}
    return make_message(message_id, analyses=[make_analysis(contract=contract)], **kwargs)


def _notice_analysis(*descriptions: str, document_date: str | None = "2025-04-02") -> DocumentAnalysis:
    return DocumentAnalysis(
        filename="form124.pdf",
        storage_key="inbox/form124.pdf",
        page_count=1,
        detection=FormDetectionResult(
            is_recognized_form=True,
            form_type=FormType.NOTICE_OF_FULFILLMENT,
            confidence=50,
            identifiers=["OREA", "Form 124 Notice of Fulfillment"],
        ),
        fulfillment=FulfillmentNotice(
            document_date=document_date,
            fulfilled_conditions=[FulfilledCondition(description=text) for text in descriptions],
        ),
        relevance_score=60,
        validation_status=ValidationStatus.PASSED,
    )


def test_create_tracks_schedule_conditions(machine, make_message, make_analysis, default_contract) -> None:
    offer = machine.create_from_message(_conditional_message(make_message, make_analysis, default_contract))

    records = machine.get_conditions(offer.id)  # type: ignore[union-attr]
    assert [record.description for record in records] == [FINANCING, INSPECTION]
    assert all(record.status == ConditionStatus.PENDING for record in records)
    assert offer.conditions == ["A", f"1. {FINANCING}", f"2. {INSPECTION}"]  # type: ignore[union-attr]


def test_fulfill_conditions_matches_pending_by_text(
    machine,
    make_message,
    make_analysis,
    default_contract,
    repository,
    notifier,
    clock,
) -> None:
    offer = machine.create_from_message(_conditional_message(make_message, make_analysis, default_contract))
    notice = FulfillmentNotice(
        document_date="2025-04-02",
        fulfilled_conditions=[
            FulfilledCondition(description=f"Condition #1: {FINANCING.upper()}", note="Lender approval received"),
            FulfilledCondition(description="The Buyer has sold the Buyer's property."),
        ],
    )

    updated = machine.fulfill_conditions(offer.id, notice)  # type: ignore[union-attr]

    financing, inspection = updated.condition_records
    assert financing.status == ConditionStatus.FULFILLED
    assert financing.fulfilled_at == datetime(2025, 4, 2, 12, tzinfo=ZoneInfo("America/Toronto"))
    assert financing.note == "Lender approval received"
    assert inspection.status == ConditionStatus.PENDING
    assert updated.status == OfferStatus.PENDING_REVIEW
    assert repository.get(updated.id).pending_conditions == [inspection]  # type: ignore[union-attr]
    assert notifier.sent == []

    clock.advance(days=2)
    final = machine.fulfill_conditions(
        updated.id,
        FulfillmentNotice(fulfilled_conditions=[FulfilledCondition(description=INSPECTION)]),
    )

    assert final.all_conditions_fulfilled is True
    assert final.condition_records[1].fulfilled_at == clock.now
    assert notifier.sent == [
        (final.id, NotificationKind.CONDITIONS_FULFILLED, "All conditions of the offer are fulfilled"),
    ]


def test_fulfill_conditions_rejects_closed_offer(machine, make_message, make_analysis, default_contract) -> None:
    offer = machine.create_from_message(_conditional_message(make_message, make_analysis, default_contract))
    machine.decline(offer.id)  # type: ignore[union-attr]
    notice = FulfillmentNotice(fulfilled_conditions=[FulfilledCondition(description=FINANCING)])

    with pytest.raises(ValidationFailureError, match="DECLINED"):
        machine.fulfill_conditions(offer.id, notice)  # type: ignore[union-attr]


def test_notice_message_fulfills_accepted_offer_once(
    machine,
    make_message,
    make_analysis,
    default_contract,
    repository,
    notifier,
) -> None:
    offer = machine.create_from_message(_conditional_message(make_message, make_analysis, default_contract))
    machine.counter(offer.id, CounterTerms(price=700000))  # type: ignore[union-attr]
    machine.accept_counter(offer.id, make_analysis(visual=_accepted_visual()))  # type: ignore[union-attr]
    message = make_message("msg-124", analyses=[_notice_analysis(FINANCING, INSPECTION)])

    first = machine.create_from_message(message)
    second = machine.create_from_message(message)

    assert first.id == second.id == offer.id  # type: ignore[union-attr]
    assert second.status == OfferStatus.ACCEPTED  # type: ignore[union-attr]
    assert second.all_conditions_fulfilled is True  # type: ignore[union-attr]
    assert second.related_message_ids == ["msg-124"]  # type: ignore[union-attr]
    assert [kind for _, kind, _ in notifier.sent].count(NotificationKind.CONDITIONS_FULFILLED) == 1
    assert len(repository.all_offers()) == 1


def test_notice_message_without_pending_conditions_is_ignored(machine, pending, make_message, repository) -> None:
    result = machine.create_from_message(make_message("msg-124", analyses=[_notice_analysis(FINANCING)]))

    assert result is None
    assert repository.get(pending.id) == pending


def test_amended_offer_keeps_fulfilled_conditions(
    machine,
    make_message,
    make_analysis,
    default_contract,
) -> None:
    offer = machine.create_from_message(_conditional_message(make_message, make_analysis, default_contract))
    machine.fulfill_conditions(
        offer.id,  # type: ignore[union-attr]
        FulfillmentNotice(fulfilled_conditions=[FulfilledCondition(description=FINANCING)]),
    )
    status_certificate = "This Offer is conditional upon the Buyer's lawyer reviewing the status certificate."
    contract = {**default_contract, "schedules": [FINANCING, status_certificate]}

    updated = machine.create_from_message(
        make_message("msg-2", sub_category=MessageSubCategory.AMENDMENT, analyses=[make_analysis(contract=contract)]),
    )

    financing, certificate = updated.condition_records  # type: ignore[union-attr]
    assert updated.id == offer.id  # type: ignore[union-attr]
    assert financing.description == FINANCING
    assert financing.status == ConditionStatus.FULFILLED
    assert certificate.description == status_certificate
    assert certificate.status == ConditionStatus.PENDING
