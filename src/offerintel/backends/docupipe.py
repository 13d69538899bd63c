"""Document-standardization service client and the vision tier built on it."""

from __future__ import annotations

import base64
import time
from typing import TYPE_CHECKING, Any

from offerintel import logger
from offerintel.exceptions import ConfigurationError, ExternalServiceError
from offerintel.schema_cache import SchemaIdCache
from offerintel.scoring import count_leaves
from offerintel.typing.enums import ExtractionStrategy
from offerintel.typing.models import ApsContract, ExtractionResult

if TYPE_CHECKING:
    from collections.abc import Callable

    from offerintel.settings import Settings
    from offerintel.typing.models import Document

_SERVICE = "docupipe"
_HST_INCLUSION = {"included in": "included", "in addition to": "excluded"}


class DocuPipeClient:
    """Upload, poll and fetch standardized results from the DocuPipe API."""

    def __init__(
        self,
        settings: Settings,
        *,
        client: Any = None,
        schema_cache: SchemaIdCache | None = None,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the client.

        Args:
            settings (Settings): Runtime settings.
            client (Any): Optional `httpx.Client`. Defaults to the shared settings client.
            schema_cache (SchemaIdCache | None): Cache of resolved schema ids.
            sleep (Callable[[float], None]): Sleep function used between polls.
            monotonic (Callable[[], float]): Clock used for the polling budget.
        """
        self._settings = settings
        self._client = client
        self._schema_cache = schema_cache if schema_cache is not None else SchemaIdCache()
        self._sleep = sleep
        self._monotonic = monotonic

    @property
    def schema_cache(self) -> SchemaIdCache:
        """Return the schema id cache."""
        return self._schema_cache

    def _http(self) -> Any:
        if not self._settings.docupipe_api_key:
            raise ConfigurationError(message="DOCUPIPE_API_KEY is required for the standardization service")
        client = self._client or self._settings.http_client()
        if client is None:
            raise ConfigurationError(message="httpx is required for the standardization service")
        return client

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Send one API request and return its JSON body.

        Raises:
            ExternalServiceError: If the request fails or the body is not JSON.
        """
        client = self._http()
        url = f"{self._settings.docupipe_base_url.rstrip('/')}{path}"
        headers = {"X-API-Key": self._settings.docupipe_api_key or "", "Accept": "application/json"}
        try:
            response = client.request(method, url, headers=headers, **kwargs)
            response.raise_for_status()
            body = response.json()
        except Exception as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            detail = f"status {status_code}" if status_code else str(exc)
            raise ExternalServiceError(message=f"{method} {path} failed: {detail}", service=_SERVICE) from exc
        if not isinstance(body, dict):
            raise ExternalServiceError(message=f"{method} {path} returned a non-object body", service=_SERVICE)
        return body

    def upload(self, document: Document) -> str:
        """Upload a document and return its job id."""
        encoded = base64.b64encode(document.content).decode("ascii")
        body = self._request(
            "POST",
            "/api/documents",
            json={"document": {"file": {"contents": encoded, "filename": document.filename}}},
        )
        job_id = body.get("jobId")
        if not job_id:
            raise ExternalServiceError(message="Upload response has no jobId", service=_SERVICE)
        logger.info("Document uploaded for standardization", extra={"job_id": job_id, "filename": document.filename})
        return str(job_id)

    def wait_for_completion(self, job_id: str) -> None:
        """Poll the job until it completes.

        Delays double from the initial delay up to the maximum delay. Polling stops once the
        total budget would be exceeded.

        Raises:
            ExternalServiceError: If the job fails or does not finish within the budget.
        """
        delay = self._settings.docupipe_poll_initial_delay
        started = self._monotonic()
        while True:
            body = self._request("GET", f"/api/documents/{job_id}")
            status = str(body.get("status", "")).lower()
            if status == "completed":
                return
            if status == "failed":
                reason = body.get("error") or "unknown error"
                raise ExternalServiceError(message=f"Job {job_id} failed: {reason}", service=_SERVICE)

            elapsed = self._monotonic() - started
            if elapsed + delay > self._settings.docupipe_poll_budget:
                raise ExternalServiceError(
                    message=f"Job {job_id} did not complete within {self._settings.docupipe_poll_budget:g}s",
                    service=_SERVICE,
                )
            logger.debug("Job still processing", extra={"job_id": job_id, "retry_in": delay})
            self._sleep(delay)
            delay = min(delay * 2, self._settings.docupipe_poll_max_delay)

    def resolve_schema_id(self) -> str:
        """Return the schema id, by configured id first, else by cached name lookup.

        Raises:
            ConfigurationError: If neither an id nor a name is configured.
            ExternalServiceError: If no schema carries the configured name.
        """
        if self._settings.docupipe_schema_id:
            return self._settings.docupipe_schema_id

        name = self._settings.docupipe_schema_name
        if not name:
            raise ConfigurationError(message="DOCUPIPE_SCHEMA_ID or DOCUPIPE_SCHEMA_NAME is required")

        cached = self._schema_cache.get(name)
        if cached:
            return cached

        body = self._request("GET", "/api/schemas")
        for schema in body.get("schemas", []):
            if schema.get("schemaName") == name and schema.get("schemaId"):
                schema_id = str(schema["schemaId"])
                self._schema_cache.put(name, schema_id)
                logger.info("Schema id resolved", extra={"schema_name": name, "schema_id": schema_id})
                return schema_id
        raise ExternalServiceError(message=f"No schema named '{name}'", service=_SERVICE)

    def fetch_result(self, job_id: str, schema_id: str) -> dict[str, Any]:
        """Return the standardized payload of a completed job."""
        body = self._request("GET", f"/api/documents/{job_id}/results", params={"schemaId": schema_id})
        data = body.get("data")
        if not isinstance(data, dict):
            raise ExternalServiceError(message=f"Job {job_id} returned no data", service=_SERVICE)
        return data

    def standardize(self, document: Document) -> dict[str, Any]:
        """Run the full upload, poll and fetch cycle."""
        schema_id = self.resolve_schema_id()
        job_id = self.upload(document)
        self.wait_for_completion(job_id)
        return self.fetch_result(job_id, schema_id)


def _get(payload: Any, *path: str) -> Any:
    node = payload
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _first(items: Any) -> dict[str, Any]:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return {}


def map_standardized_payload(data: dict[str, Any]) -> ApsContract:
    """Map the service's OREA Form 100 payload onto the canonical contract."""
    inclusion = str(_get(data, "financialDetails", "hst", "inclusion") or "").lower()
    signatures = [
        {"party": party, "name": entry.get("name"), "date": entry.get("date")}
        for party in ("buyer", "seller")
        for entry in (_get(data, "signatures", party) or [])
        if isinstance(entry, dict)
    ]
    deadline = _get(data, "terms", "titleSearch", "deadline") or {}
    irrevocability_date = _get(data, "terms", "irrevocability", "date") or {}

    payload = {
        "agreement_date": _get(data, "agreementDate"),
        "buyer_full_name": _get(data, "parties", "buyer"),
        "seller_full_name": _get(data, "parties", "seller"),
        "property": {
            "property_address": _get(data, "property", "address"),
            "property_fronting": _get(data, "property", "location", "streetName"),
            "property_side_of_street": _get(data, "property", "location", "side"),
            "property_frontage": _get(data, "property", "dimensions", "frontage"),
            "property_depth": _get(data, "property", "dimensions", "depth"),
            "property_legal_description": _get(data, "property", "legalDescription"),
        },
        "price_and_deposit": {
            "purchase_price": {
                "numeric": _get(data, "financialDetails", "purchasePrice", "amount"),
                "written": _get(data, "financialDetails", "purchasePrice", "amountInWords"),
                "currency": _get(data, "financialDetails", "purchasePrice", "currency"),
            },
            "deposit": {
                "numeric": _get(data, "financialDetails", "deposit", "amount"),
                "timing": _get(data, "financialDetails", "deposit", "timing"),
                "currency": _get(data, "financialDetails", "deposit", "currency"),
            },
        },
        "irrevocability": {
            "by_whom": _get(data, "terms", "irrevocability", "party"),
            "time": _get(data, "terms", "irrevocability", "until"),
            "day": irrevocability_date.get("day"),
            "month": irrevocability_date.get("month"),
            "year": irrevocability_date.get("year"),
        },
        "completion": _get(data, "terms", "completion", "date"),
        "title_search": {key: deadline.get(key) for key in ("day", "month", "year")},
        "notices": {
            "seller_fax": _get(data, "notices", "seller", "fax"),
            "seller_email": _get(data, "notices", "seller", "email"),
            "buyer_fax": _get(data, "notices", "buyer", "fax"),
            "buyer_email": _get(data, "notices", "buyer", "email"),
        },
        "inclusions_exclusions": {
            "chattels_included": _get(data, "terms", "chattelsIncluded"),
            "fixtures_excluded": _get(data, "terms", "fixturesExcluded"),
            "rental_items": _get(data, "terms", "rentalItems"),
        },
        "hst": _HST_INCLUSION.get(inclusion),
        "acknowledgment": {
            party: {
                "name": _get(data, "parties", party),
                "date": _first(_get(data, "acknowledgement", party)).get("date"),
                "lawyer": {
                    "name": _get(data, "lawyerInfo", party, "name"),
                    "address": _get(data, "lawyerInfo", party, "address"),
                    "email": _get(data, "lawyerInfo", party, "email"),
                },
            }
            for party in ("buyer", "seller")
        },
        "schedules": _get(data, "schedules"),
        "signatures": signatures,
    }
    return ApsContract.model_validate(payload)


class StandardizationTier:
    """Vision tier variant delegating to the document-standardization service."""

    name = ExtractionStrategy.VISION.value

    def __init__(self, client: DocuPipeClient) -> None:
        """Initialize the tier.

        Args:
            client (DocuPipeClient): Service client.
        """
        self._client = client

    def extract(self, document: Document) -> ExtractionResult:
        """Standardize the document and map it onto the contract."""
        data = self._client.standardize(document)
        contract = map_standardized_payload(data)
        filled, total = count_leaves(contract)
        return ExtractionResult.from_counts(
            contract,
            strategy=ExtractionStrategy.VISION,
            filled=filled,
            total=total,
            form_version=_get(data, "documentInfo", "formNumber"),
        )

    def accepts(self, result: ExtractionResult) -> bool:  # noqa: ARG002
        """Last tier: always accepted."""
        return True
