# Integrations - LLM Helpers (Product Enrichment, Cancellation Letters)
#
# Two structured-JSON completions against an OpenAI-compatible
# /chat/completions endpoint:
#   - enrich_product: warranty, support and maintenance info for an
#     inventory item identified by barcode or name
#   - generate_cancellation: a ready-to-send subscription cancellation
#     letter with a follow-up date two weeks out
#
# Design:
#   - Pure HTTP via httpx (no SDK dependency)
#   - response_format=json_object; anything unparseable is an UpstreamError
#   - Results are not cached

import json
import logging
from dataclasses import dataclass, field, asdict
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

import httpx

from ..exceptions import NotConfiguredError, UpstreamError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o"
REQUEST_TIMEOUT_SEC = 60.0

FOLLOW_UP_DAYS = 14
SEND_METHODS = ("email", "certified_mail", "online_portal")
CONFIDENCE_LEVELS = ("high", "medium", "low")

ENRICHMENT_SYSTEM_PROMPT = (
    "You research consumer products. For the product described, report the "
    "manufacturer warranty, where to find the manual and support, and routine "
    "maintenance. Answer with a single JSON object in the requested shape. "
    "Use null for anything you do not know; do not guess warranty lengths."
)

CANCELLATION_SYSTEM_PROMPT = (
    "You help people cancel subscriptions. Write a courteous but firm "
    "cancellation letter that is ready to send, dated, with a signature line, "
    "and cites applicable consumer protection rules. Answer with a single JSON "
    "object in the requested shape."
)


# ── Data Classes ─────────────────────────────────────────────────────


@dataclass
class MaintenanceTask:
    task: str
    frequency_months: Optional[int] = None


@dataclass
class ProductInfo:
    full_name: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    category: Optional[str] = None


@dataclass
class ProductEnrichment:
    """Warranty/support/maintenance details for an inventory item."""
    warranty_months: Optional[int] = None
    manual_url: Optional[str] = None
    support_phone: Optional[str] = None
    support_url: Optional[str] = None
    suggested_maintenance: List[MaintenanceTask] = field(default_factory=list)
    product_info: ProductInfo = field(default_factory=ProductInfo)
    confidence: str = "low"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductEnrichment":
        tasks = []
        raw_tasks = data.get("suggested_maintenance")
        if not isinstance(raw_tasks, list):
            raw_tasks = []
        for raw in raw_tasks:
            if isinstance(raw, dict) and raw.get("task"):
                tasks.append(MaintenanceTask(
                    task=str(raw["task"]),
                    frequency_months=raw.get("frequency_months"),
                ))
        info = data.get("product_info")
        if not isinstance(info, dict):
            info = {}
        confidence = data.get("confidence")
        return cls(
            warranty_months=data.get("warranty_months"),
            manual_url=data.get("manual_url"),
            support_phone=data.get("support_phone"),
            support_url=data.get("support_url"),
            suggested_maintenance=tasks,
            product_info=ProductInfo(
                full_name=info.get("full_name"),
                brand=info.get("brand"),
                model=info.get("model"),
                category=info.get("category"),
            ),
            confidence=confidence if confidence in CONFIDENCE_LEVELS else "low",
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CancellationRequest:
    subscription_name: str
    user_name: str
    user_email: Optional[str] = None
    account_number: Optional[str] = None
    subscription_cost: Optional[float] = None
    billing_frequency: Optional[str] = None
    reason: Optional[str] = None
    state: Optional[str] = None  # US state, for state-specific law


@dataclass
class CancellationLetter:
    letter: str
    subject_line: str
    key_points: List[str] = field(default_factory=list)
    legal_references: List[str] = field(default_factory=list)
    recommended_send_method: str = "email"
    follow_up_date: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ── Prompt builders ──────────────────────────────────────────────────


def build_enrichment_prompt(
    barcode: Optional[str] = None,
    name: Optional[str] = None,
    category: Optional[str] = None,
    brand: Optional[str] = None,
) -> str:
    lines = []
    if barcode:
        lines.append(f"Barcode/UPC: {barcode}")
    if name:
        lines.append(f"Product name: {name}")
    if brand:
        lines.append(f"Brand: {brand}")
    if category:
        lines.append(f"Category: {category}")

    return (
        "Product:\n"
        + "\n".join(lines)
        + "\n\nReturn JSON with exactly these keys:\n"
        '  "warranty_months": integer or null,\n'
        '  "manual_url": string or null,\n'
        '  "support_phone": string or null,\n'
        '  "support_url": string or null,\n'
        '  "suggested_maintenance": list of {"task": string, "frequency_months": integer},\n'
        '  "product_info": {"full_name", "brand", "model", "category"} (strings or null),\n'
        '  "confidence": "high", "medium" or "low"\n'
        "Suggest maintenance typical for this kind of product."
    )


def build_cancellation_prompt(request: CancellationRequest, today: date) -> str:
    follow_up = (today + timedelta(days=FOLLOW_UP_DAYS)).isoformat()
    lines = [
        f"Service: {request.subscription_name}",
        f"Customer: {request.user_name}",
        f"Date: {today.isoformat()}",
    ]
    if request.user_email:
        lines.append(f"Customer email: {request.user_email}")
    if request.account_number:
        lines.append(f"Account number: {request.account_number}")
    if request.subscription_cost and request.billing_frequency:
        lines.append(f"Price: ${request.subscription_cost} per {request.billing_frequency}")
    if request.reason:
        lines.append(f"Reason: {request.reason}")
    if request.state:
        lines.append(f"State: {request.state} (cite that state's consumer protection law)")

    return (
        "Draft a subscription cancellation letter.\n"
        + "\n".join(lines)
        + "\n\nThe letter asks for immediate cancellation and written confirmation, "
        "a prorated refund where one applies, and a reply within "
        f"{FOLLOW_UP_DAYS} days, and says later charges will be disputed.\n\n"
        "Return JSON with exactly these keys:\n"
        '  "letter": string,\n'
        '  "subject_line": string,\n'
        '  "key_points": list of strings,\n'
        '  "legal_references": list of strings,\n'
        '  "recommended_send_method": "email", "certified_mail" or "online_portal",\n'
        f'  "follow_up_date": "{follow_up}"'
    )


# ── Client ───────────────────────────────────────────────────────────


class LLMClient:
    """Structured JSON completions over an OpenAI-compatible API.

    Usage::

        llm = LLMClient(api_key="sk-...")
        enrichment = llm.enrich_product(name="Dyson V11")
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        http_client: Optional[httpx.Client] = None,
        today=None,
    ):
        self._api_key = api_key
        self._model = model or DEFAULT_MODEL
        self._base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._owns_http = http_client is None
        self._http = http_client or httpx.Client(timeout=REQUEST_TIMEOUT_SEC)
        self._today = today or date.today

    @classmethod
    def from_settings(cls, settings, http_client: Optional[httpx.Client] = None) -> "LLMClient":
        return cls(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            http_client=http_client,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def complete_json(self, system: str, prompt: str, temperature: float = 0.3) -> Dict[str, Any]:
        """Run one chat completion and return the parsed JSON object."""
        if not self._api_key:
            raise NotConfiguredError("OPENAI_API_KEY is not configured")

        try:
            resp = self._http.post(
                f"{self._base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "model": self._model,
                    "messages": [
                        {"role": "system", "content": system},
                        {"role": "user", "content": prompt},
                    ],
                    "response_format": {"type": "json_object"},
                    "temperature": temperature,
                },
            )
        except httpx.HTTPError as exc:
            logger.warning("LLM request failed: %s", exc)
            raise UpstreamError("LLM request failed") from exc

        if not 200 <= resp.status_code < 300:
            logger.warning("LLM API returned %d", resp.status_code)
            raise UpstreamError(f"LLM API error ({resp.status_code})", status_code=resp.status_code)

        try:
            content = resp.json()["choices"][0]["message"]["content"]
            parsed = json.loads(content)
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise UpstreamError("LLM returned an unreadable response") from exc
        if not isinstance(parsed, dict):
            raise UpstreamError("LLM returned an unreadable response")
        return parsed

    def enrich_product(
        self,
        barcode: Optional[str] = None,
        name: Optional[str] = None,
        category: Optional[str] = None,
        brand: Optional[str] = None,
    ) -> ProductEnrichment:
        """Look up warranty, support and maintenance info for a product."""
        if not (barcode or "").strip() and not (name or "").strip():
            raise ValidationError("Either barcode or name is required")
        prompt = build_enrichment_prompt(barcode, name, category, brand)
        data = self.complete_json(ENRICHMENT_SYSTEM_PROMPT, prompt, temperature=0.3)
        return ProductEnrichment.from_dict(data)

    def generate_cancellation(self, request: CancellationRequest) -> CancellationLetter:
        """Draft a cancellation letter; follow-up is always today + 14 days."""
        if not (request.subscription_name or "").strip() or not (request.user_name or "").strip():
            raise ValidationError("subscription_name and user_name are required")

        today = self._today()
        prompt = build_cancellation_prompt(request, today)
        data = self.complete_json(CANCELLATION_SYSTEM_PROMPT, prompt, temperature=0.4)

        letter = data.get("letter")
        if not letter:
            raise UpstreamError("LLM response did not include a letter")
        method = data.get("recommended_send_method")
        return CancellationLetter(
            letter=letter,
            subject_line=data.get("subject_line") or f"Cancellation of {request.subscription_name}",
            key_points=list(data.get("key_points") or []),
            legal_references=list(data.get("legal_references") or []),
            recommended_send_method=method if method in SEND_METHODS else "email",
            follow_up_date=(today + timedelta(days=FOLLOW_UP_DAYS)).isoformat(),
        )

    def close(self) -> None:
        if self._owns_http:
            self._http.close()
