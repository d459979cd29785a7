"""Shared fixtures for the Stripe sync test suite."""

import json
from typing import Any, Dict, List, Optional

import httpx
import pytest

from services.customer_records import CustomerRecords
from services.event_router import EventDispatcher
from services.notification_service import NotificationService
from services.scheduler import BackgroundScheduler
from settings import EmailConfig, Organization
from storage.naming import NAME_OVERRIDES
from storage.record_store import InMemoryRecordStore

TEMPLATE_URL = "https://templates.example.com/welcome.html"
TEMPLATE_HTML = "<p>Hi {{Email}}, pay here: {{PaymentLink}} ({{OrganizationName}})</p>"


@pytest.fixture(autouse=True)
def clean_name_overrides(monkeypatch):
    """Every test starts from the default table/column names."""
    for env_var, _ in NAME_OVERRIDES.values():
        monkeypatch.delenv(env_var, raising=False)


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def records(store) -> CustomerRecords:
    return CustomerRecords(store)


class FakeEmailProvider:
    """httpx transport standing in for the template host and Resend."""

    def __init__(self, fail_send: bool = False, fail_template: bool = False):
        self.fail_send = fail_send
        self.fail_template = fail_template
        self.sent: List[Dict[str, Any]] = []
        self.auth_headers: List[Optional[str]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET" and str(request.url) == TEMPLATE_URL:
            if self.fail_template:
                return httpx.Response(404, text="not found")
            return httpx.Response(200, text=TEMPLATE_HTML)

        if request.method == "POST" and request.url.host == "api.resend.com":
            if self.fail_send:
                return httpx.Response(422, json={"message": "invalid from address"})
            self.sent.append(json.loads(request.content))
            self.auth_headers.append(request.headers.get("authorization"))
            return httpx.Response(200, json={"id": f"msg_{len(self.sent)}"})

        return httpx.Response(500, text="unexpected request")

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def email_provider() -> FakeEmailProvider:
    return FakeEmailProvider()


@pytest.fixture
def organization() -> Organization:
    return Organization(
        name="Xylex",
        email_config=EmailConfig(
            sender="billing@xylex.cloud",
            subject="Welcome to Xylex Enterprise!",
            template_url=TEMPLATE_URL,
        ),
    )


def build_dispatcher(
    records: CustomerRecords,
    provider: FakeEmailProvider,
    organization: Organization,
    api_key: Optional[str] = "re_test_key",
    link_attach_delay: float = 0.0,
    link_wait_timeout: Optional[float] = 5.0,
) -> EventDispatcher:
    """Dispatcher with zero delays; its httpx client must be created inside the test loop."""
    notifier = NotificationService(
        resend_api_key=api_key,
        from_email=organization.email_config.sender,
        client=provider.client(),
    )
    return EventDispatcher(
        records=records,
        notifier=notifier,
        scheduler=BackgroundScheduler(),
        organization=organization,
        link_attach_delay=link_attach_delay,
        link_wait_timeout=link_wait_timeout,
    )
