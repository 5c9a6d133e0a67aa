import pytest

from helpers import NOW, FakeService
from intune_cleanup.session import Session


@pytest.fixture
def service() -> FakeService:
    return FakeService()


@pytest.fixture
def live_session(service) -> Session:
    return Session(tenant_id="contoso.onmicrosoft.com", service=service, dry_run=False, clock=lambda: NOW)


@pytest.fixture
def dry_session(service) -> Session:
    return Session(tenant_id="contoso.onmicrosoft.com", service=service, dry_run=True, clock=lambda: NOW)
