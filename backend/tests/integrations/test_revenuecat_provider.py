"""
Tests for the RevenueCat provider

Provisioning must converge: resources that already exist (409) are
looked up and reused.
"""
import time
from typing import Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from integrations.contract import MCPRequest, PromptRequest, ProvisionRequest
from integrations.providers.revenuecat.client import RevenueCatAPIError, RevenueCatClient
from integrations.providers.revenuecat.prompt import PLACEHOLDER_API_KEY, product_const_name
from integrations.providers.revenuecat.provider import DEFAULT_OFFERING, RevenueCatProvider
from integrations.types import MonetizationPlan, ProductPlan


def _plan() -> MonetizationPlan:
    return MonetizationPlan(entitlement="pro", products=[
        ProductPlan(identifier="pro_monthly", type="subscription", display_name="Monthly", duration="P1M"),
        ProductPlan(identifier="pro_yearly", type="subscription", display_name="Yearly", duration="P1Y"),
    ])


class FakeRevenueCatClient:
    """In-memory RevenueCat project; existing resources answer creates with 409"""

    def __init__(self):
        self.products: Dict[str, dict] = {}
        self.entitlements: Dict[str, dict] = {}
        self.offerings: Dict[str, dict] = {}
        self.packages: Dict[str, dict] = {}
        self.attachments: List[tuple] = []
        self.create_calls = 0

    def _new_id(self, prefix: str) -> str:
        self.create_calls += 1
        return f"{prefix}{self.create_calls}"

    def create_product(self, project_id: str, product: dict) -> dict:
        if product["store_identifier"] in self.products:
            raise RevenueCatAPIError("exists", 409)
        created = dict(product, id=self._new_id("prod"))
        self.products[product["store_identifier"]] = created
        return created

    def find_product(self, project_id, app_id, store_identifier, display_name) -> Optional[dict]:
        return self.products.get(store_identifier)

    def create_entitlement(self, project_id, lookup_key, display_name) -> dict:
        if lookup_key in self.entitlements:
            raise RevenueCatAPIError("exists", 409)
        self.entitlements[lookup_key] = {"id": self._new_id("ent"), "lookup_key": lookup_key}
        return self.entitlements[lookup_key]

    def find_entitlement(self, project_id, lookup_key) -> Optional[dict]:
        return self.entitlements.get(lookup_key)

    def attach_products_to_entitlement(self, project_id, entitlement_id, product_ids) -> None:
        key = ("entitlement", entitlement_id, tuple(product_ids))
        if key in self.attachments:
            raise RevenueCatAPIError("already attached", 409)
        self.attachments.append(key)

    def create_offering(self, project_id, lookup_key, display_name) -> dict:
        if lookup_key in self.offerings:
            raise RevenueCatAPIError("exists", 409)
        self.offerings[lookup_key] = {"id": self._new_id("ofr"), "lookup_key": lookup_key}
        return self.offerings[lookup_key]

    def find_offering(self, project_id, lookup_key) -> Optional[dict]:
        return self.offerings.get(lookup_key)

    def create_package(self, project_id, offering_id, lookup_key, display_name, position) -> dict:
        if lookup_key in self.packages:
            raise RevenueCatAPIError("exists", 409)
        self.packages[lookup_key] = {"id": self._new_id("pkg"), "lookup_key": lookup_key, "position": position}
        return self.packages[lookup_key]

    def find_package(self, project_id, offering_id, lookup_key, display_name) -> Optional[dict]:
        return self.packages.get(lookup_key)

    def attach_product_to_package(self, project_id, package_id, product_id) -> None:
        key = ("package", package_id, product_id)
        if key in self.attachments:
            raise RevenueCatAPIError("already attached", 409)
        self.attachments.append(key)


class TestRevenueCatProvider:
    """Test suite for RevenueCatProvider"""

    @pytest.fixture
    def fake_client(self):
        return FakeRevenueCatClient()

    @pytest.fixture
    def provider(self, fake_client):
        return RevenueCatProvider(client_factory=lambda key, timeout=None: fake_client)

    def _request(self, **overrides) -> ProvisionRequest:
        fields = dict(pat="sk_secret", project_url="proj1", project_ref="app1", app_name="Notes", monetization=_plan())
        fields.update(overrides)
        return ProvisionRequest(**fields)

    def test_product_const_name(self):
        assert product_const_name("pro_monthly") == "proMonthly"
        assert product_const_name("lifetime") == "lifetime"

    def test_provision_creates_everything(self, provider, fake_client):
        """Products, entitlement, default offering and packages are created and linked"""
        result = provider.provision(self._request())

        assert result.backend_provisioned
        assert result.warnings == []
        assert set(fake_client.products) == {"pro_monthly", "pro_yearly"}
        assert fake_client.products["pro_monthly"]["subscription"] == {"duration": "P1M"}
        assert fake_client.products["pro_monthly"]["display_name"] == "Notes Monthly"
        assert "pro" in fake_client.entitlements
        assert DEFAULT_OFFERING in fake_client.offerings
        assert [p["position"] for p in fake_client.packages.values()] == [1, 2]
        assert len(fake_client.attachments) == 3

    def test_provision_twice_reuses_existing(self, provider, fake_client):
        """A second run resolves 409s to the existing resources without warnings"""
        provider.provision(self._request())
        products_before = {k: v["id"] for k, v in fake_client.products.items()}

        result = provider.provision(self._request())

        assert result.backend_provisioned
        assert result.warnings == []
        assert {k: v["id"] for k, v in fake_client.products.items()} == products_before
        assert len(fake_client.packages) == 2

    def test_provision_without_plan(self, provider, fake_client):
        """No monetization plan means nothing to do"""
        result = provider.provision(self._request(monetization=None))

        assert not result.backend_provisioned
        assert fake_client.create_calls == 0

    def test_provision_deadline(self, provider, fake_client):
        """An expired deadline stops before the first product"""
        result = provider.provision(self._request(deadline=time.monotonic() - 1))

        assert fake_client.products == {}
        assert not result.backend_provisioned
        assert any("deadline" in w for w in result.warnings)

    def test_failed_product_is_warning(self, fake_client):
        """Non-conflict errors are warnings; other products still go through"""
        original = fake_client.create_product

        def flaky(project_id, product):
            if product["store_identifier"] == "pro_yearly":
                raise RevenueCatAPIError("invalid duration", 422)
            return original(project_id, product)

        fake_client.create_product = flaky
        provider = RevenueCatProvider(client_factory=lambda key, timeout=None: fake_client)
        result = provider.provision(self._request())

        assert set(fake_client.products) == {"pro_monthly"}
        assert any("pro_yearly" in w for w in result.warnings)
        assert result.backend_provisioned

    def test_transient_error_is_retried(self, fake_client):
        """A server error is retried and the product is created without warnings"""
        original = fake_client.create_product
        failures = {"pro_monthly": 1}

        def unstable(project_id, product):
            if failures.get(product["store_identifier"], 0) > 0:
                failures[product["store_identifier"]] -= 1
                raise RevenueCatAPIError("service unavailable", 503)
            return original(project_id, product)

        fake_client.create_product = unstable
        provider = RevenueCatProvider(client_factory=lambda key, timeout=None: fake_client, retries=2)
        result = provider.provision(self._request())

        assert result.warnings == []
        assert set(fake_client.products) == {"pro_monthly", "pro_yearly"}
        assert failures["pro_monthly"] == 0

    def test_conflict_is_not_retried(self, fake_client):
        """A 409 goes straight to the lookup instead of repeating the create"""
        provider = RevenueCatProvider(client_factory=lambda key, timeout=None: fake_client, retries=2)
        provider.provision(self._request())
        calls = []
        original = fake_client.create_entitlement

        def counting(project_id, lookup_key, display_name):
            calls.append(lookup_key)
            return original(project_id, lookup_key, display_name)

        fake_client.create_entitlement = counting
        result = provider.provision(self._request())

        assert calls == ["pro"]
        assert result.warnings == []

    def test_failed_attach_after_retries(self, fake_client):
        """An attach that keeps failing is reported once after the last attempt"""
        attempts = []

        def broken(project_id, entitlement_id, product_ids):
            attempts.append(entitlement_id)
            raise RevenueCatAPIError("bad gateway", 502)

        fake_client.attach_products_to_entitlement = broken
        provider = RevenueCatProvider(client_factory=lambda key, timeout=None: fake_client, retries=1)
        result = provider.provision(self._request())

        assert len(attempts) == 2
        assert [w for w in result.warnings if "entitlement products" in w] == [
            "RevenueCat: failed to attach entitlement products: bad gateway"
        ]

    def test_prompt_uses_public_key(self, provider):
        """The SDK key comes from the stored config, placeholders otherwise"""
        store = MagicMock()
        store.get_provider.return_value = None
        placeholder = provider.prompt_contribution(PromptRequest(app_name="Notes", store=store, monetization=_plan()))

        assert PLACEHOLDER_API_KEY in placeholder.system_block
        assert 'static let proMonthly = "pro_monthly"' in placeholder.system_block
        assert placeholder.user_block == ""

    def test_mcp_server_env(self, provider):
        config = provider.mcp_server(MCPRequest(pat="sk_secret", project_url="proj1"))

        assert config.env == {"REVENUECAT_API_KEY": "sk_secret", "REVENUECAT_PROJECT_ID": "proj1"}
        assert "sk_secret" not in repr(config)


class TestRevenueCatClient:
    """Test suite for the REST client"""

    def test_conflict_status(self):
        """409 responses raise errors flagged as conflicts"""
        session = MagicMock()
        session.request.return_value = MagicMock(status_code=409, text="exists")
        client = RevenueCatClient("sk_secret", session=session)

        with pytest.raises(RevenueCatAPIError) as exc:
            client.create_entitlement("proj1", "pro", "pro")
        assert exc.value.conflict

    def test_find_product_falls_back_to_display_name(self):
        session = MagicMock()
        response = MagicMock(status_code=200, content=b"{}")
        response.json.return_value = {"items": [{"id": "p1", "store_identifier": "other", "display_name": "Notes Monthly"}]}
        session.request.return_value = response
        client = RevenueCatClient("sk_secret", session=session)

        assert client.find_product("proj1", "app1", "pro_monthly", "Notes Monthly")["id"] == "p1"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
