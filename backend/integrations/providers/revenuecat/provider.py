"""
RevenueCat Provider

Config field mapping (shared IntegrationConfig shape):
- pat: secret API key (server side, never written into the app)
- anon_key: public SDK key
- project_url: RevenueCat project id
- project_ref: RevenueCat app id
"""
import logging
import shutil
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from config import PROVIDER_HTTP_RETRIES, PROVIDER_HTTP_TIMEOUT
from integrations.contract import (
    MCPCapable,
    MCPRequest,
    MCPServerConfig,
    PromptCapable,
    PromptContribution,
    PromptRequest,
    Provider,
    ProviderStatus,
    ProvisionCapable,
    ProvisionRequest,
    ProvisionResult,
    SetupCapable,
    SetupRequest,
    call_with_retries,
)
from integrations.types import IntegrationConfig, ProviderDescriptor
from integrations.providers.revenuecat.client import RevenueCatAPIError, RevenueCatClient
from integrations.providers.revenuecat.prompt import build_contribution

logger = logging.getLogger(__name__)

PROVIDER_ID = "revenuecat"
DEFAULT_OFFERING = "default"

MCP_TOOLS = [
    "mcp__revenuecat__list_products",
    "mcp__revenuecat__create_product",
    "mcp__revenuecat__list_entitlements",
    "mcp__revenuecat__create_entitlement",
    "mcp__revenuecat__attach_products_to_entitlement",
    "mcp__revenuecat__list_offerings",
    "mcp__revenuecat__create_offering",
    "mcp__revenuecat__create_package",
    "mcp__revenuecat__attach_product_to_package",
    "mcp__revenuecat__get_public_api_keys",
    "mcp__revenuecat__list_apps",
]


class _DeadlineReached(Exception):
    pass


class RevenueCatProvider(Provider, SetupCapable, PromptCapable, MCPCapable, ProvisionCapable):
    """In-app purchases, subscriptions, and paywalls."""

    _descriptor = ProviderDescriptor(
        name="RevenueCat",
        description="In-app purchases, subscriptions, and paywalls",
        package="purchases-ios",
        mcp_command="appforge",
        mcp_args=["mcp", "revenuecat"],
    )

    def __init__(self, client_factory: Optional[Callable[..., RevenueCatClient]] = None,
                 retries: int = PROVIDER_HTTP_RETRIES):
        self._client_factory = client_factory or RevenueCatClient
        self.retries = retries

    @property
    def id(self) -> str:
        return PROVIDER_ID

    @property
    def descriptor(self) -> ProviderDescriptor:
        return self._descriptor

    # -- setup ---------------------------------------------------------

    def setup(self, request: SetupRequest) -> IntegrationConfig:
        """
        Raises:
            ValueError: If the project id or secret key is missing
            RevenueCatAPIError: If the key cannot read the project
        """
        if not request.project_url or not request.pat:
            raise ValueError("RevenueCat project id and secret key are required")
        self._client_factory(request.pat).validate(request.project_url)
        config = IntegrationConfig(
            provider=PROVIDER_ID,
            project_url=request.project_url,
            project_ref=request.project_ref,
            anon_key=request.anon_key,
            pat=request.pat,
            validated_at=datetime.now(timezone.utc).isoformat(),
        )
        if not request.read_only:
            request.store.set_provider(config, request.app_name)
        logger.info(f"[RevenueCat] Configured project {request.project_url} for {request.app_name}")
        return config

    def remove(self, store: Any, app_name: str) -> None:
        store.remove_provider(PROVIDER_ID, app_name)

    def status(self, store: Any, app_name: str) -> ProviderStatus:
        config = store.get_provider(PROVIDER_ID, app_name)
        if config is None:
            return ProviderStatus()
        return ProviderStatus(
            configured=True,
            project_url=config.project_url,
            has_anon_key=bool(config.anon_key),
            has_pat=bool(config.pat),
            validated_at=config.validated_at,
        )

    def cli_available(self) -> bool:
        # RevenueCat has no CLI; report whether our tool server binary is on PATH
        return shutil.which(self._descriptor.mcp_command) is not None

    # -- prompt --------------------------------------------------------

    def prompt_contribution(self, request: PromptRequest) -> PromptContribution:
        config = request.store.get_provider(PROVIDER_ID, request.app_name) if request.store is not None else None
        return build_contribution(request, config)

    # -- tool server ---------------------------------------------------

    def mcp_server(self, request: MCPRequest) -> MCPServerConfig:
        env = {}
        if request.pat and request.project_url:
            env = {"REVENUECAT_API_KEY": request.pat, "REVENUECAT_PROJECT_ID": request.project_url}
        return MCPServerConfig(
            name=PROVIDER_ID,
            command=self._descriptor.mcp_command,
            args=list(self._descriptor.mcp_args),
            env=env,
        )

    def mcp_tools(self) -> List[str]:
        return list(MCP_TOOLS)

    def agent_tools(self) -> List[str]:
        return list(MCP_TOOLS)

    # -- provisioning --------------------------------------------------

    def provision(self, request: ProvisionRequest) -> ProvisionResult:
        """
        Create products, the entitlement, the default offering and its packages.

        Existing resources (409) are looked up and reused, so repeated runs
        converge on the same state.
        """
        result = ProvisionResult()
        plan = request.monetization
        if not request.pat or plan is None or not plan.products:
            return result

        project_id = request.project_url
        app_id = request.project_ref

        def check_deadline(stage: str) -> None:
            if request.expired():
                result.warnings.append(f"RevenueCat: deadline reached before {stage}; skipped")
                raise _DeadlineReached(stage)
            client.timeout = request.request_timeout(PROVIDER_HTTP_TIMEOUT)

        client = self._client_factory(request.pat, timeout=request.request_timeout(PROVIDER_HTTP_TIMEOUT))
        try:
            product_ids = self._ensure_products(client, request, project_id, app_id, result, check_deadline)
            if not product_ids:
                result.warnings.append("RevenueCat: no products were created; skipping entitlement and offering setup")
                return result

            check_deadline("entitlement")
            entitlement = self._ensure(
                lambda: client.create_entitlement(project_id, plan.entitlement or "premium", plan.entitlement or "premium"),
                lambda: client.find_entitlement(project_id, plan.entitlement or "premium"),
                "entitlement", request, result,
            )
            if entitlement is not None:
                self._attach(lambda: client.attach_products_to_entitlement(
                    project_id, entitlement["id"], list(product_ids.values())), "entitlement products", request, result)

            check_deadline("offering")
            offering = self._ensure(
                lambda: client.create_offering(project_id, DEFAULT_OFFERING, "Default Offering"),
                lambda: client.find_offering(project_id, DEFAULT_OFFERING),
                "offering", request, result,
            )
            if offering is None:
                result.backend_provisioned = True
                return result

            for position, product in enumerate(plan.products, start=1):
                if product.identifier not in product_ids:
                    continue
                check_deadline(f"package {product.identifier}")
                display_name = f"{request.app_name} {product.display_name}".strip()
                pkg = self._ensure(
                    lambda: client.create_package(project_id, offering["id"], product.identifier, display_name, position),
                    lambda: client.find_package(project_id, offering["id"], product.identifier, display_name),
                    f"package {product.identifier}", request, result,
                )
                if pkg is not None:
                    self._attach(lambda: client.attach_product_to_package(
                        project_id, pkg["id"], product_ids[product.identifier]), f"package {product.identifier}", request, result)
            result.backend_provisioned = True
        except _DeadlineReached:
            logger.warning(f"[RevenueCat] Provisioning for {request.app_name} stopped at deadline")
        return result

    def _ensure_products(self, client, request, project_id, app_id, result, check_deadline) -> Dict[str, str]:
        product_ids: Dict[str, str] = {}
        for product in request.monetization.products:
            check_deadline(f"product {product.identifier}")
            display_name = f"{request.app_name} {product.display_name}".strip()
            rc_type = product.type if product.type in ("consumable", "non_consumable") else "subscription"
            body: Dict[str, Any] = {
                "store_identifier": product.identifier,
                "app_id": app_id,
                "type": rc_type,
                "display_name": display_name,
                "title": display_name,
            }
            if rc_type == "subscription" and product.duration:
                body["subscription"] = {"duration": product.duration}
            created = self._ensure(
                lambda: client.create_product(project_id, body),
                lambda: client.find_product(project_id, app_id, product.identifier, display_name),
                f"product {product.identifier}", request, result,
            )
            if created is not None:
                product_ids[product.identifier] = created["id"]
        return product_ids

    def _call(self, call: Callable[[], Any], request: ProvisionRequest, label: str) -> Any:
        """Run one API call, repeating it after transient failures. Conflicts are final."""
        return call_with_retries(
            call,
            request,
            self.retries,
            lambda e: isinstance(e, RevenueCatAPIError) and not e.conflict,
            label=f"RevenueCat {label}",
        )

    def _ensure(self, create: Callable[[], Dict[str, Any]], find: Callable[[], Optional[Dict[str, Any]]],
                label: str, request: ProvisionRequest, result: ProvisionResult) -> Optional[Dict[str, Any]]:
        """Create a resource, falling back to the existing one on conflict."""
        try:
            return self._call(create, request, label)
        except RevenueCatAPIError as e:
            if e.conflict:
                try:
                    existing = self._call(find, request, label)
                except RevenueCatAPIError as lookup_error:
                    result.warnings.append(f"RevenueCat: {label} exists but lookup failed: {lookup_error}")
                    return None
                if existing is not None:
                    return existing
                result.warnings.append(f"RevenueCat: {label} exists but could not be found")
                return None
            result.warnings.append(f"RevenueCat: failed to create {label}: {e}")
            return None

    def _attach(self, call: Callable[[], None], label: str, request: ProvisionRequest,
                result: ProvisionResult) -> None:
        try:
            self._call(call, request, label)
        except RevenueCatAPIError as e:
            # already attached
            if not e.conflict:
                result.warnings.append(f"RevenueCat: failed to attach {label}: {e}")


__all__ = ["RevenueCatProvider", "PROVIDER_ID", "MCP_TOOLS"]
