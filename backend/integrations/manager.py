"""
Integration Manager - the one facade the pipeline talks to

Responsibilities:
- Resolve planned provider ids into active (provider, config) pairs
- Collect tool servers, tool allowlists and prompt contributions
- Run provisioning across providers and merge the results

Every capability is queried with as_capability(); a provider that lacks a
capability is skipped, never treated as an error.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from config import PROMPT_CONTRIBUTION_TIMEOUT
from integrations.contract import (
    MCPCapable,
    MCPRequest,
    MCPServerConfig,
    PromptCapable,
    PromptContribution,
    PromptRequest,
    Provider,
    ProvisionCapable,
    ProvisionRequest,
    ProvisionResult,
    SetupCapable,
    SetupUI,
    as_capability,
)
from integrations.registry import ProviderRegistry
from integrations.store import IntegrationStore
from integrations.types import IntegrationConfig, ProviderID

logger = logging.getLogger(__name__)


@dataclass
class ActiveProvider:
    """A provider paired with the config resolved for the current app"""
    provider: Provider
    config: IntegrationConfig

    @property
    def id(self) -> ProviderID:
        return self.provider.id


class IntegrationManager:
    """
    Facade over the registry and the integration store.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        store: IntegrationStore,
        contribution_timeout: float = PROMPT_CONTRIBUTION_TIMEOUT,
        warn: Optional[Callable[[str], None]] = None,
    ):
        self.registry = registry
        self.store = store
        self.contribution_timeout = contribution_timeout
        self._warn_callback = warn

    def _warn(self, message: str) -> None:
        logger.warning(f"[IntegrationManager] {message}")
        if self._warn_callback:
            self._warn_callback(message)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, app_name: str, planned: List[ProviderID], ui: SetupUI) -> List[ActiveProvider]:
        """
        Turn planned provider ids into active providers.

        Unknown ids produce a warning. Providers without a stored config are
        offered to the user through ui; if setup is declined or fails the
        provider is left out.

        Args:
            app_name: App the configs belong to
            planned: Provider ids requested by the planner
            ui: Callbacks for interactive setup

        Returns:
            Active providers in planned order, without duplicates
        """
        active: List[ActiveProvider] = []
        seen = set()
        for provider_id in planned:
            if provider_id in seen:
                continue
            seen.add(provider_id)

            provider = self.registry.get(provider_id)
            if provider is None:
                self._warn(f"Unknown integration '{provider_id}' requested by plan; skipping")
                ui.warning(f"Unknown integration: {provider_id}")
                continue

            config = self.store.get_provider(provider_id, app_name)
            if config is None:
                config = self._run_setup(provider, app_name, ui)
            if config is None:
                ui.info(f"{provider.descriptor.name} not configured; the app will use placeholders")
                continue
            active.append(ActiveProvider(provider=provider, config=config))
        return active

    def _run_setup(self, provider: Provider, app_name: str, ui: SetupUI) -> Optional[IntegrationConfig]:
        setup = as_capability(provider, SetupCapable)
        if setup is None:
            return None
        if not ui.prompt_setup(provider.descriptor):
            return None
        request = ui.collect(provider.descriptor, app_name, self.store)
        if request is None:
            return None
        try:
            return setup.setup(request)
        except Exception as e:
            self._warn(f"{provider.descriptor.name} setup failed: {e}")
            ui.warning(f"{provider.descriptor.name} setup failed: {e}")
            return None

    def resolve_existing(self, app_name: str) -> List[ActiveProvider]:
        """Active providers for every stored config of this app"""
        active = []
        stored = self.store.load()
        for provider in self.registry.providers():
            config = stored.get(provider.id, {}).get(app_name)
            if config is not None:
                active.append(ActiveProvider(provider=provider, config=config))
        return active

    # ------------------------------------------------------------------
    # Tool servers
    # ------------------------------------------------------------------

    def mcp_configs(self, active: List[ActiveProvider]) -> List[MCPServerConfig]:
        configs = []
        for ap in active:
            mcp = as_capability(ap.provider, MCPCapable)
            if mcp is None:
                continue
            configs.append(mcp.mcp_server(MCPRequest(
                pat=ap.config.pat,
                project_ref=ap.config.project_ref,
                project_url=ap.config.project_url,
            )))
        return configs

    def mcp_tool_allowlist(self, active: List[ActiveProvider]) -> List[str]:
        tools: List[str] = []
        for ap in active:
            mcp = as_capability(ap.provider, MCPCapable)
            if mcp is not None:
                tools.extend(mcp.mcp_tools())
        return tools

    def agent_tools(self, active: List[ActiveProvider]) -> List[str]:
        tools: List[str] = []
        for ap in active:
            mcp = as_capability(ap.provider, MCPCapable)
            if mcp is None:
                continue
            for tool in mcp.agent_tools():
                if tool not in tools:
                    tools.append(tool)
        return tools

    # ------------------------------------------------------------------
    # Prompt contributions
    # ------------------------------------------------------------------

    def prompt_contributions(self, request: PromptRequest, active: List[ActiveProvider]) -> List[PromptContribution]:
        """
        Collect prompt blocks from every prompt-capable active provider.

        Calls run concurrently; a provider that errors or exceeds the
        contribution timeout is skipped with a warning. Results keep the
        order of active.
        """
        capable = [(ap, as_capability(ap.provider, PromptCapable)) for ap in active]
        capable = [(ap, cap) for ap, cap in capable if cap is not None]
        if not capable:
            return []

        contributions: List[PromptContribution] = []
        pool = ThreadPoolExecutor(max_workers=len(capable), thread_name_prefix="prompt-contrib")
        try:
            futures = [(ap, pool.submit(cap.prompt_contribution, request)) for ap, cap in capable]
            deadline = time.monotonic() + self.contribution_timeout
            for ap, future in futures:
                remaining = max(0.0, deadline - time.monotonic())
                try:
                    contributions.append(future.result(timeout=remaining))
                except FutureTimeout:
                    self._warn(f"{ap.provider.descriptor.name} prompt contribution timed out")
                except Exception as e:
                    self._warn(f"{ap.provider.descriptor.name} prompt contribution failed: {e}")
        finally:
            pool.shutdown(wait=False, cancel_futures=True)
        return contributions

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    def provision(self, request: ProvisionRequest, active: List[ActiveProvider]) -> ProvisionResult:
        """
        Provision backend resources for every provision-capable provider.

        Per-provider credentials come from each active config. Failures
        become warnings; the merged result is always returned.
        """
        combined = ProvisionResult()
        for ap in active:
            cap = as_capability(ap.provider, ProvisionCapable)
            if cap is None:
                continue
            if request.expired():
                combined.warnings.append(f"{ap.provider.descriptor.name}: provisioning skipped, deadline reached")
                continue
            per_provider = request.model_copy(update={
                "pat": ap.config.pat,
                "project_ref": ap.config.project_ref,
                "project_url": ap.config.project_url,
            })
            try:
                result = cap.provision(per_provider)
            except Exception as e:
                self._warn(f"{ap.provider.descriptor.name} provisioning failed: {e}")
                combined.warnings.append(f"{ap.provider.descriptor.name}: provisioning failed: {e}")
                continue
            logger.info(
                f"[IntegrationManager] {ap.id} provisioned={result.backend_provisioned} "
                f"tables={len(result.tables_created)} warnings={len(result.warnings)}"
            )
            combined.merge(result)
        return combined


__all__ = ["ActiveProvider", "IntegrationManager"]
