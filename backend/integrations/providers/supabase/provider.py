"""
Supabase Provider

Responsibilities:
- Setup/remove/status of per-app Supabase credentials
- Prompt contribution (credentials + backend-first instructions)
- Tool server launch config and tool allowlist
- Provisioning: auth providers, tables, RLS, storage, realtime
"""
import logging
import shutil
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional
from urllib.parse import urlparse

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
from integrations.types import IntegrationConfig, ProviderDescriptor, model_table_name
from integrations.providers.supabase import sql
from integrations.providers.supabase.client import SupabaseAPIError, SupabaseClient, validate_connection
from integrations.providers.supabase.prompt import build_contribution

logger = logging.getLogger(__name__)

PROVIDER_ID = "supabase"

MCP_TOOLS = [
    "mcp__supabase__execute_sql",
    "mcp__supabase__list_tables",
    "mcp__supabase__apply_migration",
    "mcp__supabase__list_storage_buckets",
    "mcp__supabase__get_project_url",
    "mcp__supabase__get_anon_key",
    "mcp__supabase__get_logs",
    "mcp__supabase__configure_auth_providers",
    "mcp__supabase__get_auth_config",
]

DEFAULT_AUTH_METHODS = ["email", "anonymous"]

_AUTH_FLAGS = {
    "email": "external_email_enabled",
    "anonymous": "external_anonymous_users_enabled",
    "apple": "external_apple_enabled",
    "google": "external_google_enabled",
    "phone": "external_phone_enabled",
}


def project_ref_from_url(project_url: str) -> str:
    """https://abcd.supabase.co -> abcd"""
    host = urlparse(project_url).hostname or ""
    if host.endswith(".supabase.co"):
        return host.split(".", 1)[0]
    return ""


def auth_settings(auth_methods: List[str], bundle_id: str) -> dict:
    settings: dict = {"mailer_autoconfirm": True}
    for method in auth_methods:
        flag = _AUTH_FLAGS.get(method)
        if flag:
            settings[flag] = True
        if method == "apple" and bundle_id:
            settings["external_apple_client_id"] = bundle_id
    return settings


class SupabaseProvider(Provider, SetupCapable, PromptCapable, MCPCapable, ProvisionCapable):
    """Open-source backend: auth, PostgreSQL, storage."""

    _descriptor = ProviderDescriptor(
        name="Supabase",
        description="Open-source backend with auth, PostgreSQL, and storage",
        package="supabase-swift",
        mcp_command="appforge",
        mcp_args=["mcp", "supabase"],
        docs_mcp_package="@supabase/mcp-server-supabase",
    )

    def __init__(self, client_factory: Optional[Callable[[str, str], SupabaseClient]] = None,
                 retries: int = PROVIDER_HTTP_RETRIES):
        self._client_factory = client_factory or SupabaseClient
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
        Validate credentials and store them for the app.

        Raises:
            ValueError: If the project URL is missing
            SupabaseAPIError: If the project rejects the anon key
        """
        if not request.project_url:
            raise ValueError("Supabase project URL is required")
        project_ref = request.project_ref or project_ref_from_url(request.project_url)
        if request.anon_key:
            validate_connection(request.project_url, request.anon_key)

        config = IntegrationConfig(
            provider=PROVIDER_ID,
            project_url=request.project_url.rstrip("/"),
            project_ref=project_ref,
            anon_key=request.anon_key,
            pat=request.pat,
            validated_at=datetime.now(timezone.utc).isoformat() if request.anon_key else None,
        )
        if not request.read_only:
            request.store.set_provider(config, request.app_name)
        logger.info(f"[Supabase] Configured project {project_ref or config.project_url} for {request.app_name}")
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
        return shutil.which("supabase") is not None

    # -- prompt --------------------------------------------------------

    def prompt_contribution(self, request: PromptRequest) -> PromptContribution:
        config = request.store.get_provider(PROVIDER_ID, request.app_name) if request.store is not None else None
        return build_contribution(request, config)

    # -- tool server ---------------------------------------------------

    def mcp_server(self, request: MCPRequest) -> MCPServerConfig:
        env = {}
        if request.pat and request.project_ref:
            env = {"SUPABASE_ACCESS_TOKEN": request.pat, "SUPABASE_PROJECT_REF": request.project_ref}
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
        Create backend resources. Safe to call repeatedly.

        Each step runs only if the deadline has not passed. A failed request
        is repeated up to `retries` times; a step that still fails adds a
        warning and the independent steps after it still run.
        """
        result = ProvisionResult()
        if not request.pat or not request.project_ref:
            return result

        client = self._client_factory(request.pat, request.project_ref)
        ceiling = PROVIDER_HTTP_TIMEOUT

        def step(label: str, fn: Callable[[float], None]) -> bool:
            if request.expired():
                result.warnings.append(f"Supabase: deadline reached before {label}; skipped")
                return False
            try:
                call_with_retries(
                    lambda: fn(request.request_timeout(ceiling)),
                    request,
                    self.retries,
                    lambda e: isinstance(e, SupabaseAPIError),
                    label=f"Supabase {label}",
                )
                return True
            except SupabaseAPIError as e:
                result.warnings.append(f"Supabase: {label} failed: {e}")
                return False

        if request.needs_auth:
            methods = request.auth_methods or list(DEFAULT_AUTH_METHODS)
            if "apple" in methods:
                result.needs_apple_sign_in = True
            settings = auth_settings(methods, request.bundle_id)
            step("auth configuration", lambda t: client.update_auth_config(settings, timeout=t))

        if request.needs_db and request.models:
            created = step("table creation", lambda t: client.execute_sql(sql.create_tables_sql(request.models), timeout=t))
            if created:
                result.backend_provisioned = True
                result.tables_created.extend(model_table_name(m) for m in request.models)
                if step("RLS enable", lambda t: client.execute_sql(sql.enable_rls_sql(request.models), timeout=t)):
                    step("RLS policies", lambda t: client.execute_sql(sql.rls_policies_sql(request.models), timeout=t))

        if request.needs_storage:
            bucket = sql.bucket_id_for(request.app_name)
            if step("storage bucket", lambda t: client.execute_sql(sql.storage_bucket_sql(bucket), timeout=t)):
                step("storage policies", lambda t: client.execute_sql(sql.storage_policies_sql(bucket), timeout=t))

        if request.needs_realtime and request.models:
            step("realtime", lambda t: client.execute_sql(sql.realtime_sql(request.models), timeout=t))

        logger.info(
            f"[Supabase] Provisioned {request.app_name}: tables={result.tables_created} warnings={len(result.warnings)}"
        )
        return result


__all__ = ["SupabaseProvider", "PROVIDER_ID", "MCP_TOOLS", "project_ref_from_url", "auth_settings"]
