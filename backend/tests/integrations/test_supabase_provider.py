"""
Tests for the Supabase provider

SQL generation, prompt contribution, tool server config, and
provisioning against a fake Management API client.
"""
import shutil
import tempfile
import time
from pathlib import Path
from typing import List
from unittest.mock import MagicMock, patch

import pytest

from integrations import build_registry
from integrations.contract import MCPRequest, PromptRequest, ProvisionRequest, SetupRequest
from integrations.providers.supabase import sql
from integrations.providers.supabase.client import SupabaseAPIError, SupabaseClient
from integrations.providers.supabase.prompt import PLACEHOLDER_ANON_KEY, PLACEHOLDER_URL
from integrations.providers.supabase.provider import SupabaseProvider, auth_settings, project_ref_from_url
from integrations.store import IntegrationStore
from integrations.types import IntegrationConfig, ModelRef, PropertyRef


def _note_model() -> ModelRef:
    return ModelRef(name="Note", properties=[
        PropertyRef(name="id", type="UUID"),
        PropertyRef(name="title", type="String"),
        PropertyRef(name="userId", type="UUID"),
        PropertyRef(name="createdAt", type="Date?"),
    ])


class FakeSupabaseClient:
    """Records SQL and auth updates; fails statements containing a marker

    With `fail_times` set, a marked statement fails that many times and then
    succeeds, like a dropped connection.
    """

    def __init__(self, fail_on: str = "", fail_times: int = -1):
        self.queries: List[str] = []
        self.auth_updates: List[dict] = []
        self.fail_on = fail_on
        self.fail_times = fail_times
        self.attempts = 0

    def execute_sql(self, query: str, timeout: float = 30.0) -> None:
        self.attempts += 1
        if self.fail_on and self.fail_on in query and self.fail_times != 0:
            if self.fail_times > 0:
                self.fail_times -= 1
                raise SupabaseAPIError("connection reset")
            raise SupabaseAPIError("permission denied")
        self.queries.append(query)

    def update_auth_config(self, settings: dict, timeout: float = 30.0) -> None:
        self.auth_updates.append(settings)


class TestSupabaseSQL:
    """Test suite for SQL generation"""

    def test_type_mapping(self):
        """Swift types map to PostgreSQL column types"""
        assert sql.swift_type_to_pg("String") == "TEXT"
        assert sql.swift_type_to_pg("Int?") == "INTEGER"
        assert sql.swift_type_to_pg("Date") == "TIMESTAMPTZ"
        assert sql.swift_type_to_pg("Category") == "UUID"
        assert sql.swift_type_to_pg("whatever") == "TEXT"

    def test_create_table(self):
        """Tables are pluralized snake case with constraints"""
        statement = sql.create_table_sql(_note_model())

        assert statement.startswith("CREATE TABLE IF NOT EXISTS public.notes (")
        assert "id UUID PRIMARY KEY DEFAULT gen_random_uuid()" in statement
        assert "title TEXT NOT NULL" in statement
        assert "user_id UUID NOT NULL" in statement
        assert "created_at TIMESTAMPTZ," not in statement
        assert "created_at TIMESTAMPTZ\n" in statement

    def test_pluralization(self):
        """Table names follow the naive pluralization rules"""
        assert "public.categories" in sql.create_table_sql(ModelRef(name="Category"))
        assert "public.days " in sql.create_table_sql(ModelRef(name="Day"))
        assert "public.news " in sql.create_table_sql(ModelRef(name="News"))

    def test_rls_policies(self):
        """Owner column limits writes to the owner; policies are re-runnable"""
        statements = sql.rls_policies_sql([_note_model(), ModelRef(name="Tag")])

        assert 'DROP POLICY IF EXISTS "notes_insert" ON public.notes;' in statements
        assert "WITH CHECK (auth.uid() = user_id)" in statements
        assert "auth.role() = 'authenticated'" in statements

    def test_storage_and_realtime(self):
        """Bucket insert ignores conflicts; realtime tolerates duplicates"""
        bucket = sql.bucket_id_for("MyNotes")

        assert bucket == "mynotes-media"
        assert "ON CONFLICT (id) DO NOTHING" in sql.storage_bucket_sql(bucket)
        realtime = sql.realtime_sql([_note_model()])
        assert "duplicate_object" in realtime
        assert "REPLICA IDENTITY FULL" in realtime


class TestSupabaseProvider:
    """Test suite for SupabaseProvider"""

    @pytest.fixture
    def temp_dir(self):
        """Create temporary data directory"""
        temp = Path(tempfile.mkdtemp())
        yield temp
        if temp.exists():
            shutil.rmtree(temp)

    @pytest.fixture
    def store(self, temp_dir):
        return IntegrationStore(temp_dir, registry=build_registry())

    @pytest.fixture
    def fake_client(self):
        return FakeSupabaseClient()

    @pytest.fixture
    def provider(self, fake_client):
        return SupabaseProvider(client_factory=lambda pat, ref: fake_client)

    def test_project_ref_from_url(self):
        assert project_ref_from_url("https://abcd.supabase.co") == "abcd"
        assert project_ref_from_url("https://example.com") == ""

    def test_auth_settings(self):
        """Auth methods map to provider flags"""
        settings = auth_settings(["email", "apple"], "com.example.notes")

        assert settings["external_email_enabled"] is True
        assert settings["external_apple_enabled"] is True
        assert settings["external_apple_client_id"] == "com.example.notes"

    def test_setup_stores_config(self, provider, store):
        """Setup validates the anon key and stores the config"""
        with patch("integrations.providers.supabase.provider.validate_connection") as validate:
            config = provider.setup(SetupRequest(
                app_name="Notes", store=store,
                project_url="https://abcd.supabase.co/", anon_key="anon", pat="sbp",
            ))

        validate.assert_called_once_with("https://abcd.supabase.co/", "anon")
        assert config.project_ref == "abcd"
        assert config.project_url == "https://abcd.supabase.co"
        assert store.get_provider("supabase", "Notes") == config
        assert provider.status(store, "Notes").has_pat

    def test_setup_read_only(self, provider, store):
        """read_only validates without persisting"""
        provider.setup(SetupRequest(app_name="Notes", store=store, project_url="https://abcd.supabase.co", read_only=True))

        assert store.get_provider("supabase", "Notes") is None

    def test_setup_requires_url(self, provider, store):
        with pytest.raises(ValueError):
            provider.setup(SetupRequest(app_name="Notes", store=store))

    def test_prompt_placeholders_without_config(self, provider, store):
        """Without stored credentials the prompt uses placeholders and no backend steps"""
        contribution = provider.prompt_contribution(PromptRequest(app_name="Notes", store=store))

        assert PLACEHOLDER_URL in contribution.system_block
        assert PLACEHOLDER_ANON_KEY in contribution.system_block
        assert "<backend-setup>" not in contribution.system_block
        assert contribution.user_block == ""

    def test_prompt_backend_first_with_pat(self, provider, store):
        """A stored PAT adds the backend-setup section and backend-first instructions"""
        store.set_provider(IntegrationConfig(provider="supabase", project_url="https://abcd.supabase.co",
                                             anon_key="anon", pat="sbp"), "Notes")
        contribution = provider.prompt_contribution(PromptRequest(
            app_name="Notes", store=store, models=[_note_model()], auth_methods=["email"],
        ))

        assert "https://abcd.supabase.co" in contribution.system_block
        assert "<backend-setup>" in contribution.system_block
        assert "public.notes" in contribution.system_block
        assert "BACKEND FIRST" in contribution.user_block

    def test_prompt_after_provisioning(self, provider, store):
        """Once provisioned the user block says the backend is ready"""
        store.set_provider(IntegrationConfig(provider="supabase", project_url="https://abcd.supabase.co", pat="sbp"), "Notes")
        contribution = provider.prompt_contribution(PromptRequest(app_name="Notes", store=store, backend_provisioned=True))

        assert "already provisioned" in contribution.user_block
        assert contribution.backend_provisioned

    def test_mcp_server_env(self, provider):
        """Credentials reach the tool server only when both pat and ref are set"""
        full = provider.mcp_server(MCPRequest(pat="sbp", project_ref="abcd"))
        partial = provider.mcp_server(MCPRequest(pat="sbp"))

        assert full.env == {"SUPABASE_ACCESS_TOKEN": "sbp", "SUPABASE_PROJECT_REF": "abcd"}
        assert partial.env == {}
        assert "sbp" not in repr(full)
        assert all(t.startswith("mcp__supabase__") for t in provider.mcp_tools())

    def test_provision_full(self, provider, fake_client):
        """Auth, tables, RLS, storage and realtime are provisioned in order"""
        result = provider.provision(ProvisionRequest(
            pat="sbp", project_ref="abcd", app_name="Notes", bundle_id="com.example.notes",
            models=[_note_model()], auth_methods=["email", "apple"],
            needs_auth=True, needs_db=True, needs_storage=True, needs_realtime=True,
        ))

        assert result.backend_provisioned
        assert result.needs_apple_sign_in
        assert result.tables_created == ["notes"]
        assert result.warnings == []
        assert fake_client.auth_updates[0]["external_apple_client_id"] == "com.example.notes"
        assert "CREATE TABLE IF NOT EXISTS public.notes" in fake_client.queries[0]
        assert "ENABLE ROW LEVEL SECURITY" in fake_client.queries[1]
        assert any("storage.buckets" in q for q in fake_client.queries)
        assert "supabase_realtime" in fake_client.queries[-1]

    def test_provision_without_credentials(self, provider, fake_client):
        """Nothing happens without a pat and project ref"""
        result = provider.provision(ProvisionRequest(app_name="Notes", needs_db=True, models=[_note_model()]))

        assert not result.backend_provisioned
        assert fake_client.queries == []

    def test_provision_step_failure_is_warning(self):
        """A failing statement becomes a warning and independent steps still run"""
        client = FakeSupabaseClient(fail_on="CREATE TABLE")
        provider = SupabaseProvider(client_factory=lambda pat, ref: client)
        result = provider.provision(ProvisionRequest(
            pat="sbp", project_ref="abcd", app_name="Notes", models=[_note_model()],
            needs_db=True, needs_storage=True,
        ))

        assert not result.backend_provisioned
        assert result.tables_created == []
        assert any("table creation failed" in w for w in result.warnings)
        assert any("storage.buckets" in q for q in client.queries)

    def test_failed_tables_skip_rls(self):
        """RLS statements are not sent for tables that were never created"""
        client = FakeSupabaseClient(fail_on="CREATE TABLE")
        provider = SupabaseProvider(client_factory=lambda pat, ref: client, retries=0)
        result = provider.provision(ProvisionRequest(
            pat="sbp", project_ref="abcd", app_name="Notes", models=[_note_model()], needs_db=True,
        ))

        assert not any("ROW LEVEL SECURITY" in q for q in client.queries)
        assert not any("POLICY" in q for q in client.queries)
        assert len(result.warnings) == 1

    def test_transient_failure_is_retried(self):
        """A dropped connection is retried with the same statement before it becomes a warning"""
        client = FakeSupabaseClient(fail_on="CREATE TABLE", fail_times=1)
        provider = SupabaseProvider(client_factory=lambda pat, ref: client, retries=2)
        result = provider.provision(ProvisionRequest(
            pat="sbp", project_ref="abcd", app_name="Notes", models=[_note_model()], needs_db=True,
        ))

        assert result.backend_provisioned
        assert result.tables_created == ["notes"]
        assert result.warnings == []
        assert "CREATE TABLE IF NOT EXISTS public.notes" in client.queries[0]
        assert any("ENABLE ROW LEVEL SECURITY" in q for q in client.queries)
        # one failed attempt plus table, RLS enable, RLS policies
        assert client.attempts == 4

    def test_retries_exhausted_is_warning(self):
        """When every attempt fails the step ends as a single warning"""
        client = FakeSupabaseClient(fail_on="CREATE TABLE", fail_times=3)
        provider = SupabaseProvider(client_factory=lambda pat, ref: client, retries=2)
        result = provider.provision(ProvisionRequest(
            pat="sbp", project_ref="abcd", app_name="Notes", models=[_note_model()], needs_db=True,
        ))

        assert result.tables_created == []
        assert client.attempts == 3
        assert result.warnings == ["Supabase: table creation failed: connection reset"]

    def test_no_retry_after_deadline(self):
        """A failure past the deadline is not repeated"""
        client = FakeSupabaseClient(fail_on="CREATE TABLE", fail_times=1)
        provider = SupabaseProvider(client_factory=lambda pat, ref: client, retries=2)
        request = ProvisionRequest(
            pat="sbp", project_ref="abcd", app_name="Notes", models=[_note_model()], needs_db=True,
            deadline=time.monotonic() + 60,
        )
        original = client.execute_sql

        def expire_then_run(query, timeout=30.0):
            request.deadline = time.monotonic() - 1
            original(query, timeout)

        client.execute_sql = expire_then_run
        result = provider.provision(request)

        assert client.attempts == 1
        assert result.tables_created == []
        assert any("table creation failed" in w for w in result.warnings)

    def test_provision_deadline_expired(self, provider, fake_client):
        """An expired deadline skips every step with warnings"""
        result = provider.provision(ProvisionRequest(
            pat="sbp", project_ref="abcd", app_name="Notes", models=[_note_model()],
            needs_auth=True, needs_db=True, deadline=time.monotonic() - 1,
        ))

        assert fake_client.queries == []
        assert fake_client.auth_updates == []
        assert any("deadline" in w for w in result.warnings)


class TestSupabaseClient:
    """Test suite for the Management API client"""

    def test_execute_sql_posts_query(self):
        """Queries are posted with the bearer token and explicit timeout"""
        session = MagicMock()
        session.request.return_value = MagicMock(status_code=201)
        SupabaseClient("sbp", "abcd", session=session).execute_sql("SELECT 1", timeout=5)

        args, kwargs = session.request.call_args
        assert args == ("POST", "https://api.supabase.com/v1/projects/abcd/database/query")
        assert kwargs["json"] == {"query": "SELECT 1"}
        assert kwargs["headers"]["Authorization"] == "Bearer sbp"
        assert kwargs["timeout"] == 5

    def test_error_status_raises(self):
        session = MagicMock()
        session.request.return_value = MagicMock(status_code=400, text="bad sql")

        with pytest.raises(SupabaseAPIError):
            SupabaseClient("sbp", "abcd", session=session).execute_sql("nope")

    def test_repr_hides_token(self):
        assert "sbp_secret" not in repr(SupabaseClient("sbp_secret", "abcd", session=MagicMock()))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
