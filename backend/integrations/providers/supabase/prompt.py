"""
Prompt blocks contributed by the Supabase provider
"""
from typing import List, Optional

from integrations.contract import PromptContribution, PromptRequest
from integrations.types import IntegrationConfig, ModelRef, model_table_name
from integrations.providers.supabase.sql import create_table_sql

PLACEHOLDER_URL = "https://YOUR_PROJECT_REF.supabase.co"
PLACEHOLDER_ANON_KEY = "YOUR_ANON_KEY"

PROVISIONED_USER_BLOCK = """
SUPABASE BACKEND (already provisioned):
Tables, RLS policies, and storage buckets have been created automatically.
1. Use mcp__supabase__list_tables to see the available tables.
2. If you need additional tables, indexes, or policies, use mcp__supabase__execute_sql.
3. Proceed directly to writing Swift code. The backend is ready.

"""

BACKEND_FIRST_USER_BLOCK = """
CRITICAL: BACKEND FIRST (before writing ANY Swift code):
1. Read the <backend-setup> section in the system prompt. It has the exact SQL.
2. Use mcp__supabase__execute_sql to create ALL tables defined there.
3. Use mcp__supabase__execute_sql to enable RLS on every table and create RLS policies.
4. If the app has file uploads, create storage buckets and policies.
5. Use mcp__supabase__list_tables to VERIFY all tables exist.
6. Only after tables are confirmed, proceed to write Swift code.
DO NOT skip this. The app CANNOT function without a backend schema.

"""


def _backend_setup_section(models: List[ModelRef], auth_methods: List[str]) -> List[str]:
    lines = []
    if auth_methods:
        lines.append("## Auth Providers (auto-configured)\n")
        lines.append(f"Auth providers already configured: {', '.join(auth_methods)}.")
        lines.append("Do NOT configure auth providers manually. They are already enabled on the Supabase project.\n")

    lines.append("<backend-setup>")
    lines.append("## MANDATORY: Backend-First Execution Order\n")
    lines.append("The Supabase MCP server is connected. You MUST set up the backend BEFORE writing any Swift code.\n")
    lines.append("### Step 1: Create ALL tables (use mcp__supabase__execute_sql)")
    lines.append("Use IF NOT EXISTS for idempotency. Always use snake_case column names.\n")
    if models:
        lines.append("### Required Tables (derived from planned models)\n")
        for model in models:
            lines.append(f"**Table: `{model_table_name(model)}`** (from model `{model.name}`)")
            lines.append("```sql")
            lines.append(create_table_sql(model).rstrip("\n"))
            lines.append("```\n")
    lines.append("### Step 2: Enable RLS on every table")
    lines.append("```sql")
    for model in models:
        lines.append(f"ALTER TABLE public.{model_table_name(model)} ENABLE ROW LEVEL SECURITY;")
    lines.append("```\n")
    lines.append("### Step 3: Create RLS policies for every table")
    lines.append("Public-read + owner-write for content tables, owner-only for private data.\n")
    lines.append("### Step 4: Create storage buckets and policies if the app uploads files\n")
    lines.append("### Step 5: Verify with mcp__supabase__list_tables before writing Swift code\n")
    lines.append("</backend-setup>\n")
    return lines


def build_contribution(request: PromptRequest, config: Optional[IntegrationConfig]) -> PromptContribution:
    """
    Build the system and user blocks for one app.

    Credentials come from config when present, placeholders otherwise.
    The backend-setup section and user instructions only appear when a
    personal access token is stored, since only then is the tool server usable.
    """
    lines = ["", "<integration-config>"]
    if config is not None and config.project_url:
        lines.append(f"Supabase Project URL: {config.project_url}")
        lines.append(f"Supabase Anon Key: {config.anon_key}")
        lines.append("Store these in Config/AppConfig.swift as static constants.\n")
    else:
        lines.append(f"Supabase Project URL: {PLACEHOLDER_URL}")
        lines.append(f"Supabase Anon Key: {PLACEHOLDER_ANON_KEY}")
        lines.append("Store these in Config/AppConfig.swift as static constants. The user will replace the placeholders.\n")

    has_tools = config is not None and bool(config.pat)
    if has_tools:
        lines.extend(_backend_setup_section(request.models, request.auth_methods))

    lines.append("Models use Codable (NOT @Model). Supabase is the persistence layer.")
    lines.append("</integration-config>")

    user_block = ""
    if has_tools:
        user_block = PROVISIONED_USER_BLOCK if request.backend_provisioned else BACKEND_FIRST_USER_BLOCK

    return PromptContribution(
        system_block="\n".join(lines) + "\n",
        user_block=user_block,
        backend_provisioned=request.backend_provisioned,
    )


__all__ = ["build_contribution", "PLACEHOLDER_URL", "PLACEHOLDER_ANON_KEY"]
