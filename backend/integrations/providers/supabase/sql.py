"""
SQL generation for Supabase provisioning

Every statement is safe to re-run: tables use IF NOT EXISTS, policies are
dropped before being created, bucket inserts ignore conflicts.
"""
from typing import List

from integrations.types import ModelRef, PropertyRef, camel_to_snake, model_table_name

_PG_TYPES = {
    "UUID": "UUID",
    "String": "TEXT",
    "Int": "INTEGER",
    "Double": "DOUBLE PRECISION",
    "Float": "DOUBLE PRECISION",
    "Bool": "BOOLEAN",
    "Date": "TIMESTAMPTZ",
    "URL": "TEXT",
    "[String]": "TEXT[]",
}


def swift_type_to_pg(swift_type: str) -> str:
    """Map a Swift type name to a PostgreSQL column type."""
    base = swift_type.rstrip("?")
    if base in _PG_TYPES:
        return _PG_TYPES[base]
    # custom types are stored as references
    if base[:1].isupper():
        return "UUID"
    return "TEXT"


def infer_constraints(prop: PropertyRef, is_first: bool) -> str:
    parts = []
    optional = prop.type.endswith("?")
    if is_first and prop.name.lower() == "id":
        parts.append("PRIMARY KEY")
        if prop.type == "UUID":
            parts.append("DEFAULT gen_random_uuid()")
    if not optional and not is_first:
        parts.append("NOT NULL")
    if prop.default_value:
        parts.append(f"DEFAULT {prop.default_value}")
    return (" " + " ".join(parts)) if parts else ""


def create_table_sql(model: ModelRef) -> str:
    table = model_table_name(model)
    columns = []
    for i, prop in enumerate(model.properties):
        columns.append(f"  {camel_to_snake(prop.name)} {swift_type_to_pg(prop.type)}{infer_constraints(prop, i == 0)}")
    body = ",\n".join(columns)
    return f"CREATE TABLE IF NOT EXISTS public.{table} (\n{body}\n);\n"


def create_tables_sql(models: List[ModelRef]) -> str:
    return "\n".join(create_table_sql(m) for m in models)


def enable_rls_sql(models: List[ModelRef]) -> str:
    return "".join(f"ALTER TABLE public.{model_table_name(m)} ENABLE ROW LEVEL SECURITY;\n" for m in models)


def _has_owner_column(model: ModelRef) -> bool:
    return any(camel_to_snake(p.name) == "user_id" for p in model.properties)


def rls_policies_sql(models: List[ModelRef]) -> str:
    """Public read; writes limited to the owning user, or to any signed-in user."""
    lines = []
    for model in models:
        table = model_table_name(model)
        if _has_owner_column(model):
            write_check = "auth.uid() = user_id"
        else:
            write_check = "auth.role() = 'authenticated'"
        policies = [
            ("select", "SELECT", "USING (true)"),
            ("insert", "INSERT", f"WITH CHECK ({write_check})"),
            ("update", "UPDATE", f"USING ({write_check})"),
            ("delete", "DELETE", f"USING ({write_check})"),
        ]
        for suffix, op, clause in policies:
            name = f"{table}_{suffix}"
            lines.append(f'DROP POLICY IF EXISTS "{name}" ON public.{table};')
            lines.append(f'CREATE POLICY "{name}" ON public.{table} FOR {op} {clause};')
        lines.append("")
    return "\n".join(lines)


def bucket_id_for(app_name: str) -> str:
    return f"{app_name.lower()}-media"


def storage_bucket_sql(bucket_id: str) -> str:
    return (
        f"INSERT INTO storage.buckets (id, name, public) VALUES ('{bucket_id}', '{bucket_id}', true) "
        f"ON CONFLICT (id) DO NOTHING;"
    )


def storage_policies_sql(bucket_id: str) -> str:
    owner_folder = "(storage.foldername(name))[1]"
    policies = [
        ("select", "SELECT", f"USING (bucket_id = '{bucket_id}')"),
        ("insert", "INSERT",
         f"WITH CHECK (bucket_id = '{bucket_id}' AND auth.role() = 'authenticated' AND {owner_folder} = auth.uid()::text)"),
        ("update", "UPDATE", f"USING (bucket_id = '{bucket_id}' AND auth.uid()::text = {owner_folder})"),
        ("delete", "DELETE", f"USING (bucket_id = '{bucket_id}' AND auth.uid()::text = {owner_folder})"),
    ]
    lines = []
    for suffix, op, clause in policies:
        name = f"{bucket_id}_{suffix}"
        lines.append(f'DROP POLICY IF EXISTS "{name}" ON storage.objects;')
        lines.append(f'CREATE POLICY "{name}" ON storage.objects FOR {op} {clause};')
    return "\n".join(lines) + "\n"


def realtime_sql(models: List[ModelRef]) -> str:
    lines = []
    for model in models:
        table = model_table_name(model)
        lines.append(
            "DO $$ BEGIN "
            f"ALTER PUBLICATION supabase_realtime ADD TABLE public.{table}; "
            "EXCEPTION WHEN duplicate_object THEN NULL; END $$;"
        )
        lines.append(f"ALTER TABLE public.{table} REPLICA IDENTITY FULL;")
    return "\n".join(lines) + "\n"


__all__ = [
    "swift_type_to_pg",
    "infer_constraints",
    "create_table_sql",
    "create_tables_sql",
    "enable_rls_sql",
    "rls_policies_sql",
    "bucket_id_for",
    "storage_bucket_sql",
    "storage_policies_sql",
    "realtime_sql",
]
