"""Catalog queries behind the introspection tools."""

DEFAULT_SCHEMAS = ("public",)

# Takes one parameter: the list of schemas to include
LIST_TABLES_SQL = """
select
  t.table_schema as schema,
  t.table_name as name,
  coalesce(
    (
      select json_agg(
        json_build_object(
          'name', c.column_name,
          'data_type', c.data_type,
          'is_nullable', c.is_nullable = 'YES',
          'default_value', c.column_default
        )
        order by c.ordinal_position
      )
      from information_schema.columns c
      where c.table_schema = t.table_schema
        and c.table_name = t.table_name
    ),
    '[]'::json
  ) as columns
from information_schema.tables t
where t.table_type = 'BASE TABLE'
  and t.table_schema = any(%s)
order by t.table_schema, t.table_name
"""

LIST_EXTENSIONS_SQL = """
select
  e.name,
  n.nspname as schema,
  e.default_version,
  e.installed_version,
  e.comment
from pg_available_extensions e
left join pg_extension x on x.extname = e.name
left join pg_namespace n on n.oid = x.extnamespace
order by e.name
"""

LIST_MIGRATIONS_SQL = """
select version, name
from supabase_migrations.schema_migrations
order by version
"""
