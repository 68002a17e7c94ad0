"""System instructions for the delivery assistant.

Merges the database schema description with query-writing rules for the
declared tool form. Built once per orchestrator; the schema is static.
"""

import json
from datetime import datetime

from deliverychat.db.models import describe_schema
from deliverychat.orchestrator.tools import ToolForm

_NAMED_RULES = """\
When using the query_database function:
1. Always use parameterized queries with :param syntax
2. Include proper JOIN conditions when querying across tables
3. Handle NULL values appropriately
4. Use appropriate WHERE clauses and ORDER BY when needed
5. Never concatenate user input directly into queries

Example valid queries:
- SELECT * FROM customers WHERE customer_id = :customerId
- SELECT d.*, c.name AS customer_name
  FROM deliveries d
  JOIN customers c ON d.customer_id = c.customer_id
  WHERE d.status = :status"""

_POSITIONAL_RULES = """\
When using the query_database function:
1. Use positional placeholders ($1, $2, ...) and pass the values in order
2. Include proper JOIN conditions when querying across tables
3. Handle NULL values appropriately
4. Never concatenate user input directly into queries

Example valid query:
- SELECT * FROM deliveries WHERE status = $1 ORDER BY created_at DESC"""


def build_system_prompt(form: ToolForm = "named", schema: dict | None = None) -> str:
    """Build the assistant instructions.

    Args:
        form: Tool argument form, selects the placeholder rules.
        schema: Schema description; defaults to the delivery tables.

    Returns:
        Instruction text for the run.
    """
    schema = schema if schema is not None else describe_schema()
    rules = _NAMED_RULES if form == "named" else _POSITIONAL_RULES
    return f"""You are a delivery operations assistant. Today is {datetime.now():%Y-%m-%d}.

You have access to a delivery management database (tables: {", ".join(schema["tables"])}) \
with the following schema:
{json.dumps(schema, indent=2)}

The database is read-only: only SELECT statements are executed.

{rules}

Answer in plain text. When a query fails, read the error, correct the query and try again \
or explain what went wrong."""
