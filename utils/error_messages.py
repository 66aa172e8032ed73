"""
Error Message Utilities

Turns PostgreSQL / asyncpg driver errors into short human-readable messages
for the data layer's StorageError kinds. Raw driver internals (SQLSTATE,
detail dumps) are replaced by an explanation of what went wrong.
"""

import re

# Human-readable constraint explanations
CONSTRAINT_MESSAGES = {
    "users_email_key": "A user with this email already exists.",
    "users_pkey": "A user with this ID already exists.",
    "events_pkey": "An event with this ID already exists.",
    "events_user_id_fkey": "The event references a user that does not exist.",
}


def enhance_error_message(error: BaseException) -> str:
    """
    Enhance database error messages with human-readable explanations.

    Handles:
    - Unique / foreign key / not-null / check constraint violations
    - Bind values whose type does not match the column (asyncpg DataError)
    - Unknown tables or columns (usually a record declaration out of sync
      with the schema)

    Returns the enhanced error message string.
    """
    error_str = str(error)

    unique_match = re.search(r'duplicate key value violates unique constraint "(\w+)"', error_str)
    if unique_match:
        constraint_name = unique_match.group(1)
        explanation = CONSTRAINT_MESSAGES.get(
            constraint_name, "A record with this value already exists."
        )
        return f"Duplicate entry ({constraint_name}): {explanation}"

    fk_match = re.search(r'violates foreign key constraint "(\w+)"', error_str)
    if fk_match:
        constraint_name = fk_match.group(1)
        explanation = CONSTRAINT_MESSAGES.get(
            constraint_name, "The referenced record does not exist."
        )
        return f"Foreign key violation ({constraint_name}): {explanation}"

    null_match = re.search(r'null value in column "(\w+)".* violates not-null constraint', error_str)
    if null_match:
        return f"Required field missing: '{null_match.group(1)}' cannot be null."

    check_match = re.search(r'violates check constraint "(\w+)"', error_str)
    if check_match:
        constraint_name = check_match.group(1)
        explanation = CONSTRAINT_MESSAGES.get(constraint_name)
        if explanation:
            return f"Constraint violation ({constraint_name}): {explanation}"
        return f"Constraint violation: {constraint_name}. {error_str}"

    arg_match = re.search(r"invalid input for query argument \$(\d+): (.*)", error_str)
    if arg_match:
        return f"Value for parameter ${arg_match.group(1)} does not fit its column: {arg_match.group(2)}"

    column_match = re.search(r'column "(\w+)"(?: of relation "\w+")? does not exist', error_str)
    if column_match:
        return f"Unknown column '{column_match.group(1)}'. Record declaration and schema disagree."

    relation_match = re.search(r'relation "(\w+)" does not exist', error_str)
    if relation_match:
        return f"Unknown table '{relation_match.group(1)}'. Has the schema been migrated?"

    return error_str
