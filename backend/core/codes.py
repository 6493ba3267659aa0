"""
Sequential human-readable codes: PREFIX-001, PREFIX-002, ...

The sequence state is simply the row count of the target table, so codes
can be re-derived at any time. Concurrent writers may derive the same code;
the unique constraint on the code column is the backstop and callers retry
on the resulting Conflict.
"""
import logging

logger = logging.getLogger('backend.core')

OUTWARD_PREFIX = 'OUTWARD'
INWARD_PREFIX = 'INWARD'

MAX_PROBES = 1000


def next_code(prefix, current_count):
    """
    Format the code following `current_count` existing rows.

    The number is zero-padded to three digits and simply grows past 999
    (OUTWARD-999 is followed by OUTWARD-1000).
    """
    return f"{prefix}-{current_count + 1:03d}"


def generate_code(model, field, prefix):
    """
    Generate the next free code for `model.field`.

    Starts from the current row count and skips forward past codes that
    already exist (left behind by rows created out of order).
    """
    count = model.objects.count()
    code = next_code(prefix, count)

    probes = 0
    while model.objects.filter(**{field: code}).exists():
        probes += 1
        if probes > MAX_PROBES:
            # Give up probing, let the unique constraint decide
            logger.warning(f"No free {prefix} code found after {MAX_PROBES} probes from count {count}")
            break
        code = next_code(prefix, count + probes)

    return code
