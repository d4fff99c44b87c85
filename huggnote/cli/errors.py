"""Exit-code contract for the Huggnote CLI."""
from __future__ import annotations

import enum


class ExitCode(enum.IntEnum):
    """Standardised CLI exit codes.

    0 — success
    1 — user error (bad arguments, invalid form, missing selection)
    2 — no order found (nothing submitted yet, unknown form id)
    3 — server / internal error
    """

    SUCCESS = 0
    USER_ERROR = 1
    FORM_NOT_FOUND = 2
    INTERNAL_ERROR = 3
