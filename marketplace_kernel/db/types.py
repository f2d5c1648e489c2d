"""
Module: marketplace_kernel.db.types
Responsibility: Column-value helpers shared by models and services.
Architecture position: Kernel > DB.  MUST NOT import from models/,
    services/, or selectors/.

Invariants enforced:
    - Amounts are integers in minor units (cents).  No Decimal or float
      amounts are ever persisted.
    - Currency codes are stored as lowercase 3-letter ISO 4217 codes,
      matching the payment processor's wire format.
"""


def normalize_currency(code: str) -> str:
    """
    Normalize a currency code to the stored lowercase form.

    Raises:
        ValueError: If ``code`` is not a 3-letter alphabetic string.
    """
    if not isinstance(code, str) or len(code) != 3 or not code.isalpha():
        raise ValueError(f"Invalid currency code: {code!r}")
    return code.lower()

