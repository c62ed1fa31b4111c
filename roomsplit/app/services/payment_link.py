"""
services/payment_link.py — upi://pay deep links for complete settlements.

The link is handed back to the client, which opens the payer's UPI app.
Nothing here talks to a payment provider and no receipt ever comes back:
the ledger write is made on the user's own confirmation.
"""

from __future__ import annotations

from decimal import Decimal
from urllib.parse import quote, urlencode

from roomsplit.app.services.ledger import to_cents

UPI_SCHEME = "upi://pay"


def build_upi_link(
        payee_address: str,
        payee_name: str,
        amount: Decimal,
        note: str,
        currency: str = "INR",
) -> str:
    """
    Builds a UPI payment intent URI.

    >>> build_upi_link("bob@okaxis", "Bob", Decimal("250"), "RoomSplit settlement")
    'upi://pay?pa=bob%40okaxis&pn=Bob&am=250.00&cu=INR&tn=RoomSplit%20settlement'
    """
    params = {
        "pa": payee_address,
        "pn": payee_name,
        "am": str(to_cents(amount)),
        "cu": currency,
        "tn": note,
    }
    return f"{UPI_SCHEME}?{urlencode(params, quote_via=quote)}"
