from __future__ import annotations

from typing import Dict, List, Sequence

from .types import CanonicalFieldSpec as F
from .types import Platform

# ---------------------------------------------------------------------------
# Tabular (spreadsheet export) booking fields
# ---------------------------------------------------------------------------

TABULAR_FIELDS: List[F] = [
    # required
    F("reservation_code", "Reservation Code", True, "text", "booking",
      ("reservation id", "confirmation code", "booking id", "reference")),
    F("guest_name", "Guest Name", True, "text", "guest",
      ("customer name", "full name")),
    F("check_in_date", "Check-in Date", True, "date", "dates",
      ("checkin", "arrival", "start date")),
    F("num_nights", "Number of Nights", True, "number", "dates",
      ("nights", "duration")),
    F("platform", "Channel/Platform", True, "text", "booking",
      ("channel", "source")),
    F("listing_name", "Listing Name", True, "text", "property",
      ("listing", "property name")),
    # optional
    F("guest_email", "Guest Email", False, "text", "guest",
      ("email", "e-mail")),
    F("total_price", "Total Price", False, "number", "financial",
      ("totalprice", "revenue")),
    F("accommodation_fee", "Accommodation Fee", False, "number", "financial",
      ("accommodation", "base rate")),
    F("cleaning_fee", "Cleaning Fee", False, "number", "financial",
      ("cleaning", "totalcleaning")),
    F("airbnb_sales_tax", "Airbnb Sales Tax", False, "number", "financial",
      ("airbnbsalestax",)),
    F("lodging_tax", "Lodging Tax", False, "number", "financial",
      ("lodgingtx", "occupancy tax")),
    F("non_airbnb_sales_tax", "Non-Airbnb Sales Tax", False, "number", "financial", ()),
    F("other_guest_fees", "Other Guest Fees", False, "number", "financial",
      ("guest fees", "extra guest")),
    F("channel_fee", "Channel Fee", False, "number", "financial",
      ("commission", "host fee", "hostsidechannelfee")),
    F("payment_fees", "Payment Fees", False, "number", "financial",
      ("paymentfees", "processing fee")),
    F("total_payout", "Total Payout", False, "number", "financial",
      ("payout",)),
    F("net_earnings", "Net Earnings", False, "number", "financial", ()),
]

# ---------------------------------------------------------------------------
# Webhook (PMS push notification) booking fields
# ---------------------------------------------------------------------------

WEBHOOK_FIELDS: List[F] = [
    # required
    F("guestName", "Guest Name", True, "text", "guest", ("guest_name",)),
    F("checkInDate", "Check-in Date", True, "date", "dates",
      ("arrivalDate", "check_in", "checkin", "arrival_date")),
    F("checkOutDate", "Check-out Date", True, "date", "dates",
      ("departureDate", "check_out", "checkout", "departure_date")),
    F("numNights", "Number of Nights", True, "number", "dates", ("nights",)),
    F("listingName", "Property/Listing Name", True, "text", "property",
      ("listingName", "propertyName")),
    F("platform", "Booking Platform", True, "text", "booking",
      ("channelName", "channel", "source")),
    F("totalAmount", "Total Amount", True, "number", "financial",
      ("totalPrice",)),
    # optional
    F("reservationCode", "Reservation Code", False, "text", "booking",
      ("reservationId", "confirmationCode")),
    F("guestEmail", "Guest Email", False, "text", "guest", ("guest_email", "email")),
    F("nightlyRate", "Nightly Rate", False, "number", "financial", ("baseRate",)),
    F("cleaningFee", "Cleaning Fee", False, "number", "financial", ("cleaningFeeValue",)),
    F("lodgingTax", "Lodging Tax", False, "number", "financial", ()),
    F("salesTax", "Sales Tax", False, "number", "financial", ()),
    F("gst", "GST", False, "number", "financial", ("vat",)),
    F("qst", "QST", False, "number", "financial", ()),
    F("channelFee", "Channel Fee", False, "number", "financial",
      ("hostChannelFee", "channelCommission")),
    F("stripeFee", "Stripe Fee", False, "number", "financial", ()),
    F("totalPayout", "Total Payout", False, "number", "financial", ()),
    F("mgmtFee", "Management Fee", False, "number", "financial", ()),
    F("netEarnings", "Net Earnings", False, "number", "financial", ()),
    F("extraGuestFees", "Extra Guest Fees", False, "number", "financial",
      ("guestFee", "additionalGuestFee")),
    F("bedLinenFee", "Bed Linen Fee", False, "number", "financial", ("linenFee",)),
]

SCHEMAS: Dict[str, List[F]] = {
    "tabular": TABULAR_FIELDS,
    "webhook": WEBHOOK_FIELDS,
}

PLATFORM_LABELS: Dict[Platform, str] = {
    Platform.ALL: "All Platforms",
    Platform.AIRBNB: "Airbnb",
    Platform.BOOKING: "Booking.com",
    Platform.GOOGLE: "Google",
    Platform.DIRECT: "Direct Booking",
    Platform.WECHALET: "WeChalet",
    Platform.MONSIEURCHALETS: "Monsieur Chalets",
    Platform.DIRECT_ETRANSFER: "Direct (e-Transfer)",
    Platform.VRBO: "VRBO",
    Platform.HOSTAWAY: "Hostaway",
}


def schema_for(pipeline: str) -> List[F]:
    try:
        return SCHEMAS[pipeline]
    except KeyError:
        raise ValueError(f"Unknown pipeline '{pipeline}'. Choose one of {list(SCHEMAS)}") from None


def required_fields(fields: Sequence[F]) -> List[F]:
    return [f for f in fields if f.required]
