from bookmap.engine.batch import ImportBatchProcessor, to_payload
from bookmap.engine.config import ImportOptions, make_resolver
from bookmap.engine.fields import TABULAR_FIELDS, WEBHOOK_FIELDS
from bookmap.engine.resolver import MappingResolver
from bookmap.engine.types import CanonicalFieldSpec, Platform, TabularSource


def test_formula_over_source_columns_end_to_end():
    fields = [
        CanonicalFieldSpec("guestName", "Guest Name", required=True),
        CanonicalFieldSpec("totalPayout", "Total Payout", value_kind="number"),
    ]
    resolver = MappingResolver(fields)
    resolver.update({"guestName": "Full Name", "totalPayout": "[Nightly Rate] + [Cleaning Fee]"})
    source = TabularSource.from_table(
        ["Full Name", "Email", "Nightly Rate", "Cleaning Fee"],
        [["Jane Doe", "jane@x.com", "100", "25"]],
    )
    result = ImportBatchProcessor(fields).run(source, resolver)
    row = result.preview[0]
    assert row.is_valid
    assert row.record == {"guestName": "Jane Doe", "totalPayout": 125}
    assert result.committable == [{"guestName": "Jane Doe", "totalPayout": 125}]


def _tabular_resolver():
    r = make_resolver("tabular")
    r.update(
        {
            "reservation_code": "Code",
            "guest_name": "Guest",
            "check_in_date": "Check-in",
            "num_nights": "Nights",
            "platform": "Channel",
            "listing_name": "Listing",
            "guest_email": "Email",
            "cleaning_fee": "Cleaning",
        }
    )
    r.set_mapping("cleaning_fee", Platform.AIRBNB, "[Cleaning] * 2")
    return r


def test_per_row_platform_overrides():
    source = TabularSource.from_table(
        ["Code", "Guest", "Check-in", "Nights", "Channel", "Listing", "Email", "Cleaning"],
        [
            ["R1", "Ann", "2024-05-01", "2", "Airbnb", "Chalet", "ann@x.com", "40"],
            ["R2", "Bob", "2024-05-03", "3", "Booking.com", "Chalet", "bob@x.com", "40"],
            ["R3", "Cy", "2024-05-07", "1", "Carrier pigeon", "Chalet", "cy@x.com", "40"],
        ],
    )
    result = ImportBatchProcessor(TABULAR_FIELDS).run(source, _tabular_resolver())
    assert [r.platform for r in result.preview] == [Platform.AIRBNB, Platform.BOOKING, Platform.ALL]
    assert [r.record["cleaning_fee"] for r in result.preview] == [80, 40, 40]
    assert result.summary.valid == 3


def test_webhook_payloads_and_forced_platform():
    r = make_resolver("webhook")
    r.update(
        {
            "guestName": "guest.name",
            "checkInDate": "arrivalDate",
            "checkOutDate": "departureDate",
            "numNights": "nights",
            "listingName": "listingName",
            "platform": "channelName",
            "totalAmount": "totalPrice",
            "guestEmail": "guest.email",
            "nightlyRate": 'financeField.find(f => f.name === "baseRate").total',
        }
    )
    r.set_mapping("totalAmount", Platform.ALL, "[nightlyRate] * [numNights]")
    payloads = [
        {
            "data": {
                "guest": {"name": "Jane", "email": "jane@x.com"},
                "arrivalDate": "2024-05-01",
                "departureDate": "2024-05-03",
                "nights": 2,
                "listingName": "Chalet",
                "channelName": "hostaway",
                "financeField": [{"name": "baseRate", "total": 100}],
            }
        },
        {"data": {"guest": {"name": "Tom"}}},
    ]
    result = ImportBatchProcessor(WEBHOOK_FIELDS, ImportOptions(envelope="data")).run(
        payloads, r, existing=set(), platform="vrbo"
    )
    first, second = result.preview
    assert first.platform is Platform.VRBO
    assert first.is_valid, first.errors
    assert first.record["totalAmount"] == 200
    assert first.record["checkInDate"] == "2024-05-01"
    assert not second.is_valid
    assert "Check-in Date is required" in second.errors
    assert any(e.startswith("Total Amount:") for e in second.errors)
    assert result.summary.invalid == 1
    assert len(result.committable) == 1


def test_to_payload_drops_unresolved():
    assert to_payload({"a": 1, "b": None, "c": ""}) == {"a": 1, "c": ""}
