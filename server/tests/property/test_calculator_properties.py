"""Property-based tests for the room allocation and price calculators."""

from hypothesis import assume, given
from hypothesis import strategies as st

from app.schemas.allocation import ROOM_TYPE_ORDER, PriceTable, RoomAllocationRequest, RoomType
from app.services.allocation import calculate_room_allocation
from app.services.pricing import calculate_total_price

# Strategies for generating test data
pax_counts = st.integers(min_value=0, max_value=500)
unit_prices = st.integers(min_value=0, max_value=100_000_000)

allocations = st.builds(
    RoomAllocationRequest,
    quad=pax_counts,
    triple=pax_counts,
    double=pax_counts,
    single=pax_counts,
)

price_tables = st.builds(
    PriceTable,
    quad=unit_prices,
    triple=unit_prices,
    double=unit_prices,
    single=unit_prices,
)


@given(request=allocations)
def test_rooms_are_the_smallest_sufficient_count(request):
    """Every type gets just enough rooms for its passengers."""
    assume(request.total_pax > 0)

    result = calculate_room_allocation(request)

    for requirement in result.requirements:
        assert requirement.rooms_needed * requirement.capacity >= requirement.pax
        assert (requirement.rooms_needed - 1) * requirement.capacity < requirement.pax or requirement.rooms_needed == 0


@given(request=allocations)
def test_passengers_are_conserved(request):
    assume(request.total_pax > 0)

    result = calculate_room_allocation(request)

    assert result.total_pax == request.total_pax
    assert [r.room_type for r in result.requirements] == list(ROOM_TYPE_ORDER)
    assert [r.pax for r in result.requirements] == [request.count(t) for t in ROOM_TYPE_ORDER]


@given(request=allocations)
def test_only_odd_double_parties_need_pairing(request):
    assume(request.total_pax > 0)

    result = calculate_room_allocation(request)

    assert result.for_type(RoomType.DOUBLE).unpaired_count == request.double % 2
    assert result.requires_staff_pairing == (request.double % 2 == 1)


@given(request=allocations)
def test_summary_has_a_line_per_occupied_type(request):
    assume(request.total_pax > 0)

    summary = calculate_room_allocation(request).summary()

    occupied = [t for t in ROOM_TYPE_ORDER if request.count(t) > 0]
    assert len(summary) == len(occupied)
    assert all(line.startswith(t.label) for line, t in zip(summary, occupied))


@given(request=allocations, table=price_tables)
def test_total_price_is_linear_in_passengers(request, table):
    total = calculate_total_price(request, table)

    assert total == sum(request.count(t) * table.price_for(t) for t in ROOM_TYPE_ORDER)
    assert total >= 0


@given(request=allocations, table=price_tables, factor=st.integers(min_value=2, max_value=5))
def test_scaling_the_party_scales_the_price(request, table, factor):
    scaled = RoomAllocationRequest(**{t.value.lower(): request.count(t) * factor for t in ROOM_TYPE_ORDER})

    assert calculate_total_price(scaled, table) == factor * calculate_total_price(request, table)
