"""Property-based invariants for the scoring and formatting core."""

from datetime import datetime, timedelta, timezone

from hypothesis import given
from hypothesis import strategies as st

from gridcopilot.etr import format_band_width, format_etr_band, format_runtime_hours, parse_confidence
from gridcopilot.geometry import point_in_polygon
from gridcopilot.policy import ACTIONS, evaluate_policy
from gridcopilot.schemas import GeoPoint, OutageEvent, ScenarioInput, WeatherAlert, WindPoint
from gridcopilot.scoring import compute_weather_risk, risk_tier
from gridcopilot.severity import get_event_severity

NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)
PRIORITIES = [None, "low", "medium", "high"]
SEVERITIES = ["Extreme", "Severe", "Moderate", "Minor", "Unknown"]

customers = st.one_of(st.none(), st.integers(min_value=0, max_value=1_000_000))
coords = st.floats(min_value=-180, max_value=180, allow_nan=False)
huge_ints = st.builds(lambda exp, sign: sign * 10**exp, st.integers(min_value=308, max_value=600), st.sampled_from([1, -1]))
numbers = st.one_of(st.floats(allow_nan=True), st.integers(), huge_ints)


@given(priority=st.sampled_from(PRIORITIES), low=customers, extra=st.integers(min_value=0, max_value=10_000))
def test_severity_monotonic_in_customers(priority, low, extra) -> None:
    base = OutageEvent(id="e", priority=priority, customers_impacted=low)
    more = OutageEvent(id="e", priority=priority, customers_impacted=(low or 0) + extra)
    assert 1 <= get_event_severity(base) <= get_event_severity(more) <= 5


@given(count=customers, lower=st.integers(min_value=0, max_value=3), step=st.integers(min_value=0, max_value=3))
def test_severity_monotonic_in_priority(count, lower, step) -> None:
    higher = min(3, lower + step)
    a = OutageEvent(id="e", priority=PRIORITIES[lower], customers_impacted=count)
    b = OutageEvent(id="e", priority=PRIORITIES[higher], customers_impacted=count)
    assert get_event_severity(a) <= get_event_severity(b)


@given(
    lat=coords,
    lng=coords,
    alerts=st.lists(st.sampled_from(SEVERITIES), max_size=8),
    speeds=st.lists(st.floats(min_value=0, max_value=200, allow_nan=False), max_size=5),
)
def test_weather_risk_is_bounded(lat, lng, alerts, speeds) -> None:
    event = OutageEvent(id="e", geo_center=GeoPoint(lat=lat, lng=lng))
    geometry = {"type": "Polygon", "coordinates": [[[-180, -90], [-180, 90], [180, 90], [180, -90]]]}
    alert_models = [WeatherAlert(id=str(i), severity=s, geometry=geometry) for i, s in enumerate(alerts)]
    wind = [WindPoint(lat=0, lng=i, speed=s) for i, s in enumerate(speeds)]

    result = compute_weather_risk(event, alert_models, wind)

    assert 0 <= result.score <= 100
    assert result.tier == risk_tier(result.score)[0]
    assert result.alert_count <= len(alerts)


@given(lat=coords, lng=coords)
def test_point_in_polygon_is_stable(lat, lng) -> None:
    ring = [[0, 0], [0, 10], [10, 10], [10, 0]]
    assert point_in_polygon(lat, lng, ring) == point_in_polygon(lat, lng, ring)


@given(raw=st.one_of(st.none(), numbers, st.text(max_size=8)))
def test_parse_confidence_never_raises(raw) -> None:
    result = parse_confidence(raw)
    assert 0 <= result.pct <= 100
    assert result == parse_confidence(raw)


@given(
    early=st.integers(min_value=-600, max_value=6000),
    width=st.integers(min_value=0, max_value=6000),
)
def test_band_is_deterministic_for_a_fixed_now(early, width) -> None:
    earliest = NOW + timedelta(minutes=early)
    latest = earliest + timedelta(minutes=width)
    band = format_etr_band(earliest, latest, now=NOW)
    assert band is not None and band.endswith(" hrs")
    assert band == format_etr_band(earliest, latest, now=NOW)


@given(
    severity=st.one_of(st.none(), st.integers(min_value=-3, max_value=9)),
    hazard=st.sampled_from(["STORM", "ICE", "HEAT", "WILDFIRE", "RAIN", "bogus", None]),
    phase=st.sampled_from(["PRE_EVENT", "ACTIVE", "POST_EVENT", None]),
)
def test_every_action_is_either_allowed_or_blocked(severity, hazard, phase) -> None:
    result = evaluate_policy(ScenarioInput(severity=severity, hazard_type=hazard, phase=phase), now=NOW)
    allowed = [item.action for item in result.allowed_actions]
    blocked = [item.action for item in result.blocked_actions]
    assert sorted(allowed + blocked) == sorted(ACTIONS)
    assert not set(allowed) & set(blocked)


@given(hours=st.one_of(st.none(), numbers))
def test_duration_formatters_never_raise(hours) -> None:
    runtime = format_runtime_hours(hours)
    assert runtime == "—" or runtime.endswith(" hrs")
    width = format_band_width(hours)
    assert width is None or width.endswith(" hrs")
