"""Tests for the per endpoint class rate limit service."""

from unittest.mock import Mock

import pytest

from rate_governor.adapters.rate_limit.base import AbstractCounterStore, Rate, WindowCounter
from rate_governor.adapters.rate_limit.in_memory import InMemoryWindowCounterStore
from rate_governor.core.config import RateLimitSettings
from rate_governor.core.errors import MissingRequiredIdentityError, StoreUnavailableError
from rate_governor.core.identity import IdentitySignals
from rate_governor.core.rate_limit import (
    EXPORT,
    GENERAL,
    RESTORE,
    SYNC,
    RateLimitService,
    build_endpoint_classes,
)


@pytest.fixture
def store(clock: Mock) -> InMemoryWindowCounterStore:
    return InMemoryWindowCounterStore(clock=clock)


@pytest.fixture
def service(store: InMemoryWindowCounterStore, clock: Mock) -> RateLimitService:
    return RateLimitService(build_endpoint_classes(RateLimitSettings()), store=store, clock=clock)


class TestEndpointClasses:
    def test_default_table(self) -> None:
        classes = {ec.name: ec for ec in build_endpoint_classes(RateLimitSettings())}

        assert (classes[GENERAL].rate.limit, classes[GENERAL].rate.period_seconds) == (100, 60)
        assert (classes[EXPORT].rate.limit, classes[EXPORT].rate.period_seconds) == (10, 3600)
        assert (classes[SYNC].rate.limit, classes[SYNC].rate.period_seconds) == (60, 60)
        assert (classes[RESTORE].rate.limit, classes[RESTORE].rate.period_seconds) == (1, 3600)
        assert classes[GENERAL].key_suffix is None
        assert [classes[n].key_suffix for n in (EXPORT, SYNC, RESTORE)] == ["export", "sync", "restore"]
        assert [n for n, ec in classes.items() if ec.requires_device] == [RESTORE]

    def test_malformed_configured_rate(self) -> None:
        with pytest.raises(ValueError):
            build_endpoint_classes(RateLimitSettings(export="ten per hour"))

    def test_exceeded_messages(self) -> None:
        classes = {ec.name: ec for ec in build_endpoint_classes(RateLimitSettings())}

        assert classes[GENERAL].exceeded_message() == (
            "Rate limit exceeded. Maximum 100 requests per minute."
        )
        assert classes[EXPORT].exceeded_message() == (
            "Export rate limit exceeded. Maximum 10 exports per hour."
        )
        assert classes[SYNC].exceeded_message() == (
            "Sync rate limit exceeded. Maximum 60 sync requests per minute."
        )
        assert classes[RESTORE].exceeded_message() == (
            "Device restore rate limit exceeded. Maximum 1 restore per hour per device."
        )


class TestKeys:
    def test_general_class_uses_bare_identity(self, service: RateLimitService) -> None:
        outcome = service.check(GENERAL, IdentitySignals(user_id="42"))
        assert outcome.key == "user:42"

    @pytest.mark.parametrize("class_name", [EXPORT, SYNC])
    def test_suffixed_classes(self, service: RateLimitService, class_name: str) -> None:
        outcome = service.check(class_name, IdentitySignals(client_host="10.0.0.1"))
        assert outcome.key == f"ip:10.0.0.1:{class_name}"

    def test_restore_forces_device_namespace(self, service: RateLimitService) -> None:
        signals = IdentitySignals(user_id="42", device_id_header="dev-9", client_host="10.0.0.1")

        outcome = service.check(RESTORE, signals)

        assert outcome.key == "device:dev-9:restore"
        assert outcome.device_id == "dev-9"

    def test_unknown_class(self, service: RateLimitService) -> None:
        with pytest.raises(KeyError):
            service.check("bulk", IdentitySignals(user_id="42"))


def test_export_limit_does_not_affect_general(service: RateLimitService, store) -> None:
    signals = IdentitySignals(user_id="42")

    exports = [service.check(EXPORT, signals).decision for _ in range(11)]
    general = service.check(GENERAL, signals).decision

    assert [d.reached for d in exports] == [False] * 10 + [True]
    assert exports[-1].remaining == 0
    assert general.reached is False
    assert general.remaining == 99
    assert store.peek("user:42:export").count == 11
    assert store.peek("user:42").count == 1


def test_general_scenario_101st_call(service: RateLimitService, clock: Mock) -> None:
    signals = IdentitySignals(client_host="10.0.0.1")

    for _ in range(100):
        assert service.check(GENERAL, signals).decision.reached is False

    clock.return_value = 1020.0
    outcome = service.check(GENERAL, signals)

    assert outcome.decision.reached is True
    assert outcome.decision.remaining == 0
    assert outcome.decision.limit == 100
    assert outcome.decision.reset_after_seconds == 40
    assert outcome.reset_at == 1060.0


def test_restore_without_device_consumes_no_quota(service: RateLimitService, store) -> None:
    signals = IdentitySignals(user_id="42", client_host="10.0.0.1")

    with pytest.raises(MissingRequiredIdentityError) as exc_info:
        service.check(RESTORE, signals)

    assert exc_info.value.code == "device_id_required"
    assert len(store) == 0


def test_restore_allows_one_per_device(service: RateLimitService) -> None:
    first = service.check(RESTORE, IdentitySignals(device_id_param="dev-1"))
    second = service.check(RESTORE, IdentitySignals(device_id_header="dev-1"))
    other_device = service.check(RESTORE, IdentitySignals(device_id_param="dev-2"))

    assert first.decision.reached is False
    assert second.decision.reached is True
    assert other_device.decision.reached is False


def test_store_outage_fails_open_for_every_class(clock: Mock) -> None:
    store = Mock(spec=AbstractCounterStore)
    store.increment_and_get.side_effect = StoreUnavailableError(
        code="store_unavailable", message="timeout"
    )
    service = RateLimitService(build_endpoint_classes(RateLimitSettings()), store=store, clock=clock)

    for class_name in (GENERAL, EXPORT, SYNC):
        outcome = service.check(class_name, IdentitySignals(user_id="42"))
        assert outcome.decision is None
        assert outcome.reset_at is None

    assert service.check(RESTORE, IdentitySignals(device_id_param="d")).decision is None


def test_custom_store_receives_class_rate(clock: Mock) -> None:
    seen: list[tuple[str, Rate]] = []

    class RecordingStore(AbstractCounterStore):
        def increment_and_get(self, key: str, rate: Rate) -> WindowCounter:
            seen.append((key, rate))
            return WindowCounter(count=1, expires_at=clock() + rate.period_seconds)

    service = RateLimitService(
        build_endpoint_classes(RateLimitSettings()), store=RecordingStore(), clock=clock
    )
    service.check(SYNC, IdentitySignals(user_id="7"))

    assert seen == [("user:7:sync", Rate.from_formatted("60-M"))]


def test_blank_device_id_does_not_satisfy_restore(service: RateLimitService, store) -> None:
    with pytest.raises(MissingRequiredIdentityError):
        service.check(RESTORE, IdentitySignals(device_id_header="   ", client_host="10.0.0.1"))

    assert len(store) == 0


def test_require_identity_touches_no_counter(service: RateLimitService, store) -> None:
    assert service.require_identity(RESTORE, IdentitySignals(device_id_param=" dev-1 ")) == "dev-1"
    assert service.require_identity(GENERAL, IdentitySignals()) is None

    with pytest.raises(MissingRequiredIdentityError):
        service.require_identity(RESTORE, IdentitySignals(user_id="42"))

    assert len(store) == 0


def test_reset_at_is_the_window_expiry(service: RateLimitService, clock: Mock) -> None:
    service.check(SYNC, IdentitySignals(user_id="42"))

    clock.return_value = 1012.3
    outcome = service.check(SYNC, IdentitySignals(user_id="42"))

    assert outcome.decision.reset_after_seconds == 48
    assert outcome.reset_at == 1060.0
