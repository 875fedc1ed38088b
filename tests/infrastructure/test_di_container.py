from datetime import date

import pytest

from dtps_planner.application.api_services import PhaseApiService
from dtps_planner.application.services import PlanningService
from dtps_planner.domain.repositories import PlanningRepository
from dtps_planner.domain.scheduler import PhaseScheduler
from dtps_planner.infrastructure.di_container import Container, build_container
from tests.builders import make_purchase
from tests.di_utils import build_stub_container
from tests.mock_dal import InMemoryPlanningRepository


def test_stub_container_wires_services_to_repository() -> None:
    repository = InMemoryPlanningRepository(purchases=[make_purchase()])
    container = build_stub_container(repository=repository, clock=lambda: date(2024, 1, 1))

    assert container.resolve(PlanningRepository) is repository
    api_service = container.resolve(PhaseApiService)
    assert isinstance(api_service, PhaseApiService)

    api_service.create("purchase-1", 5)
    assert repository.purchases["purchase-1"].days_used == 5


def test_factories_build_new_scheduler_each_time() -> None:
    container = build_container()
    first = container.resolve(PhaseScheduler)
    second = container.resolve(PhaseScheduler)
    assert isinstance(first, PhaseScheduler)
    assert first is not second


def test_callable_override_receives_container() -> None:
    repository = InMemoryPlanningRepository()
    container = build_container(
        {
            PlanningRepository: lambda: repository,
            PlanningService: lambda c: PlanningService(c.resolve(PlanningRepository)),
        }
    )

    service = container.resolve(PlanningService)
    assert service.repository is repository


def test_unknown_service_raises_key_error() -> None:
    with pytest.raises(KeyError):
        Container().resolve(PlanningService)


def test_register_requires_factory_or_instance() -> None:
    with pytest.raises(ValueError):
        Container().register(PlanningService)

