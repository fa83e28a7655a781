from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from receipt_ingest.project_paths import ProjectPaths
from receipt_ingest.services.receipt_service.orchestrator import ReceiptOrchestrator
from receipt_ingest.settings import IngestSettings


@pytest.fixture()
def paths(tmp_path: Path) -> ProjectPaths:
    paths = ProjectPaths.under(tmp_path / "data", root=tmp_path)
    paths.ensure_dirs()
    return paths


@pytest.fixture()
def settings() -> IngestSettings:
    return IngestSettings(base_url="http://receipts.test", workers=2)


@pytest.fixture()
def make_orchestrator(paths: ProjectPaths, settings: IngestSettings) -> Iterator:
    created: list[ReceiptOrchestrator] = []

    def factory(runner, **overrides) -> ReceiptOrchestrator:
        orchestrator = ReceiptOrchestrator.build(paths, settings, runner=runner)
        for name, value in overrides.items():
            setattr(orchestrator, name, value)
        created.append(orchestrator)
        return orchestrator

    yield factory

    for orchestrator in created:
        orchestrator.shutdown(wait=True)
