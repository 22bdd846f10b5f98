"""Shared fixtures backed by on-disk storage under tmp_path."""

import pytest

from faxocr.pipeline.models.template import Template
from faxocr.pipeline.reconciliation import ItemWorkingSet
from faxocr.pipeline.storage.gateway import PersistenceGateway
from faxocr.pipeline.storage.handles import ImageHandleRegistry
from faxocr.pipeline.templates.store import TemplateStore


@pytest.fixture
def handles():
    return ImageHandleRegistry()


@pytest.fixture
def gateway(tmp_path, handles):
    return PersistenceGateway(tmp_path / "data", handles)


@pytest.fixture
def working_set(gateway, handles):
    return ItemWorkingSet(gateway, handles)


@pytest.fixture
def template_store(tmp_path):
    return TemplateStore(tmp_path / "data")


@pytest.fixture
def sample_template():
    return Template.model_validate(
        {
            "id": "order-sheet",
            "name": "注文書",
            "fields": [
                {"name": "productName", "label": "商品名", "required": True},
                {"name": "quantity", "label": "数量", "type": "number"},
            ],
        }
    )
