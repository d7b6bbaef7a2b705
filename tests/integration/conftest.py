import os

import pytest
from dotenv import find_dotenv, load_dotenv

# Cargar .env lo más temprano posible (antes de pytest_collection_modifyitems)
load_dotenv(find_dotenv(usecwd=True))


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    token = os.getenv("PARTICLE_ACCESS_TOKEN")
    for item in items:
        if "integration" in item.keywords and not token:
            item.add_marker(pytest.mark.skip(reason="Falta PARTICLE_ACCESS_TOKEN en entorno/.env"))
