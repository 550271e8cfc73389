import os

import pytest
from playwright.sync_api import sync_playwright

from nsscompat.config import ProbeConfig
from nsscompat.errors import ConfigError
from nsscompat.session import DriverSession
from nsscompat.verifier import build_verifier


def pytest_collection_modifyitems(config, items):
    if os.getenv("NSS_E2E") == "1":
        return
    skip = pytest.mark.skip(reason="set NSS_E2E=1 to drive real browsers")
    for item in items:
        if "browser" in item.keywords:
            item.add_marker(skip)


def pytest_generate_tests(metafunc):
    if "legacy_tag" not in metafunc.fixturenames:
        return
    try:
        tags = list(ProbeConfig.from_env().legacy)
    except ConfigError:
        tags = ["v1", "v2"]
    metafunc.parametrize("legacy_tag", tags)


@pytest.fixture(scope="session")
def probe_config() -> ProbeConfig:
    return ProbeConfig.from_env()


@pytest.fixture(scope="session")
def verifier(probe_config):
    return build_verifier(probe_config.verifier)


@pytest.fixture(scope="session")
def playwright_driver():
    with sync_playwright() as playwright:
        yield playwright


@pytest.fixture()
def generator_session(probe_config, playwright_driver):
    session = DriverSession.launch(probe_config.session, playwright=playwright_driver)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def application_session(probe_config, playwright_driver):
    session = DriverSession.launch(probe_config.session.for_application(), playwright=playwright_driver)
    try:
        yield session
    finally:
        session.close()
