from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from fakes import FakeControlPlane  # noqa: E402

PUBLIC_BASE_URL = "https://relay.example.com"


@pytest.fixture(scope="session")
def app():
    # Must be set before the settings are first read.
    os.environ["PUBLIC_BASE_URL"] = PUBLIC_BASE_URL
    os.environ["RECORD_CALLS"] = "false"
    for name in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_FROM_NUMBER"):
        os.environ.pop(name, None)

    import importlib

    from config.settings import get_settings

    get_settings.cache_clear()
    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def registry():
    from calls.registry import CallRegistry

    return CallRegistry()


@pytest.fixture()
def hub(registry):
    from telephony.relay_hub import RelayHub

    return RelayHub(registry)


@pytest.fixture()
def processor(registry, hub):
    from calls.webhook_processor import WebhookProcessor

    return WebhookProcessor(registry, hub)


@pytest.fixture()
def control_plane() -> FakeControlPlane:
    return FakeControlPlane()


@pytest.fixture()
def client(app, registry, hub, processor, control_plane):
    # Fresh state per test; the Twilio SDK is never contacted.
    import api.dependencies as deps

    app.dependency_overrides[deps.get_registry] = lambda: registry
    app.dependency_overrides[deps.get_relay_hub] = lambda: hub
    app.dependency_overrides[deps.get_webhook_processor] = lambda: processor
    app.dependency_overrides[deps.get_control_plane] = lambda: control_plane

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
