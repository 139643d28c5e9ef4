from __future__ import annotations

from dataclasses import replace

from zoneguard.config import Settings
from zoneguard.network.demo import DemoProvider
from zoneguard.network.propeller import PropellerClient


DEMO_CAMPAIGNS = [
    {"id": 7101234, "name": "Push MY 7101234 casino", "status": "active"},
    {"id": 7105678, "name": "Onclick TH sweepstakes", "status": "active"},
]


def build_network(settings: Settings, *, demo_mode: bool | None = None) -> PropellerClient:
    """
    Return the provider client for the current settings.

    Demo mode swaps the HTTP transport for an in-process simulated provider;
    everything above the transport runs unchanged.
    """
    use_demo = settings.demo_mode if demo_mode is None else demo_mode
    if use_demo:
        demo = DemoProvider(campaigns=DEMO_CAMPAIGNS)
        return PropellerClient(
            replace(settings, api_token=settings.api_token or "demo"),
            transport=demo.transport(),
        )
    return PropellerClient(settings)
