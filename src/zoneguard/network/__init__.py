from zoneguard.network.base import AdNetwork, NetworkResponse
from zoneguard.network.demo import DemoProvider
from zoneguard.network.propeller import PropellerClient, build_provider_url, campaign_items

__all__ = [
    "AdNetwork",
    "NetworkResponse",
    "DemoProvider",
    "PropellerClient",
    "build_provider_url",
    "campaign_items",
]
