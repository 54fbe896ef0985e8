from volumebot.api.api_client import (
    ApiClient,
    ApiClientError,
    ApiTimeoutError,
    ApiBadResponseError,
    ApiRateLimitError,
)
from volumebot.api.jupiter_client import JupiterClient
from volumebot.api.pumpportal_client import PumpPortalClient
from volumebot.api.price_client import PriceClient
