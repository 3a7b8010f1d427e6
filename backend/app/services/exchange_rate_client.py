import logging
import math

import requests

from app.config import settings
from app.exceptions import ConversionError

logger = logging.getLogger(__name__)


class ExchangeRateClient:
    """Converts amounts through the exchangerate.host convert endpoint."""

    def __init__(self, base_url: str = None, api_key: str = None, timeout: float = None) -> None:
        self.base_url = base_url or settings.EXCHANGE_RATE_API_URL
        self.api_key = api_key if api_key is not None else settings.EXCHANGE_RATE_API_KEY
        self.timeout = timeout or settings.EXCHANGE_RATE_TIMEOUT
        self.session = requests.Session()

    def convert(self, amount: float, source: str, target: str) -> float:
        source = source.upper()
        target = target.upper()
        if source == target:
            return float(amount)

        try:
            response = self.session.get(
                self.base_url,
                params={
                    "from": source,
                    "to": target,
                    "amount": amount,
                    "access_key": self.api_key,
                },
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("Currency conversion %s->%s failed: %s", source, target, exc)
            raise ConversionError(f"Currency conversion from {source} to {target} failed") from exc

        result = data.get("result") if isinstance(data, dict) else None
        if isinstance(result, bool) or not isinstance(result, (int, float)) or not math.isfinite(result):
            logger.error("Currency conversion %s->%s returned unusable result: %r", source, target, data)
            raise ConversionError(f"Currency conversion from {source} to {target} returned no result")

        return float(result)


exchange_rate_client = ExchangeRateClient()


def get_rate_oracle() -> ExchangeRateClient:
    return exchange_rate_client
