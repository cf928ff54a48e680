"""
Occupancy Prediction Client

Client for the external people-counting service that looks at a camera image
of the establishment and predicts how long the wait currently is. The service
is best effort: it may be disabled, misconfigured, slow or down, and none of
that may ever fail a queue operation. Every failure is logged and reported as
"no prediction" (``None``).
"""

import logging
from typing import Any, Dict, Optional

import requests

from apps.queueapp.conf import get_setting

logger = logging.getLogger(__name__)

PREDICT_PATH = "/predict"


class PredictionResult:
    """A successful prediction"""

    def __init__(
        self,
        minutes: float,
        people_count: Optional[int] = None,
        occupancy: Optional[float] = None,
    ):
        self.minutes = minutes
        self.people_count = people_count
        self.occupancy = occupancy

    def to_dict(self) -> Dict[str, Any]:
        return {
            "minutes": self.minutes,
            "people_count": self.people_count,
            "occupancy": self.occupancy,
        }

    def __repr__(self):
        return f"PredictionResult(minutes={self.minutes!r}, people_count={self.people_count!r})"


class WaitPredictor:
    """Interface of a wait time prediction source"""

    def predict(self, establishment_ref) -> Optional[PredictionResult]:
        raise NotImplementedError


class NullWaitPredictor(WaitPredictor):
    """Used when no prediction service is configured"""

    def predict(self, establishment_ref) -> Optional[PredictionResult]:
        return None


class HttpWaitPredictor(WaitPredictor):
    """
    Calls ``POST {base_url}/predict`` with the camera image of the
    establishment. The service answers with::

        {"personas": 12, "tiempo_estimado": 40, "ocupacion": 65}

    i.e. people counted, estimated wait in minutes and occupancy percentage.
    """

    def __init__(self, base_url: str, image_url: str = "", timeout: float = 5, session=None):
        self.base_url = base_url.rstrip("/")
        self.image_url = image_url
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url)

    def predict(self, establishment_ref) -> Optional[PredictionResult]:
        if not self.is_configured:
            logger.warning("Wait predictor has no URL configured, skipping prediction")
            return None

        payload = {
            "image_url": self.image_url,
            "establishment_id": str(establishment_ref) if establishment_ref else None,
        }
        headers = {
            "Accept": "application/json",
            # Skips the interstitial page of ngrok tunnels
            "ngrok-skip-browser-warning": "true",
        }

        try:
            response = self.session.post(
                f"{self.base_url}{PREDICT_PATH}",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.Timeout:
            logger.warning(
                f"Wait predictor timed out after {self.timeout}s for establishment {establishment_ref}"
            )
            return None
        except requests.RequestException as e:
            logger.error(f"Wait predictor request failed: {str(e)}")
            return None

        if not response.ok:
            logger.warning(
                f"Wait predictor returned HTTP {response.status_code}: {response.text[:200]}"
            )
            return None

        try:
            return self.parse_response(response.json())
        except (ValueError, TypeError, KeyError) as e:
            logger.error(f"Invalid wait predictor response: {str(e)}")
            return None

    @staticmethod
    def parse_response(data) -> PredictionResult:
        if not isinstance(data, dict):
            raise TypeError(f"expected an object, got {type(data).__name__}")

        minutes = float(data["tiempo_estimado"])
        people = data.get("personas")
        occupancy = data.get("ocupacion")

        result = PredictionResult(
            minutes=minutes,
            people_count=int(people) if people is not None else None,
            occupancy=float(occupancy) if occupancy is not None else None,
        )
        logger.info(
            f"Wait prediction: {result.people_count} people, {result.minutes} min, "
            f"{result.occupancy}% occupancy"
        )
        return result


def get_wait_predictor() -> WaitPredictor:
    """Build the predictor described by the WAITLINE settings"""
    if not get_setting("PREDICTOR_ENABLED"):
        return NullWaitPredictor()

    return HttpWaitPredictor(
        base_url=get_setting("PREDICTOR_URL"),
        image_url=get_setting("PREDICTOR_IMAGE_URL"),
        timeout=get_setting("PREDICTOR_TIMEOUT"),
    )
