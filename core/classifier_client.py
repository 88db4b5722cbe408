# core/classifier_client.py
import logging
import httpx
from config.settings import settings
from util.errors import ClassifierUnavailable
from util.timing import timed
from util.types import ClassifierScores

logger = logging.getLogger(__name__)


class ContentClassifierClient:
    """
    Single-shot image moderation against the SightEngine check endpoint.

    No retries: each call is one POST. Every failure (transport, non-2xx,
    undecodable body, service-reported failure) raises ClassifierUnavailable
    and no scores are returned. Whether that counts as safe is the caller's call.
    """

    def __init__(
        self,
        *,
        api_user: str = settings.SIGHTENGINE_API_USER,
        api_secret: str = settings.SIGHTENGINE_API_SECRET,
        url: str = settings.CLASSIFIER_URL,
        models: str = settings.CLASSIFIER_MODELS,
        timeout: float = settings.CLASSIFIER_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_user = api_user
        self._api_secret = api_secret
        self._url = url
        self._models = models
        self._timeout = httpx.Timeout(timeout, connect=min(5.0, timeout))
        self._transport = transport
        if not api_user or not api_secret:
            logger.error("classifier.credentials.missing")

    async def classify(
        self, image_bytes: bytes, filename: str = "frame.png"
    ) -> ClassifierScores:
        data = {
            "api_user": self._api_user,
            "api_secret": self._api_secret,
            "models": self._models,
        }
        files = {"media": (filename, image_bytes, "image/png")}

        try:
            with timed(logger, "classifier.check", frame=filename):
                async with httpx.AsyncClient(
                    timeout=self._timeout, transport=self._transport
                ) as client:
                    res = await client.post(self._url, data=data, files=files)
        except httpx.HTTPError as e:
            logger.error("classifier.request_error err=%s", type(e).__name__)
            raise ClassifierUnavailable(f"request failed: {type(e).__name__}") from e

        if res.status_code // 100 != 2:
            logger.error("classifier.bad_status status=%d", res.status_code)
            raise ClassifierUnavailable(f"status {res.status_code}")

        try:
            body = res.json()
        except ValueError as e:
            logger.error("classifier.bad_body frame=%s", filename)
            raise ClassifierUnavailable("undecodable response body") from e

        if not isinstance(body, dict):
            raise ClassifierUnavailable("unexpected response shape")

        # The service reports auth/quota problems as 200 + status=failure
        if body.get("status") == "failure":
            err = body.get("error") or {}
            message = err.get("message") if isinstance(err, dict) else str(err)
            logger.error("classifier.service_failure msg=%s", message)
            raise ClassifierUnavailable(f"service failure: {message}")

        logger.debug("classifier.scores frame=%s keys=%s", filename, sorted(body))
        return body
