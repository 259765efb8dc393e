import enum
import logging
import re

from .storage import now_ms

logger = logging.getLogger(__name__)

# ---- 1x1 transparent PNG (valid PNG bytes) ----
PIXEL_PNG = bytes([
    137,80,78,71,13,10,26,10,0,0,0,13,73,72,68,82,
    0,0,0,1,0,0,0,1,8,6,0,0,0,31,21,196,137,0,0,
    0,10,73,68,65,84,120,156,99,96,0,0,0,2,0,1,
    229,39,212,162,0,0,0,0,73,69,78,68,174,66,96,130
])

NO_STORE_HEADERS = {
    "Content-Type": "image/png",
    "Content-Length": str(len(PIXEL_PNG)),
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

# version-4 UUID, any case
PIXEL_ID_RE = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}",
    re.IGNORECASE,
)

UNKNOWN_USER_AGENT = "Unknown"


def is_pixel_id(text):
    return bool(text) and PIXEL_ID_RE.fullmatch(text) is not None


def client_origin(request, trust_forwarded_for=False):
    """Network address for a request. Advisory only, never authenticated."""
    if trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.remote_addr or ""


class TrackOutcome(enum.Enum):
    REJECTED = "rejected"
    UNKNOWN = "unknown"
    DEDUPED = "deduped"
    RECORDED = "recorded"
    WRITE_FAILED = "write_failed"


class TrackingHandler:
    """Decides whether a tracker hit is a new open and records it.

    The caller always answers with PIXEL_PNG and NO_STORE_HEADERS whatever
    the outcome; the outcome exists for logging and tests.
    """

    def __init__(self, registry, event_log, dedup, clock=now_ms):
        self.registry = registry
        self.event_log = event_log
        self.dedup = dedup
        self._clock = clock

    def handle(self, pixel_id, origin, user_agent=None):
        if not is_pixel_id(pixel_id):
            logger.debug("tracker hit rejected: malformed id")
            return TrackOutcome.REJECTED
        pixel_id = pixel_id.lower()

        try:
            known = self.registry.exists(pixel_id)
        except Exception:
            logger.exception("registry lookup failed for %s", pixel_id)
            return TrackOutcome.UNKNOWN
        if not known:
            logger.debug("tracker hit rejected: unknown pixel")
            return TrackOutcome.UNKNOWN

        if not self.dedup.check_and_mark((pixel_id, origin)):
            logger.debug("duplicate open of %s from %s suppressed", pixel_id, origin)
            return TrackOutcome.DEDUPED

        try:
            self.event_log.append(pixel_id, self._clock(), origin, user_agent or UNKNOWN_USER_AGENT)
        except Exception:
            logger.exception("could not record open of %s from %s", pixel_id, origin)
            # let the next hit from this origin try again
            self.dedup.forget((pixel_id, origin))
            return TrackOutcome.WRITE_FAILED
        logger.info("open of %s from %s recorded", pixel_id, origin)
        return TrackOutcome.RECORDED
