import logging
import math
import threading
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from clients.supabase_client import SupabaseClient
from models.models import ChatGroupSummary, Coordinate, DiscoveryInput, utc_now
from utils.constants import DiscoveryConstants, SAMPLE_GROUP_ID_PREFIX, Tables
from utils.errors import is_retryable_error
from utils.geo import haversine_km, offset_coordinate
from workflows.workflow import Workflow

logger = logging.getLogger(__name__)


class DiscoverySession:
    """Request bookkeeping for one caller of the discovery workflow.

    Requests within a session run one at a time; each takes a generation
    number so a request that finishes after a newer one can be discarded.
    """

    def __init__(self):
        self.flight_lock = threading.Lock()
        self.state_lock = threading.Lock()
        self.generation = 0
        self.completed_generation = 0
        self.degraded = False


class NearbyDiscoveryWorkflow(Workflow):
    """Find active chat groups around a coordinate.

    Candidates are fetched from the backend, annotated with their haversine
    distance to the origin, filtered to the radius, sorted closest-first and
    capped. When the backend cannot be reached the workflow answers with a
    small set of clearly flagged sample groups (degraded mode) so the map is
    never empty.
    """

    def __init__(
        self,
        backend: Optional[SupabaseClient],
        fetch_limit: int = DiscoveryConstants.FETCH_LIMIT.value,
        display_cap: int = DiscoveryConstants.DISPLAY_CAP.value,
        timeout_seconds: float = DiscoveryConstants.TIMEOUT_SECONDS.value,
        sample_groups_enabled: bool = True,
    ):
        self.backend = backend
        self.fetch_limit = fetch_limit
        self.display_cap = display_cap
        self.timeout_seconds = timeout_seconds
        self.sample_groups_enabled = sample_groups_enabled
        self._default_session = DiscoverySession()

    @property
    def last_result_degraded(self) -> bool:
        return self._default_session.degraded

    def new_session(self) -> DiscoverySession:
        return DiscoverySession()

    def _coerce_input(self, payload: Dict[str, Any]) -> DiscoveryInput:
        if not isinstance(payload, dict):
            raise ValueError("Input must be a dict")
        origin = payload.get("origin")
        if origin is None:
            origin = {
                "latitude": payload.get("latitude"),
                "longitude": payload.get("longitude"),
            }
        radius_km = payload.get("radius_km")
        if radius_km is None:
            radius_km = DiscoveryConstants.DEFAULT_RADIUS_KM.value
        try:
            return DiscoveryInput(origin=origin, radius_km=radius_km)
        except ValidationError as e:
            raise ValueError(f"Invalid discovery input: {e}") from e

    def run(self, input: Dict[str, Any]) -> Optional[List[ChatGroupSummary]]:
        request = self._coerce_input(input)
        return self.find_nearby_groups(
            request.origin, request.radius_km, session=input.get("session")
        )

    def find_nearby_groups(
        self,
        origin: Coordinate,
        radius_km: float | None = DiscoveryConstants.DEFAULT_RADIUS_KM.value,
        session: DiscoverySession | None = None,
    ) -> Optional[List[ChatGroupSummary]]:
        """Groups within `radius_km` of `origin`, closest first.

        Returns None when a newer request in the same session completed
        first; the caller keeps whatever it showed before.
        """
        if not isinstance(origin, Coordinate):
            raise ValueError("origin must be a Coordinate")
        if radius_km is None:
            radius_km = DiscoveryConstants.DEFAULT_RADIUS_KM.value
        if not math.isfinite(radius_km) or radius_km <= 0:
            raise ValueError("radius_km must be a positive number")
        session = session or self._default_session

        with session.state_lock:
            session.generation += 1
            generation = session.generation

        with session.flight_lock:
            if generation < session.completed_generation:
                logger.info("Skipping superseded discovery request %d", generation)
                return None
            groups, degraded = self._discover(origin, radius_km)

        with session.state_lock:
            if generation < session.completed_generation:
                logger.info(
                    "Discarding superseded discovery result %d (newest %d)",
                    generation,
                    session.completed_generation,
                )
                return None
            session.completed_generation = generation
            session.degraded = degraded
            return groups

    def _discover(
        self, origin: Coordinate, radius_km: float
    ) -> Tuple[List[ChatGroupSummary], bool]:
        logger.info(
            "Fetching nearby chat groups around (%.5f, %.5f) within %skm",
            origin.latitude,
            origin.longitude,
            radius_km,
        )
        rows = self._fetch_candidates()
        if rows is None:
            return self._sample_groups(origin, radius_km), True

        nearby: List[ChatGroupSummary] = []
        for row in rows:
            group = ChatGroupSummary.from_row(row)
            if group is None or not group.active:
                continue
            distance = haversine_km(
                origin.latitude,
                origin.longitude,
                group.coordinate.latitude,
                group.coordinate.longitude,
            )
            if distance <= radius_km:
                nearby.append(group.model_copy(update={"distance_km": distance}))

        nearby.sort(key=lambda g: g.distance_km or 0.0)
        nearby = nearby[: self.display_cap]
        self._attach_member_counts(nearby)
        logger.info(
            "Found %d nearby chat groups out of %d candidates", len(nearby), len(rows)
        )
        return nearby, False

    def _fetch_candidates(self) -> Optional[List[Dict[str, Any]]]:
        if self.backend is None:
            logger.warning("Backend client unavailable, using sample groups")
            return None
        try:
            return self.backend.select(
                Tables.CHAT_GROUPS.value,
                filters={"is_active": True},
                order_by="last_activity",
                descending=True,
                limit=self.fetch_limit,
                timeout=self.timeout_seconds,
            )
        except Exception as e:
            if not is_retryable_error(e):
                logger.error("Chat group query failed (not retryable): %s", e)
                return None
            logger.warning("Chat group query failed, retrying simplified: %s", e)

        try:
            return self.backend.select(
                Tables.CHAT_GROUPS.value,
                columns=DiscoveryConstants.SIMPLIFIED_COLUMNS.value,
                filters={"is_active": True},
                limit=self.fetch_limit,
                timeout=self.timeout_seconds,
            )
        except Exception as e:
            logger.error("Simplified chat group query failed: %s", e)
            return None

    def _attach_member_counts(self, groups: List[ChatGroupSummary]):
        """Estimate members as distinct senders in the retained message window."""
        pending = [g for g in groups if g.member_count_estimate is None]
        if not pending or self.backend is None:
            return
        try:
            rows = self.backend.select(
                Tables.CURRENT_MESSAGES.value,
                columns="chat_group_id,user_id,anonymous_user_id",
                in_filters={"chat_group_id": [g.id for g in pending]},
                timeout=self.timeout_seconds,
            )
        except Exception as e:
            logger.warning("Member count query failed: %s", e)
            return

        senders: Dict[str, set] = {g.id: set() for g in pending}
        for row in rows:
            sender = row.get("user_id") or row.get("anonymous_user_id")
            chat_id = str(row.get("chat_group_id"))
            if sender and chat_id in senders:
                senders[chat_id].add(sender)
        for group in pending:
            group.member_count_estimate = len(senders[group.id])

    def _sample_groups(
        self, origin: Coordinate, radius_km: float
    ) -> List[ChatGroupSummary]:
        if not self.sample_groups_enabled:
            logger.warning("Discovery unavailable and sample groups disabled")
            return []
        logger.warning(
            "DEGRADED MODE: returning sample chat groups instead of live results"
        )
        now = utc_now()
        samples: List[ChatGroupSummary] = []
        for idx, (name, description, fraction, bearing) in enumerate(
            DiscoveryConstants.SAMPLE_GROUPS.value, start=1
        ):
            lat, lng = offset_coordinate(
                origin.latitude, origin.longitude, radius_km * fraction, bearing
            )
            samples.append(
                ChatGroupSummary(
                    id=f"{SAMPLE_GROUP_ID_PREFIX}{idx}",
                    name=name,
                    description=description,
                    coordinate=Coordinate(latitude=lat, longitude=lng),
                    created_at=now,
                    last_activity_at=now - timedelta(minutes=5 * idx),
                    distance_km=haversine_km(origin.latitude, origin.longitude, lat, lng),
                    is_sample=True,
                )
            )
        return samples
