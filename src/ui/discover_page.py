import logging
from typing import List

import streamlit as st
from pydantic import ValidationError

from config.config import SETTINGS
from models.models import ChatGroupSummary, Coordinate
from services.nearby_cache import NearbyGroupsCache
from services.participation import ParticipationStore
from ui.net_action import net_action
from ui.Page import Page
from ui.state import open_chat
from utils.constants import Label, Pages
from utils.geo import format_distance
from workflows.nearby_discovery_workflow import DiscoverySession, NearbyDiscoveryWorkflow

logger = logging.getLogger(__name__)


class DiscoverPage(Page):
    """Map and list of chat groups around the current location."""

    def __init__(
        self,
        discovery_workflow: NearbyDiscoveryWorkflow,
        nearby_cache: NearbyGroupsCache,
        participation: ParticipationStore,
    ):
        self.discovery_workflow = discovery_workflow
        self.nearby_cache = nearby_cache
        self.participation = participation

    def _location_inputs(self) -> tuple[Coordinate | None, float]:
        with st.expander("Location", expanded=st.session_state.location is None):
            col_lat, col_lng, col_radius = st.columns(3)
            latitude = col_lat.number_input(
                Label.LATITUDE.value,
                min_value=-90.0,
                max_value=90.0,
                value=SETTINGS.default_latitude,
                format="%.6f",
            )
            longitude = col_lng.number_input(
                Label.LONGITUDE.value,
                min_value=-180.0,
                max_value=180.0,
                value=SETTINGS.default_longitude,
                format="%.6f",
            )
            radius_km = col_radius.number_input(
                Label.RADIUS.value,
                min_value=0.5,
                max_value=50.0,
                value=SETTINGS.discovery_radius_km,
                step=0.5,
            )
        try:
            return Coordinate(latitude=latitude, longitude=longitude), radius_km
        except ValidationError:
            st.error("Please enter a valid latitude and longitude.")
            return None, radius_km

    def _session(self) -> DiscoverySession:
        session = st.session_state.discovery_session
        if session is None:
            session = self.discovery_workflow.new_session()
            st.session_state.discovery_session = session
        return session

    def _restore_from_cache(self, origin: Coordinate, radius_km: float) -> bool:
        groups = self.nearby_cache.groups_near(origin, radius_km)
        if groups is None:
            return False
        logger.info("Showing %d cached nearby groups", len(groups))
        st.session_state.nearby_groups = groups
        st.session_state.nearby_stale = True
        return True

    def _refresh(self, origin: Coordinate, radius_km: float, force: bool = False):
        gate = st.session_state.location_gate
        if not force and not gate.should_fetch(origin, radius_km=radius_km):
            return
        if not st.session_state.nearby_groups:
            self._restore_from_cache(origin, radius_km)

        session = self._session()
        with net_action("Finding chats nearby..."):
            groups = self.discovery_workflow.find_nearby_groups(
                origin, radius_km, session=session
            )
        if groups is None:
            return
        gate.mark_fetched(origin, radius_km=radius_km)
        st.session_state.location = origin

        if session.degraded and self._restore_from_cache(origin, radius_km):
            st.session_state.nearby_degraded = False
            return
        st.session_state.nearby_groups = groups
        st.session_state.nearby_degraded = session.degraded
        st.session_state.nearby_stale = False
        if not session.degraded:
            self.nearby_cache.save(origin, groups)

    def _join(self, group: ChatGroupSummary):
        self.participation.join_chat(group.id, group.name)
        self.participation.track_chat_visit(group.id, group.name)
        open_chat(group.id, group.name)
        st.session_state["navigation"] = Pages.CHATS.value["key"]

    def _render_map(self, groups: List[ChatGroupSummary], origin: Coordinate | None):
        points = {"lat": [], "lon": [], "color": []}
        if origin is not None:
            points["lat"].append(origin.latitude)
            points["lon"].append(origin.longitude)
            points["color"].append("#1f77b4")
        for group in groups:
            points["lat"].append(group.coordinate.latitude)
            points["lon"].append(group.coordinate.longitude)
            points["color"].append("#999999" if group.is_sample else "#e4572e")
        if points["lat"]:
            st.map(points, latitude="lat", longitude="lon", color="color", zoom=13)

    def _render_group(self, group: ChatGroupSummary):
        with st.container(border=True):
            col_text, col_action = st.columns([4, 1])
            members = (
                f" · {group.member_count_estimate} members"
                if group.member_count_estimate is not None
                else ""
            )
            col_text.markdown(f"**{group.name}**")
            col_text.caption(
                f"{group.description or 'Local chat group'}"
                f" · {format_distance(group.distance_km)}{members}"
            )
            joined = self.participation.has_joined_chat(group.id)
            col_action.button(
                Label.OPEN_BUTTON.value if joined else Label.JOIN_BUTTON.value,
                key=f"join_{group.id}",
                disabled=group.is_sample,
                on_click=self._join,
                args=(group,),
            )

    def render(self):
        st.title("Discover")
        try:
            origin, radius_km = self._location_inputs()
            refresh = st.button("Refresh", icon=":material/refresh:")
            if origin is not None:
                self._refresh(origin, radius_km, force=refresh)

            groups: List[ChatGroupSummary] = st.session_state.nearby_groups
            if st.session_state.nearby_degraded:
                st.warning(
                    "Live chats are unavailable right now. Showing sample chats only."
                )
            elif st.session_state.nearby_stale:
                st.info("Showing chats from your last visit; live results are unavailable.")
            st.caption(f"{len(groups)} chats nearby")
            self._render_map(groups, st.session_state.location)
            for group in groups:
                self._render_group(group)
        except Exception as e:
            logger.exception("Discover page failed")
            st.error(str(e))
