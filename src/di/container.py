from typing import Any, MutableMapping
from dependency_injector import containers, providers
from clients.device_storage import DeviceStorage
from clients.supabase_client import SupabaseClient
from services.anonymous_identity import AnonymousIdentityService
from services.auth_service import AuthService
from services.message_synchronizer import MessageSynchronizer
from services.nearby_cache import NearbyGroupsCache
from services.participation import ParticipationStore
from services.poll_service import PollService
from ui.account_page import AccountPage
from ui.chat_list_page import ChatListPage
from ui.chat_page import ChatPage
from ui.discover_page import DiscoverPage
from ui.onboarding_page import OnboardingPage
from workflows.nearby_discovery_workflow import NearbyDiscoveryWorkflow
from workflows.send_message_workflow import SendMessageWorkflow
from config.config import SETTINGS


class Container(containers.DeclarativeContainer):
    # Clients
    supabase_client = providers.Singleton(
        SupabaseClient,
        url=SETTINGS.supabase_url,
        anon_key=SETTINGS.supabase_anon_key,
    )
    device_storage = providers.Singleton(
        DeviceStorage, base_dir=SETTINGS.device_storage_dir
    )

    # Services
    participation = providers.Singleton(ParticipationStore, storage=device_storage)
    identity_service = providers.Singleton(
        AnonymousIdentityService, backend=supabase_client, storage=device_storage
    )
    auth_service = providers.Singleton(AuthService, backend=supabase_client)
    poll_service = providers.Singleton(PollService, backend=supabase_client)
    nearby_cache = providers.Singleton(
        NearbyGroupsCache,
        storage=device_storage,
        ttl_hours=SETTINGS.nearby_cache_ttl_hours,
    )
    message_synchronizer = providers.Factory(
        MessageSynchronizer,
        backend=supabase_client,
        participation=participation,
        history_limit=SETTINGS.message_history_limit,
        realtime_enabled=SETTINGS.realtime_enabled,
    )

    # Workflows
    nearby_discovery_workflow = providers.Singleton(
        NearbyDiscoveryWorkflow,
        backend=supabase_client,
        fetch_limit=SETTINGS.discovery_fetch_limit,
        display_cap=SETTINGS.map_max_pins,
        timeout_seconds=SETTINGS.discovery_timeout_seconds,
        sample_groups_enabled=SETTINGS.sample_groups_enabled,
    )
    send_message_workflow = providers.Singleton(
        SendMessageWorkflow,
        backend=supabase_client,
        participation=participation,
        identity_service=identity_service,
        max_length=SETTINGS.max_message_length,
    )

    # UI Pages
    onboarding_page = providers.Singleton(
        OnboardingPage, storage=device_storage, identity_service=identity_service
    )
    discover_page = providers.Singleton(
        DiscoverPage,
        discovery_workflow=nearby_discovery_workflow,
        nearby_cache=nearby_cache,
        participation=participation,
    )
    chat_list_page = providers.Singleton(ChatListPage, participation=participation)
    chat_page = providers.Singleton(
        ChatPage,
        synchronizer_factory=message_synchronizer.provider,
        send_message_workflow=send_message_workflow,
        participation=participation,
        poll_service=poll_service,
    )
    account_page = providers.Singleton(
        AccountPage, auth_service=auth_service, identity_service=identity_service
    )


def session_container(state: MutableMapping[str, Any]) -> Container:
    """Container for one browser session.

    Singletons are per container instance, so each session gets its own
    Supabase client and with it its own auth session.
    """
    container = state.get("container")
    if container is None:
        container = Container()
        state["container"] = container
    return container
