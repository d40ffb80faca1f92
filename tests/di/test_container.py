from di.container import session_container


def test_each_session_gets_its_own_backend_and_auth():
    first, second = {}, {}
    a = session_container(first)
    b = session_container(second)
    assert a is not b
    assert a.supabase_client() is not b.supabase_client()
    assert a.auth_service() is not b.auth_service()
    assert a.nearby_discovery_workflow() is not b.nearby_discovery_workflow()


def test_same_session_reuses_container():
    state = {}
    container = session_container(state)
    assert session_container(state) is container
    assert container.auth_service() is container.auth_service()
