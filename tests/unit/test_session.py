"""Tests for the session state machine in sfsoap.session."""

from unittest.mock import MagicMock, patch

import pytest
import requests
from soap_fixtures import http_response

from sfsoap.config import ClientConfig, LogInfo
from sfsoap.exceptions import AuthStateError, ProtocolError, SoapFaultError, TransportError
from sfsoap.headers import DebuggingHeader, QueryOptions, SessionHeader, compose_headers
from sfsoap.session import Credentials, Session, SessionManager, session_from_login
from sfsoap.transport import SoapTransport

LOGIN_URL = "https://login.salesforce.com/services/Soap/u/44.0"

LOGIN_RESULT = {
    "sessionId": "00DSESSION0000000000abc",
    "serverUrl": "https://na1.salesforce.com/services/Soap/u/44.0/00D000000000001",
    "userInfo": {"userName": "user@example.com"},
}

TOKEN_BODY = {"access_token": "tok123", "instance_url": "https://na1.example.com"}


@pytest.fixture
def transport():
    t = SoapTransport()
    yield t
    t.close()


@pytest.fixture
def manager(transport):
    return SessionManager(transport, ClientConfig(client_id="cid", client_secret="csecret"))


def snapshot(manager):
    return (
        manager.config,
        manager.session,
        manager.transport.server_url,
        manager.transport.headers,
        manager.has_credentials,
    )


class TestInitialState:
    def test_endpoint_is_derived_login_url(self, manager, transport):
        assert transport.server_url == LOGIN_URL
        assert transport.headers == ()
        assert manager.session is None
        assert manager.session_id == ""

    def test_preconfigured_token_is_applied(self, transport):
        mgr = SessionManager(transport, ClientConfig(session_id="00DPRESET"))

        assert mgr.session_id == "00DPRESET"
        assert transport.headers == (SessionHeader("00DPRESET"),)


class TestPasswordLogin:
    def test_success_makes_state_consistent(self, manager, transport):
        with patch.object(transport, "login", return_value=dict(LOGIN_RESULT)) as login:
            result = manager.login("user@example.com", "pw")

        login.assert_called_once_with("user@example.com", "pw")
        assert result["sessionId"] == LOGIN_RESULT["sessionId"]
        assert manager.session_id == LOGIN_RESULT["sessionId"]
        assert manager.server_url == LOGIN_RESULT["serverUrl"]
        assert transport.server_url == LOGIN_RESULT["serverUrl"]
        assert manager.user_info == {"userName": "user@example.com"}
        assert transport.headers[-1] == SessionHeader(manager.session_id)
        assert manager.has_credentials

    def test_failure_leaves_state_untouched(self, manager, transport):
        manager.set_batch_size(50)
        before = snapshot(manager)

        with patch.object(
            transport, "login", side_effect=SoapFaultError("sf:INVALID_LOGIN", "Invalid login")
        ):
            with pytest.raises(SoapFaultError):
                manager.login("user@example.com", "wrong")

        assert snapshot(manager) == before

    def test_failure_after_earlier_login_keeps_old_session(self, manager, transport):
        with patch.object(transport, "login", return_value=dict(LOGIN_RESULT)):
            manager.login("user@example.com", "pw")
        before = snapshot(manager)

        with patch.object(transport, "login", side_effect=TransportError("connection reset")):
            with pytest.raises(TransportError):
                manager.login("other@example.com", "pw2")

        assert snapshot(manager) == before

    def test_incomplete_login_result_is_protocol_error(self, manager, transport):
        before = snapshot(manager)

        with patch.object(transport, "login", return_value={"sessionId": "x"}):
            with pytest.raises(ProtocolError):
                manager.login("user@example.com", "pw")

        assert snapshot(manager) == before


class TestRefreshSession:
    def test_without_credentials_raises(self, manager, transport):
        with patch.object(transport, "login") as login:
            with pytest.raises(AuthStateError):
                manager.refresh_session()

        login.assert_not_called()

    def test_reuses_stored_credentials(self, manager, transport):
        renewed = dict(LOGIN_RESULT, sessionId="00DRENEWED00000000")
        with patch.object(transport, "login", side_effect=[dict(LOGIN_RESULT), renewed]) as login:
            manager.login("user@example.com", "pw")
            manager.refresh_session()

        assert login.call_args_list[1].args == ("user@example.com", "pw")
        assert manager.session_id == "00DRENEWED00000000"
        assert transport.headers == (SessionHeader("00DRENEWED00000000"),)


class TestOAuth:
    def test_password_grant(self, manager, transport):
        resp = http_response(status_code=200, json_data=dict(TOKEN_BODY))

        with patch.object(manager.http, "post", return_value=resp) as post:
            manager.login_with_oauth("user@example.com", "pw")

        url = post.call_args.args[0]
        data = post.call_args.kwargs["data"]
        assert url == "https://login.salesforce.com/services/oauth2/token"
        assert data == {
            "grant_type": "password",
            "client_id": "cid",
            "client_secret": "csecret",
            "username": "user@example.com",
            "password": "pw",
        }
        assert transport.server_url == "https://na1.example.com/services/Soap/u/44.0"
        assert manager.session_id == "tok123"
        assert transport.headers == (SessionHeader("tok123"),)

    def test_refresh_grant(self, manager, transport):
        resp = http_response(status_code=200, json_data=dict(TOKEN_BODY, access_token="tok456"))

        with patch.object(manager.http, "post", return_value=resp) as post:
            manager.refresh_oauth_token("REFRESH")

        data = post.call_args.kwargs["data"]
        assert data["grant_type"] == "refresh_token"
        assert data["refresh_token"] == "REFRESH"
        assert "username" not in data
        assert manager.session_id == "tok456"

    def test_repeated_exchange_converges(self, manager, transport):
        manager.set_access_token("something-else")
        resp = http_response(status_code=200, json_data=dict(TOKEN_BODY))

        with patch.object(manager.http, "post", return_value=resp):
            manager.login_with_oauth("u", "p")
            first = (transport.server_url, manager.session_id)
            manager.refresh_oauth_token("R")
            manager.login_with_oauth("u", "p")

        assert (transport.server_url, manager.session_id) == first

    @pytest.mark.parametrize(
        "resp",
        [
            http_response(status_code=400, json_data={"error": "invalid_grant"}),
            http_response(status_code=200, content=b"<html>not json</html>"),
            http_response(status_code=200, json_data={"access_token": "tok"}),
            http_response(status_code=200, json_data=["not", "an", "object"]),
        ],
    )
    def test_bad_responses_leave_state_untouched(self, manager, resp):
        before = snapshot(manager)

        with patch.object(manager.http, "post", return_value=resp):
            with pytest.raises(ProtocolError):
                manager.login_with_oauth("u", "p")

        assert snapshot(manager) == before

    def test_network_failure_is_transport_error(self, manager):
        before = snapshot(manager)

        with patch.object(manager.http, "post", side_effect=requests.ConnectionError("down")):
            with pytest.raises(TransportError):
                manager.refresh_oauth_token("R")

        assert snapshot(manager) == before

    def test_oauth_login_drops_soap_credentials(self, manager, transport):
        with patch.object(transport, "login", return_value=dict(LOGIN_RESULT)):
            manager.login("user@example.com", "pw")
        resp = http_response(status_code=200, json_data=dict(TOKEN_BODY))

        with patch.object(manager.http, "post", return_value=resp):
            manager.login_with_oauth("u", "p")

        assert not manager.has_credentials


class TestLogout:
    def test_logout_resets_everything(self, manager, transport):
        with patch.object(transport, "login", return_value=dict(LOGIN_RESULT)):
            manager.login("user@example.com", "pw")

        with patch.object(transport, "logout") as logout:
            manager.logout()

        logout.assert_called_once_with()
        assert manager.session_id == ""
        assert manager.session is None
        assert transport.server_url == LOGIN_URL
        assert transport.headers == ()
        assert not manager.has_credentials

    def test_remote_failure_still_resets_locally(self, manager, transport):
        manager.set_batch_size(100)
        with patch.object(transport, "login", return_value=dict(LOGIN_RESULT)):
            manager.login("user@example.com", "pw")

        with patch.object(transport, "logout", side_effect=TransportError("timeout")):
            with pytest.raises(TransportError):
                manager.logout()

        assert manager.session_id == ""
        assert transport.server_url == LOGIN_URL
        assert transport.headers == (QueryOptions(100),)

    def test_logout_without_session_skips_remote_call(self, manager, transport):
        with patch.object(transport, "logout") as logout:
            manager.logout()

        logout.assert_not_called()
        assert transport.server_url == LOGIN_URL


class TestConfigMutators:
    def test_set_access_token(self, manager, transport):
        manager.set_access_token("00DTOKEN")

        assert manager.session_id == "00DTOKEN"
        assert manager.session == Session("00DTOKEN", LOGIN_URL)
        assert transport.headers == (SessionHeader("00DTOKEN"),)

    def test_clearing_access_token_drops_session(self, manager, transport):
        manager.set_access_token("00DTOKEN")
        manager.set_access_token("")

        assert manager.session is None
        assert transport.headers == ()

    def test_version_and_host_push_url_immediately(self, manager, transport):
        manager.set_api_version("58.0")
        assert transport.server_url == "https://login.salesforce.com/services/Soap/u/58.0"

        manager.set_login_host("test.salesforce.com")
        assert transport.server_url == "https://test.salesforce.com/services/Soap/u/58.0"

    def test_session_follows_endpoint_changes(self, manager, transport):
        with patch.object(transport, "login", return_value=dict(LOGIN_RESULT)):
            manager.login("user@example.com", "pw")

        manager.set_api_version("58.0")
        assert manager.server_url == transport.server_url
        assert manager.server_url == "https://login.salesforce.com/services/Soap/u/58.0"
        assert manager.user_info == {"userName": "user@example.com"}

        manager.set_login_host("test.salesforce.com")
        assert manager.server_url == transport.server_url

    def test_set_server_url_moves_preset_session(self, transport):
        mgr = SessionManager(transport, ClientConfig(session_id="00DPRESET"))
        url = "https://na9.salesforce.com/services/Soap/u/44.0/00D"

        mgr.set_server_url(url)

        assert transport.server_url == url
        assert mgr.server_url == url
        assert mgr.session == Session("00DPRESET", url)
        assert transport.headers == (SessionHeader("00DPRESET"),)

    def test_set_server_url_without_session(self, manager, transport):
        manager.set_server_url("https://na9.salesforce.com/services/Soap/u/44.0/00D")

        assert transport.server_url == "https://na9.salesforce.com/services/Soap/u/44.0/00D"
        assert manager.session is None
        assert manager.server_url == ""

    def test_oauth_uses_current_host_and_version(self, manager, transport):
        manager.set_login_host("test.salesforce.com")
        manager.set_api_version("58.0")
        resp = http_response(status_code=200, json_data=dict(TOKEN_BODY))

        with patch.object(manager.http, "post", return_value=resp) as post:
            manager.login_with_oauth("u", "p")

        assert post.call_args.args[0] == "https://test.salesforce.com/services/oauth2/token"
        assert transport.server_url == "https://na1.example.com/services/Soap/u/58.0"

    def test_negative_batch_size_rejected(self, manager):
        with pytest.raises(ValueError):
            manager.set_batch_size(-1)

    def test_headers_match_compose_after_any_sequence(self, manager, transport):
        cats = [LogInfo("Apex_code", "FINE")]
        manager.set_access_token("SID")
        manager.set_debug_categories(cats)
        manager.set_batch_size(0)
        manager.set_batch_size(250)
        manager.set_debug_categories(None)
        manager.set_debug_categories(cats)

        assert transport.headers == compose_headers(manager.config)
        assert transport.headers == (
            DebuggingHeader(tuple(cats)),
            QueryOptions(250),
            SessionHeader("SID"),
        )

    def test_client_secret_and_id(self, manager):
        manager.set_client_id("other-id")
        manager.set_client_secret("other-secret")

        assert manager.config.client_id == "other-id"
        assert manager.config.client_secret == "other-secret"


def test_credentials_repr_hides_password():
    assert "hunter2" not in repr(Credentials("user", "hunter2"))


def test_session_from_login_ignores_non_dict_user_info():
    s = session_from_login({"sessionId": "S", "serverUrl": "U", "userInfo": "x"})
    assert s == Session("S", "U", None)


def test_uses_injected_http_session(transport):
    http = MagicMock()
    http.post.return_value = http_response(status_code=200, json_data=dict(TOKEN_BODY))
    mgr = SessionManager(transport, ClientConfig(), http=http)

    mgr.refresh_oauth_token("R")

    http.post.assert_called_once()
    assert mgr.session_id == "tok123"
