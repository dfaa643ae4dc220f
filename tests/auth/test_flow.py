"""Tests for starting and completing the authorization code flow."""
import urllib.parse
from unittest import mock

import pytest

from identity_bff.auth.errors import FlowStateMissingError, StateMismatchError, TokenError
from identity_bff.auth.flow import begin_authorization, complete_authorization, end_session
from identity_bff.auth.pkce import generate_code_challenge
from identity_bff.auth.session import CODE_VERIFIER_KEY, STATE_KEY, FlowStateStore, TokenSession
from identity_bff.models.tokens import TokenSet
from identity_bff.utils.config import ConfigurationError


@pytest.fixture
def token_client(token_payload):
    client = mock.AsyncMock()
    client.exchange_code.return_value = TokenSet(**token_payload)
    return client


def started_flow(settings):
    storage = {}
    store = FlowStateStore(storage)
    url = begin_authorization(store, settings)
    query = dict(urllib.parse.parse_qsl(urllib.parse.urlparse(url).query))
    return store, storage, query


class TestBeginAuthorization:
    def test_stores_verifier_before_redirect(self, settings):
        """Test the stored verifier matches the challenge sent in the URL."""
        _, storage, query = started_flow(settings)

        assert generate_code_challenge(storage[CODE_VERIFIER_KEY]) == query["code_challenge"]
        assert storage[STATE_KEY] == query["state"]
        assert query["client_id"] == "test-client"

    def test_incomplete_configuration(self, settings):
        settings.oauth2_client_id = None
        store = FlowStateStore()

        with pytest.raises(ConfigurationError):
            begin_authorization(store, settings)
        assert store.has_pending_flow() is False


class TestCompleteAuthorization:
    """Tests for the callback handling."""

    @pytest.mark.asyncio
    async def test_successful_callback(self, settings, token_client, make_id_token):
        """Test the full round trip from stored verifier to stored tokens."""
        token_client.exchange_code.return_value = TokenSet(
            access_token="a", token_type="bearer", expires_in=3600, id_token=make_id_token()
        )
        store, storage, query = started_flow(settings)
        verifier = storage[CODE_VERIFIER_KEY]
        session = TokenSession()

        result = await complete_authorization(store, session, token_client, code="auth-code", state=query["state"])

        token_client.exchange_code.assert_awaited_once_with("auth-code", verifier)
        assert session.access_token == "a"
        assert result.claims.sub == "user-123"
        assert result.claims_error is None
        assert store.has_pending_flow() is False

    @pytest.mark.asyncio
    async def test_state_mismatch_never_exchanges(self, settings, token_client):
        """Test a forged state aborts before the token request."""
        store, _, _ = started_flow(settings)
        session = TokenSession()

        with pytest.raises(StateMismatchError):
            await complete_authorization(store, session, token_client, code="auth-code", state="forged")

        token_client.exchange_code.assert_not_awaited()
        assert store.has_pending_flow() is False
        assert session.is_authenticated is False

    @pytest.mark.asyncio
    async def test_callback_without_started_flow(self, token_client):
        with pytest.raises(FlowStateMissingError):
            await complete_authorization(FlowStateStore(), TokenSession(), token_client, code="c", state="s")
        token_client.exchange_code.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_server_error_parameter(self, settings, token_client):
        """Test an error returned on the redirect aborts and clears the flow."""
        store, _, query = started_flow(settings)

        with pytest.raises(TokenError) as exc_info:
            await complete_authorization(
                store, TokenSession(), token_client,
                code=None, state=query["state"],
                error="access_denied", error_description="The user denied the consent request",
            )

        assert exc_info.value.error == "access_denied"
        assert exc_info.value.error_description == "The user denied the consent request"
        assert store.has_pending_flow() is False
        token_client.exchange_code.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_code(self, settings, token_client):
        store, _, query = started_flow(settings)

        with pytest.raises(TokenError) as exc_info:
            await complete_authorization(store, TokenSession(), token_client, code="", state=query["state"])

        assert exc_info.value.error == "invalid_request"
        assert store.has_pending_flow() is False

    @pytest.mark.asyncio
    async def test_exchange_failure_propagates(self, settings, token_client):
        """Test the server's exchange error reaches the caller and the flow is spent."""
        token_client.exchange_code.side_effect = TokenError("invalid_grant", "Code already used", 400)
        store, _, query = started_flow(settings)
        session = TokenSession()

        with pytest.raises(TokenError) as exc_info:
            await complete_authorization(store, session, token_client, code="used", state=query["state"])

        assert exc_info.value.error == "invalid_grant"
        assert store.has_pending_flow() is False
        assert session.is_authenticated is False

    @pytest.mark.asyncio
    async def test_undecodable_id_token_is_reported(self, settings, token_client):
        token_client.exchange_code.return_value = TokenSet(
            access_token="a", token_type="bearer", expires_in=3600, id_token="not.a-valid.jwt"
        )
        store, _, query = started_flow(settings)
        session = TokenSession()

        result = await complete_authorization(store, session, token_client, code="c", state=query["state"])

        assert session.is_authenticated is True
        assert result.claims is None
        assert result.claims_error is not None


class TestEndSession:
    def test_clears_session_and_hints_id_token(self, settings, make_id_token):
        settings.oauth2_post_logout_redirect_uri = "http://localhost:3000/"
        id_token = make_id_token()
        session = TokenSession()
        session.set(TokenSet(access_token="a", token_type="bearer", expires_in=3600, id_token=id_token))

        url = end_session(session, settings)

        parsed = urllib.parse.urlparse(url)
        query = dict(urllib.parse.parse_qsl(parsed.query))
        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "http://hydra.test/oauth2/sessions/logout"
        assert query == {"id_token_hint": id_token, "post_logout_redirect_uri": "http://localhost:3000/"}
        assert session.get() is None
        assert session.is_authenticated is False
        assert session.claims is None

    def test_without_stored_tokens(self, settings):
        settings.oauth2_post_logout_redirect_uri = None

        assert end_session(TokenSession(), settings) == "http://hydra.test/oauth2/sessions/logout"
