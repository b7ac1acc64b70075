"""Unit tests for the wire-level models."""

import pytest
from pydantic import ValidationError

from wealthify_core.runtime.models import ApiEnvelope, ApiRequest, SendOptions, TokenPair, TransportResponse


class TestApiRequest:
    """Tests for ApiRequest."""

    def test_defaults(self):
        request = ApiRequest(path="/accounts")

        assert request.method == "GET"
        assert request.headers == {}
        assert request.body is None
        assert request.auth_retried is False
        assert len(request.request_id) == 9

    def test_method_is_upper_cased(self):
        assert ApiRequest(method="patch", path="/budgets/1").method == "PATCH"

    def test_request_ids_are_unique(self):
        assert ApiRequest(path="/a").request_id != ApiRequest(path="/a").request_id

    def test_with_bearer_adds_header(self):
        request = ApiRequest(path="/accounts", headers={"X-Trace": "1"})

        signed = request.with_bearer("C1")

        assert signed.headers == {"X-Trace": "1", "Authorization": "Bearer C1"}
        assert request.headers == {"X-Trace": "1"}

    def test_with_bearer_replaces_existing_header(self):
        request = ApiRequest(path="/accounts", headers={"authorization": "Bearer old"})

        assert request.with_bearer("C2").headers == {"Authorization": "Bearer C2"}

    def test_with_bearer_none_strips_header(self):
        request = ApiRequest(path="/accounts", headers={"Authorization": "Bearer old"})

        assert request.with_bearer(None).headers == {}


class TestSendOptions:
    def test_defaults_to_method_rule(self):
        assert SendOptions().retryable is None

    def test_is_frozen(self):
        options = SendOptions(retryable=True)
        with pytest.raises(ValidationError):
            options.retryable = False


class TestTransportResponse:
    @pytest.mark.parametrize(("status", "expected"), [(200, True), (204, True), (301, False), (401, False)])
    def test_is_success(self, status, expected):
        assert TransportResponse(status=status).is_success is expected


class TestApiEnvelope:
    """Tests for the response envelope."""

    def test_list_envelope_with_pagination(self):
        envelope = ApiEnvelope[list].model_validate(
            {
                "success": True,
                "message": "Accounts retrieved",
                "data": [{"id": 1}],
                "pagination": {"page": 1, "pageSize": 10, "totalItems": 1, "totalPages": 1},
                "timestamp": "2024-01-01T00:00:00Z",
            }
        )

        assert envelope.data == [{"id": 1}]
        assert envelope.pagination.page_size == 10
        assert envelope.pagination.has_next_page is None

    def test_requires_success_flag(self):
        with pytest.raises(ValidationError):
            ApiEnvelope[dict].model_validate({"data": {}})


class TestTokenPair:
    """Tests for credential parsing."""

    @pytest.mark.parametrize(
        "payload",
        [
            {"accessToken": "A", "refreshToken": "R"},
            {"access_token": "A", "refresh_token": "R"},
            {"token": "A", "refreshToken": "R"},
        ],
    )
    def test_accepts_server_spellings(self, payload):
        pair = TokenPair.model_validate(payload)

        assert pair.access_token == "A"
        assert pair.refresh_token == "R"

    def test_refresh_token_is_optional(self):
        assert TokenPair.model_validate({"accessToken": "A"}).refresh_token is None

    def test_rejects_empty_access_token(self):
        with pytest.raises(ValidationError):
            TokenPair.model_validate({"accessToken": ""})
