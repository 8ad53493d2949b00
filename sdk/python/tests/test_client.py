"""Tests for Devento SDK client"""

import pytest
import requests
from unittest.mock import Mock, patch

from devento.box import BoxHandle
from devento.client import DeventoClient
from devento.config import ClientConfig
from devento.exceptions import (
    APIError,
    AuthenticationError,
    InsufficientResourceError,
    RateLimitError,
    ResourceNotFoundError,
    ValidationError,
)
from devento.fields import UpdateField
from devento.models import (
    Box,
    BoxConfig,
    BoxStatus,
    CreateDomainRequest,
    DomainKind,
    DomainStatus,
    UpdateDomainRequest,
)


class TestDeventoClient:
    """Tests for DeventoClient construction and transport"""

    def test_init_from_config(self):
        """Test client initialization from a resolved config"""
        client = DeventoClient(config=ClientConfig(api_key="sk-devento-test123"))
        assert client.base_url == "https://api.devento.ai"
        assert client.api_key == "sk-devento-test123"
        assert client.timeout == 30.0

    def test_init_from_environment(self, monkeypatch):
        """Test API key and base URL resolved from the environment"""
        monkeypatch.setenv("DEVENTO_API_KEY", "sk-devento-env123")
        monkeypatch.setenv("DEVENTO_BASE_URL", "https://custom.devento.ai")
        client = DeventoClient()
        assert client.api_key == "sk-devento-env123"
        assert client.base_url == "https://custom.devento.ai"

    def test_explicit_arguments_override_config(self):
        """Test that constructor arguments win over the config"""
        client = DeventoClient(
            api_key="sk-devento-arg",
            base_url="https://option.devento.ai/",
            timeout=60,
            config=ClientConfig(api_key="sk-devento-cfg"),
        )
        assert client.api_key == "sk-devento-arg"
        assert client.base_url == "https://option.devento.ai"
        assert client.timeout == 60

    def test_missing_api_key(self, monkeypatch):
        """Test AuthenticationError when no key is available"""
        monkeypatch.delenv("DEVENTO_API_KEY", raising=False)
        with pytest.raises(AuthenticationError) as exc_info:
            DeventoClient()
        assert exc_info.value.status_code == 401
        assert "DEVENTO_API_KEY" in str(exc_info.value)

    def test_overrides_do_not_leak_into_shared_config(self):
        """Test constructor overrides leave the caller's config untouched"""
        shared = ClientConfig(api_key="sk-devento-shared")

        first = DeventoClient(api_key="sk-devento-first", timeout=5, config=shared)
        second = DeventoClient(config=shared)

        assert first.api_key == "sk-devento-first"
        assert first.timeout == 5
        assert shared.api_key == "sk-devento-shared"
        assert shared.http_timeout == 30.0
        assert second.api_key == "sk-devento-shared"
        assert second.timeout == 30.0

    def test_custom_session(self):
        """Test that a caller-supplied session is used"""
        session = requests.Session()
        client = DeventoClient(config=ClientConfig(api_key="k"), session=session)
        assert client.session is session

    def test_headers(self, client):
        """Test request headers"""
        headers = client._headers()
        assert headers["Content-Type"] == "application/json"
        assert headers["x-api-key"] == "test-api-key"
        assert headers["User-Agent"].startswith("devento-python-sdk/")

    @patch("requests.Session.request")
    def test_request_builds_versioned_url(self, mock_request, client, make_response):
        """Test _request prefixes the API version and sends JSON"""
        mock_request.return_value = make_response(200, {"id": "box-1"})

        result = client._request("POST", "/boxes", data={"cpu": 1})

        assert result == {"id": "box-1"}
        kwargs = mock_request.call_args.kwargs
        assert kwargs["method"] == "POST"
        assert kwargs["url"] == "https://api.test/api/v2/boxes"
        assert kwargs["json"] == {"cpu": 1}
        assert kwargs["timeout"] == 30.0

    @patch("requests.Session.request")
    def test_empty_body(self, mock_request, client, make_response):
        """Test that a 204 response decodes to an empty dict"""
        mock_request.return_value = make_response(204)
        assert client._request("DELETE", "/domains/dom_123") == {}

    @patch.object(DeventoClient, "_request")
    def test_create_box(self, mock_request, client):
        """Test create_box returns a queued handle"""
        mock_request.return_value = {"id": "box-123"}

        box = client.create_box(BoxConfig(cpu=2, mib_ram=2048, metadata={"env": "test"}))

        mock_request.assert_called_once_with(
            "POST",
            "/boxes",
            data={"cpu": 2, "mib_ram": 2048, "metadata": {"env": "test"}},
        )
        assert isinstance(box, BoxHandle)
        assert box.id == "box-123"
        assert box.status == BoxStatus.QUEUED

    @patch.object(DeventoClient, "_request")
    def test_create_box_defaults(self, mock_request, client):
        """Test create_box without a config sends an empty body"""
        mock_request.return_value = {"id": "box-1"}
        client.create_box()
        mock_request.assert_called_once_with("POST", "/boxes", data={})

    @patch.object(DeventoClient, "_request")
    def test_list_boxes(self, mock_request, client):
        """Test list_boxes method"""
        mock_request.return_value = {
            "data": [
                {"id": "box-1", "status": "running", "hostname": "a.deven.to"},
                {"id": "box-2", "status": "stopped"},
            ]
        }
        boxes = client.list_boxes()

        assert len(boxes) == 2
        assert all(isinstance(b, Box) for b in boxes)
        assert boxes[0].status == BoxStatus.RUNNING
        assert boxes[1].hostname == ""

    @patch.object(DeventoClient, "_request")
    def test_get_box(self, mock_request, client):
        """Test get_box wraps the box in a handle"""
        mock_request.return_value = {"data": {"id": "box-1", "status": "running"}}
        handle = client.get_box("box-1")

        mock_request.assert_called_once_with("GET", "/boxes/box-1")
        assert handle.status == BoxStatus.RUNNING


class TestDeventoClientErrors:
    """Tests for error handling in DeventoClient"""

    @patch("requests.Session.request")
    def test_auth_error(self, mock_request, client, make_response):
        """Test AuthenticationError on 401 response"""
        mock_request.return_value = make_response(401, {"error": "invalid api key"})

        with pytest.raises(AuthenticationError) as exc_info:
            client.list_boxes()
        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "invalid api key"

    @patch("requests.Session.request")
    def test_not_found_with_code(self, mock_request, client, make_response):
        """Test ResourceNotFoundError on 404 with a not-found code"""
        mock_request.return_value = make_response(
            404, {"error": "not found", "message": "Box not found", "code": "box_not_found"}
        )

        with pytest.raises(ResourceNotFoundError) as exc_info:
            client.get_box("missing")
        assert exc_info.value.code == "box_not_found"
        assert exc_info.value.message == "Box not found"

    @patch("requests.Session.request")
    def test_not_found_without_code(self, mock_request, client, make_response):
        """Test plain 404 falls back to APIError"""
        mock_request.return_value = make_response(404, {"error": "no route"})

        with pytest.raises(APIError) as exc_info:
            client.get_box("missing")
        assert exc_info.value.status_code == 404

    @patch("requests.Session.request")
    def test_rate_limit_error(self, mock_request, client, make_response):
        """Test RateLimitError on 429 response reads Retry-After"""
        mock_request.return_value = make_response(
            429, {"error": "rate limit exceeded"}, headers={"Retry-After": "30"}
        )

        with pytest.raises(RateLimitError) as exc_info:
            client.list_boxes()
        assert exc_info.value.retry_after == 30

    @patch("requests.Session.request")
    def test_validation_error(self, mock_request, client, make_response):
        """Test ValidationError on 400 with validation code"""
        mock_request.return_value = make_response(
            400, {"error": "bad", "message": "must be positive", "code": "validation_error", "field": "cpu"}
        )

        with pytest.raises(ValidationError) as exc_info:
            client.create_box(BoxConfig(cpu=-1))
        assert exc_info.value.field == "cpu"
        assert str(exc_info.value) == "Validation error on field 'cpu': must be positive"

    @patch("requests.Session.request")
    def test_insufficient_credits(self, mock_request, client, make_response):
        """Test InsufficientResourceError on 402"""
        mock_request.return_value = make_response(
            402, {"error": "payment required", "required": 10.5, "available": 5}
        )

        with pytest.raises(InsufficientResourceError) as exc_info:
            client.create_box()
        assert exc_info.value.required == 10.5
        assert exc_info.value.available == 5.0

    @patch("requests.Session.request")
    def test_unparseable_error_body(self, mock_request, client, make_response):
        """Test an HTML error page degrades to APIError with the raw text"""
        mock_request.return_value = make_response(502, text="<html>Bad Gateway</html>")

        with pytest.raises(APIError) as exc_info:
            client.list_boxes()
        assert exc_info.value.status_code == 502
        assert "<html>Bad Gateway</html>" in exc_info.value.message

    @patch("requests.Session.request")
    def test_conflict(self, mock_request, client, make_response):
        """Test 409 is reported as APIError with the status kept"""
        mock_request.return_value = make_response(409, {"error": "box is not running"})

        with pytest.raises(APIError) as exc_info:
            client.create_box()
        assert exc_info.value.status_code == 409
        assert exc_info.value.message == "box is not running"

    @patch("requests.Session.request")
    def test_timeout_propagates(self, mock_request, client):
        """Test transport timeouts are not rewrapped"""
        mock_request.side_effect = requests.exceptions.Timeout("timeout")

        with pytest.raises(requests.exceptions.Timeout):
            client.list_boxes()

    @patch("requests.Session.request")
    def test_connection_error_propagates(self, mock_request, client):
        """Test connection errors are not rewrapped"""
        mock_request.side_effect = requests.exceptions.ConnectionError("connection refused")

        with pytest.raises(requests.exceptions.ConnectionError):
            client.list_boxes()

    @patch("requests.Session.request")
    def test_stream_read_timeout(self, mock_request, client, make_response):
        """Test the stream's read timeout is passed alongside the connect timeout"""
        mock_request.return_value = make_response(200, {})

        client._stream("POST", "/boxes/box-1", data={"command": "ls"}, read_timeout=12)

        assert mock_request.call_args.kwargs["timeout"] == (30.0, 12)

    @patch("requests.Session.request")
    def test_stream_error_is_classified(self, mock_request, client, make_response):
        """Test a rejected stream request is classified and closed"""
        response = make_response(401, {"error": "invalid api key"})
        mock_request.return_value = response

        with pytest.raises(AuthenticationError):
            client._stream("POST", "/boxes/box-1", data={"command": "ls", "stream": True})
        response.close.assert_called_once()
        assert mock_request.call_args.kwargs["stream"] is True


class TestSandboxContext:
    """Tests for the sandbox() context manager"""

    @patch.object(BoxHandle, "stop")
    @patch.object(BoxHandle, "wait_until_ready")
    @patch.object(DeventoClient, "_request")
    def test_stops_box_on_exit(self, mock_request, mock_wait, mock_stop, client):
        """Test the box is stopped after the block"""
        mock_request.return_value = {"id": "box-1"}

        with client.sandbox(BoxConfig(cpu=1)) as box:
            assert box.id == "box-1"

        mock_wait.assert_called_once()
        mock_stop.assert_called_once()

    @patch.object(BoxHandle, "stop")
    @patch.object(BoxHandle, "wait_until_ready")
    @patch.object(DeventoClient, "_request")
    def test_stop_failure_does_not_mask_error(self, mock_request, mock_wait, mock_stop, client):
        """Test a failing stop is logged and the body's exception wins"""
        mock_request.return_value = {"id": "box-1"}
        mock_stop.side_effect = APIError(500, "boom")

        with pytest.raises(RuntimeError):
            with client.sandbox():
                raise RuntimeError("user code failed")

        mock_stop.assert_called_once()


class TestDomains:
    """Tests for domain management"""

    domain = {
        "id": "dom_123",
        "hostname": "app.deven.to",
        "slug": "app",
        "kind": "managed",
        "status": "active",
        "target_port": 4000,
        "box_id": "box_123",
        "verification_payload": {"cname": "app.deven.to"},
        "verification_errors": {},
        "inserted_at": "2024-01-15T10:30:00Z",
        "updated_at": "2024-01-15T10:30:00Z",
    }
    meta = {"managed_suffix": "deven.to", "cname_target": "edge.deven.to"}

    @patch.object(DeventoClient, "_request")
    def test_list_domains(self, mock_request, client):
        mock_request.return_value = {"data": [self.domain], "meta": self.meta}

        resp = client.list_domains()

        mock_request.assert_called_once_with("GET", "/domains")
        assert len(resp.data) == 1
        assert resp.data[0].kind == DomainKind.MANAGED
        assert resp.meta.managed_suffix == "deven.to"

    @patch.object(DeventoClient, "_request")
    def test_get_domain(self, mock_request, client):
        mock_request.return_value = {"data": self.domain, "meta": self.meta}

        resp = client.get_domain("dom_123")

        mock_request.assert_called_once_with("GET", "/domains/dom_123")
        assert resp.data.id == "dom_123"
        assert resp.meta.cname_target == "edge.deven.to"

    @patch.object(DeventoClient, "_request")
    def test_create_domain_omits_undefined_fields(self, mock_request, client):
        mock_request.return_value = {"data": self.domain, "meta": self.meta}

        client.create_domain(
            CreateDomainRequest(kind=DomainKind.MANAGED, slug="app", target_port=4000, box_id="box_123")
        )

        payload = mock_request.call_args.kwargs["data"]
        assert payload == {"kind": "managed", "slug": "app", "target_port": 4000, "box_id": "box_123"}
        assert "hostname" not in payload

    @patch.object(DeventoClient, "_request")
    def test_update_domain_supports_null(self, mock_request, client):
        mock_request.return_value = {"data": self.domain, "meta": self.meta}

        client.update_domain(
            "dom_123",
            UpdateDomainRequest(
                status=UpdateField.of(DomainStatus.ACTIVE),
                target_port=UpdateField.null(),
                box_id=UpdateField.null(),
            ),
        )

        method, path = mock_request.call_args.args
        assert (method, path) == ("PATCH", "/domains/dom_123")
        assert mock_request.call_args.kwargs["data"] == {
            "status": "active",
            "target_port": None,
            "box_id": None,
        }

    @patch.object(DeventoClient, "_request")
    def test_delete_domain(self, mock_request, client):
        mock_request.return_value = {}
        assert client.delete_domain("dom_123") is None
        mock_request.assert_called_once_with("DELETE", "/domains/dom_123")

    def test_create_domain_requires_request(self, client):
        with pytest.raises(ValidationError):
            client.create_domain(None)

    def test_update_domain_requires_request(self, client):
        with pytest.raises(ValidationError):
            client.update_domain("dom_123", None)
