"""
Middleware Stack - Body Parser Tests
=====================================

Test Strategy:
    ✅ Resolution: configured factory, explicit False, default
    ✅ Error funnel: detail in development, empty in production,
       detail again with keep_response_errors
    ✅ Default parser: JSON, urlencoded forms, text, empty bodies, size limit
    ✅ Raw body is replayable for downstream ASGI apps
"""

import json
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from middleware_stack.config import StackConfig
from middleware_stack.exceptions import BodyParseError
from middleware_stack.http import RAW_BODY_KEY, replay_receive
from middleware_stack.middleware.body_parser import (
    build_body_parser,
    make_error_funnel,
    parse_body,
)

JSON = {"content-type": "application/json"}


class TestResolution:

    def test_configured_factory_gets_funnel(self, dev_environment):
        parser = object()
        factory = MagicMock(return_value=parser)
        config = StackConfig(http={"bodyParser": factory})

        assert build_body_parser(config, dev_environment) is parser
        factory.assert_called_once()
        assert callable(factory.call_args.kwargs["on_body_parser_error"])

    def test_explicitly_disabled(self, dev_environment):
        config = StackConfig(http={"bodyParser": False})
        assert build_body_parser(config, dev_environment) is None

    @pytest.mark.asyncio
    async def test_default_parser(self, dev_environment, exchange):
        middleware = build_body_parser(StackConfig(), dev_environment)
        ex = exchange("POST", "/", headers=JSON, body=b'{"name": "sails"}')

        await middleware(ex.request, ex.response, ex.proceed)

        ex.proceed.assert_awaited_once_with()
        assert ex.request.state.body == {"name": "sails"}


class TestErrorFunnel:

    @pytest.mark.asyncio
    async def test_development_sends_details(self, dev_environment, exchange, caplog):
        funnel = make_error_funnel(StackConfig(), dev_environment)
        ex = exchange("POST", "/")

        with caplog.at_level(logging.ERROR):
            await funnel(ValueError("bad token"), ex.request, ex.response, ex.proceed)

        assert ex.status == 400
        assert ex.body.startswith(b"Unable to parse HTTP body- error occurred :: ")
        assert b"bad token" in ex.body
        assert "bad token" in caplog.text
        ex.proceed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_production_hides_details(self, prod_environment, exchange, caplog):
        funnel = make_error_funnel(StackConfig(), prod_environment)
        ex = exchange("POST", "/")

        with caplog.at_level(logging.ERROR):
            await funnel(ValueError("bad token"), ex.request, ex.response, ex.proceed)

        assert ex.status == 400
        assert ex.body == b""
        assert "bad token" in caplog.text

    @pytest.mark.asyncio
    async def test_production_keeps_details_on_request(self, prod_environment, exchange):
        funnel = make_error_funnel(StackConfig(keep_response_errors=True), prod_environment)
        ex = exchange("POST", "/")

        await funnel(ValueError("bad token"), ex.request, ex.response, ex.proceed)

        assert ex.status == 400
        assert b"bad token" in ex.body

    @pytest.mark.asyncio
    async def test_no_second_response(self, dev_environment, exchange):
        funnel = make_error_funnel(StackConfig(), dev_environment)
        ex = exchange("POST", "/")
        await ex.response.send("already answered")

        await funnel(ValueError("bad token"), ex.request, ex.response, ex.proceed)

        assert len(ex.starts) == 1
        assert ex.body == b"already answered"


class TestDefaultParser:

    @pytest.mark.asyncio
    async def test_invalid_json_goes_to_funnel(self, exchange):
        on_error = AsyncMock()
        ex = exchange("POST", "/", headers=JSON, body=b'{"name": ')

        await parse_body(on_body_parser_error=on_error)(ex.request, ex.response, ex.proceed)

        ex.proceed.assert_not_awaited()
        error, request, response, proceed = on_error.await_args.args
        assert isinstance(error, BodyParseError)
        assert "Invalid JSON" in error.message
        assert request is ex.request and response is ex.response

    @pytest.mark.asyncio
    async def test_invalid_json_without_funnel_proceeds_with_error(self, exchange):
        ex = exchange("POST", "/", headers=JSON, body=b"nope")

        await parse_body()(ex.request, ex.response, ex.proceed)

        error = ex.proceed.await_args.args[0]
        assert isinstance(error, BodyParseError)

    @pytest.mark.asyncio
    async def test_urlencoded_form(self, exchange):
        ex = exchange(
            "POST", "/",
            headers={"content-type": "application/x-www-form-urlencoded"},
            body=b"name=sails&tag=a&tag=b",
        )

        await parse_body()(ex.request, ex.response, ex.proceed)

        form = ex.request.state.body
        assert form["name"] == "sails"
        assert form.getlist("tag") == ["a", "b"]

    @pytest.mark.asyncio
    async def test_text_body(self, exchange):
        ex = exchange("POST", "/", headers={"content-type": "text/plain"}, body=b"hello")

        await parse_body()(ex.request, ex.response, ex.proceed)

        assert ex.request.state.body == "hello"

    @pytest.mark.asyncio
    async def test_empty_body(self, exchange):
        ex = exchange("GET", "/")

        await parse_body()(ex.request, ex.response, ex.proceed)

        assert ex.request.state.body == {}
        ex.proceed.assert_awaited_once_with()

    @pytest.mark.asyncio
    async def test_declared_length_over_limit(self, exchange):
        on_error = AsyncMock()
        ex = exchange("POST", "/", headers={**JSON, "content-length": "2048"}, body=b"{}")

        await parse_body(on_body_parser_error=on_error, limit=1024)(
            ex.request, ex.response, ex.proceed
        )

        error = on_error.await_args.args[0]
        assert error.message == "Request entity too large"
        assert error.context["limit"] == 1024

    @pytest.mark.asyncio
    async def test_actual_length_over_limit(self, exchange):
        on_error = AsyncMock()
        payload = json.dumps({"data": "x" * 100}).encode()
        ex = exchange("POST", "/", headers={**JSON, "content-length": "10"}, body=payload)

        await parse_body(on_body_parser_error=on_error, limit=50)(
            ex.request, ex.response, ex.proceed
        )

        assert on_error.await_args.args[0].message == "Request entity too large"

    @pytest.mark.asyncio
    async def test_raw_body_replayed(self, exchange):
        ex = exchange("POST", "/", headers=JSON, body=b'{"a": 1}')

        await parse_body()(ex.request, ex.response, ex.proceed)

        assert ex.request.scope[RAW_BODY_KEY] == b'{"a": 1}'
        message = await replay_receive(ex.request)()
        assert message == {"type": "http.request", "body": b'{"a": 1}', "more_body": False}
