"""
restlayer — Response Instrumentation Tests
===========================================

What we test:
    ✅ Default statuses (200 for json/send, 302 for redirect)
    ✅ Explicit status is recorded and sticky across later sends
    ✅ Last call wins for status, payload and redirect target
    ✅ Calls reach the wrapped writer with unchanged arguments
    ✅ Chaining returns the recorder, other return values pass through
    ✅ The rendered response is unaffected by instrumentation
    ✅ Recorded status matches the wire (header chains, earlier status, redirects)
"""

import json
from unittest.mock import MagicMock

import pytest

from restlayer.context import ResponseRecord
from restlayer.http import ResponseWriter
from restlayer.middleware.instrumentation import ResponseRecorder


def recorder_over_writer():
    record = ResponseRecord()
    writer = ResponseWriter()
    return ResponseRecorder(writer, record), writer, record


class TestDefaults:

    def test_json_without_status_records_200(self):
        recorder, _, record = recorder_over_writer()
        recorder.json({"a": 1})
        assert record.status_code == 200
        assert record.payload == {"a": 1}

    def test_send_without_status_records_200_and_wraps_text(self):
        recorder, _, record = recorder_over_writer()
        recorder.send("hello")
        assert record.status_code == 200
        assert record.payload == {"text": "hello"}

    def test_redirect_without_status_records_302(self):
        recorder, writer, record = recorder_over_writer()
        recorder.redirect("/login")
        assert record.status_code == 302
        assert record.redirect_path == "/login"
        assert writer.to_response().status_code == 302

    def test_status_alone_is_recorded(self):
        recorder, _, record = recorder_over_writer()
        recorder.status(404)
        assert record.status_code == 404
        assert record.payload is None


class TestChaining:

    def test_status_then_json(self):
        recorder, writer, record = recorder_over_writer()
        result = recorder.status(201).json({"id": 7})
        assert result is recorder
        assert record.status_code == 201
        assert record.payload == {"id": 7}
        assert writer.to_response().status_code == 201

    def test_status_then_send(self):
        recorder, _, record = recorder_over_writer()
        recorder.status(400).send("bad")
        assert record.status_code == 400
        assert record.payload == {"text": "bad"}

    def test_status_then_redirect(self):
        recorder, writer, record = recorder_over_writer()
        recorder.status(301).redirect("/moved")
        assert record.status_code == 301
        assert record.redirect_path == "/moved"
        response = writer.to_response()
        assert response.status_code == 301
        assert response.headers["location"] == "/moved"

    def test_explicit_status_sticks_for_later_sends(self):
        recorder, _, record = recorder_over_writer()
        recorder.status(202)
        recorder.json({"first": True})
        recorder.json({"second": True})
        assert record.status_code == 202
        assert record.payload == {"second": True}


class TestLastCallWins:

    @pytest.mark.parametrize(
        "calls, status, payload, redirect_path",
        [
            ([("json", {"a": 1}), ("send", "raw")], 200, {"text": "raw"}, None),
            ([("send", "raw"), ("json", {"b": 2})], 200, {"b": 2}, None),
            ([("status", 500), ("json", {"c": 3}), ("status", 418)], 418, {"c": 3}, None),
            ([("redirect", "/a"), ("redirect", "/b")], 302, None, "/b"),
            ([("status", 307), ("redirect", "/a"), ("json", {"d": 4})], 307, {"d": 4}, "/a"),
        ],
    )
    def test_sequence(self, calls, status, payload, redirect_path):
        recorder, _, record = recorder_over_writer()
        for name, arg in calls:
            getattr(recorder, name)(arg)
        assert record.status_code == status
        assert record.payload == payload
        assert record.redirect_path == redirect_path


class TestPassThrough:

    def test_arguments_reach_wrapped_writer_unchanged(self):
        inner = MagicMock()
        recorder = ResponseRecorder(inner, ResponseRecord())
        body = {"nested": [1, 2, 3]}

        recorder.status(201)
        recorder.json(body)
        recorder.send(b"bytes")
        recorder.redirect("/x")

        inner.status.assert_called_once_with(201)
        inner.json.assert_called_once_with(body)
        assert inner.json.call_args.args[0] is body
        inner.send.assert_called_once_with(b"bytes")
        inner.redirect.assert_called_once_with("/x")

    def test_foreign_return_values_are_passed_back(self):
        inner = MagicMock()
        inner.json.return_value = "sentinel"
        recorder = ResponseRecorder(inner, ResponseRecord())
        assert recorder.json({}) == "sentinel"

    def test_payload_is_not_mutated(self):
        recorder, _, record = recorder_over_writer()
        body = {"items": [1, 2]}
        recorder.json(body)
        assert body == {"items": [1, 2]}
        assert record.payload is body

    def test_rendered_response_matches_uninstrumented_writer(self):
        recorder, writer, _ = recorder_over_writer()
        plain = ResponseWriter()

        recorder.status(201).header("x-extra", "1").json({"id": 1})
        plain.status(201).header("x-extra", "1").json({"id": 1})

        instrumented = writer.to_response()
        reference = plain.to_response()
        assert instrumented.status_code == reference.status_code
        assert instrumented.body == reference.body
        assert json.loads(instrumented.body) == {"id": 1}
        assert instrumented.headers["x-extra"] == "1"

    def test_unintercepted_attributes_are_delegated(self):
        recorder, writer, _ = recorder_over_writer()
        assert recorder.touched is False
        recorder.status(204)
        assert recorder.touched is True
        assert recorder.status_code == writer.status_code == 204


class TestWireAgreement:

    def test_header_keeps_chain_instrumented(self):
        recorder, writer, record = recorder_over_writer()
        result = recorder.header("x-custom", "1").status(418).json({"teapot": True})
        assert result is recorder
        assert record.status_code == 418
        assert record.payload == {"teapot": True}
        assert writer.to_response().headers["x-custom"] == "1"

    def test_status_set_before_recorder_is_reported(self):
        writer = ResponseWriter()
        writer.status(201)
        record = ResponseRecord()
        recorder = ResponseRecorder(writer, record)
        assert record.status_code == 201

        recorder.json({"ok": True})
        assert record.status_code == 201
        assert writer.to_response().status_code == 201

    def test_untouched_writer_leaves_record_empty(self):
        record = ResponseRecord()
        ResponseRecorder(ResponseWriter(), record)
        assert record.status_code is None

    @pytest.mark.parametrize("method, body", [("json", {"a": 1}), ("send", "text")])
    def test_send_after_redirect_keeps_redirect_status(self, method, body):
        recorder, writer, record = recorder_over_writer()
        recorder.redirect("/x")
        getattr(recorder, method)(body)
        assert record.status_code == writer.to_response().status_code == 302

    @pytest.mark.parametrize("body", [{"a": 1}, [1, 2]])
    def test_send_structured_body_is_recorded_as_json(self, body):
        recorder, writer, record = recorder_over_writer()
        recorder.send(body)
        assert record.payload == body
        assert json.loads(writer.to_response().body) == body


class TestLiveRecording:

    @staticmethod
    def completion(log_trace):
        return [r for r in log_trace.records if r.getMessage() == "Request completed"][0]

    @pytest.mark.asyncio
    async def test_header_chain_in_route(self, server, api_client, log_trace):
        async def handler(request, response):
            response.header("x-custom", "1").status(418).json({"teapot": True})

        server.add_route("GET", "/teapot", handler)

        async with api_client(server) as client:
            response = await client.get("/teapot")

        assert response.status_code == 418
        assert self.completion(log_trace).status_code == 418
        assert self.completion(log_trace).payload == {"teapot": True}

    @pytest.mark.asyncio
    async def test_status_from_pre_route_middleware(self, server, api_client, log_trace):
        async def created(request, response, call_next):
            response.status(201)
            await call_next()

        async def handler(request, response):
            response.json({"ok": True})

        server.add_pre_route_middleware(created)
        server.add_route("POST", "/things", handler)

        async with api_client(server) as client:
            response = await client.post("/things", json={})

        assert response.status_code == 201
        assert self.completion(log_trace).status_code == 201

    @pytest.mark.asyncio
    async def test_json_after_redirect(self, server, api_client, log_trace):
        async def handler(request, response):
            response.redirect("/x")
            response.json({"a": 1})

        server.add_route("GET", "/moved", handler)

        async with api_client(server) as client:
            response = await client.get("/moved")

        assert response.status_code == 302
        completed = self.completion(log_trace)
        assert completed.status_code == 302
        assert completed.redirect_path == "/x"
        assert completed.payload == {"a": 1}
