import logging
import threading
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests

from sensorwatch.frontend.bindings import CollectionBinding
from sensorwatch.frontend.cache import QueryCache
from sensorwatch.frontend.constraints import limit, order_by, where
from sensorwatch.frontend.gateway import Gateway, RemoteError, Subscription


def make_response(status=200, payload=None):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = payload
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return response


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def client(session):
    return Gateway(base_url="http://api.test/", timeout=3, session=session, watch_interval=0.01)


class TestGateway:
    def test_read_one(self, client, session):
        session.request.return_value = make_response(payload={"id": "a", "name": "A"})

        assert client.read_one("devices", "a") == {"id": "a", "name": "A"}
        session.request.assert_called_once_with(
            "GET", "http://api.test/api/documents/a", timeout=3, params={"collection": "devices"},
        )

    def test_read_one_missing_is_none(self, client, session):
        session.request.return_value = make_response(status=404)
        assert client.read_one("devices", "nope") is None

    def test_read_many_payload(self, client, session):
        session.request.return_value = make_response(payload=[{"id": "r1"}])

        result = client.read_many("devices/a/readings", [order_by("ts", "desc"), limit(1)])

        assert result == [{"id": "r1"}]
        session.request.assert_called_once_with(
            "POST", "http://api.test/api/query", timeout=3, json={
                "collection": "devices/a/readings",
                "constraints": [
                    {"type": "orderBy", "field": "ts", "direction": "desc"},
                    {"type": "limit", "count": 1},
                ],
            },
        )

    def test_create_returns_id(self, client, session):
        session.request.return_value = make_response(payload={"id": "new-id"})
        assert client.create("devices", {"name": "A"}) == "new-id"

    def test_update_sends_patch(self, client, session):
        session.request.return_value = make_response(payload={"status": "updated"})
        client.update("devices", "a", {"name": "B"})
        method, url = session.request.call_args.args
        assert method == "PATCH"
        assert url == "http://api.test/api/documents/a"
        assert session.request.call_args.kwargs["json"] == {"name": "B"}

    def test_delete_missing_is_not_an_error(self, client, session):
        session.request.return_value = make_response(status=404)
        client.delete("devices", "gone")

    def test_server_error_raises_remote_error(self, client, session):
        session.request.return_value = make_response(status=500)
        with pytest.raises(RemoteError):
            client.read_many("devices")

    def test_update_missing_raises(self, client, session):
        session.request.return_value = make_response(status=404)
        with pytest.raises(RemoteError):
            client.update("devices", "gone", {"name": "B"})

    def test_network_error_is_wrapped(self, client, session, caplog):
        error = requests.ConnectionError("connection refused")
        session.request.side_effect = error

        with caplog.at_level(logging.ERROR):
            with pytest.raises(RemoteError) as excinfo:
                client.read_one("devices", "a")

        assert excinfo.value.cause is error
        assert "connection refused" in excinfo.value.message
        assert "Error calling GET" in caplog.text


class TestSubscription:
    def test_delivers_first_result_and_changes_only(self):
        results = iter([[1], [1], [2], [2]])
        received = []
        done = threading.Event()

        def fetch():
            try:
                return next(results)
            except StopIteration:
                done.set()
                return [2]

        subscription = Subscription(fetch, received.append, 0.001, "test").start()
        assert done.wait(2)
        subscription.unsubscribe()

        assert received == [[1], [2]]

    def test_errors_are_logged_and_polling_continues(self, caplog):
        calls = []
        received = []
        delivered = threading.Event()

        def fetch():
            calls.append(1)
            if len(calls) == 1:
                raise RemoteError("boom")
            return ["ok"]

        def on_change(result):
            received.append(result)
            delivered.set()

        with caplog.at_level(logging.ERROR):
            subscription = Subscription(fetch, on_change, 0.001, "devices").start()
            assert delivered.wait(2)
            subscription.unsubscribe()

        assert received == [["ok"]]
        assert "Error in subscription to devices: boom" in caplog.text

    def test_no_delivery_after_unsubscribe(self):
        received = []
        first = threading.Event()

        def on_change(result):
            received.append(result)
            first.set()

        counter = iter(range(1000000))
        subscription = Subscription(lambda: next(counter), on_change, 0.001, "test").start()
        assert first.wait(2)
        subscription.unsubscribe()
        delivered = len(received)

        assert not subscription.active
        threading.Event().wait(0.05)
        assert len(received) == delivered

    def test_gateway_watch_document(self, client, session):
        session.request.return_value = make_response(payload={"id": "a", "name": "A"})
        received = []
        delivered = threading.Event()

        def on_change(result):
            received.append(result)
            delivered.set()

        subscription = client.watch_document("devices", "a", on_change)
        assert delivered.wait(2)
        subscription.unsubscribe()

        assert received[0] == {"id": "a", "name": "A"}


class TestGatewayFailures:
    def test_non_json_body_is_remote_error(self, client, session):
        response = make_response(payload=None)
        response.json.side_effect = requests.exceptions.JSONDecodeError("Expecting value", "<html>proxy</html>", 0)
        session.request.return_value = response

        with pytest.raises(RemoteError) as excinfo:
            client.read_many("devices")
        assert isinstance(excinfo.value.cause, ValueError)

    def test_create_without_id_is_remote_error(self, client, session):
        session.request.return_value = make_response(payload={"status": "ok"})
        with pytest.raises(RemoteError):
            client.create("devices", {"name": "A"})

    def test_datetime_filter_is_sent_as_iso(self, client, session):
        session.request.return_value = make_response(payload=[])
        since = datetime(2024, 1, 1, tzinfo=timezone.utc)

        client.read_many("devices/a/readings", [where("ts", ">=", since)])

        sent = session.request.call_args.kwargs["json"]["constraints"]
        assert sent == [{"type": "where", "field": "ts", "op": ">=", "value": "2024-01-01T00:00:00+00:00"}]

    def test_binding_reports_non_json_body(self, client, session):
        response = make_response(payload=None)
        response.json.side_effect = requests.exceptions.JSONDecodeError("Expecting value", "<html>proxy</html>", 0)
        session.request.return_value = response

        binding = CollectionBinding(client, QueryCache()).bind("devices")

        assert binding.error is not None
        assert binding.loading is False
        assert binding.data == []

    def test_binding_with_datetime_filter(self, client, session):
        session.request.return_value = make_response(payload=[{"id": "r1"}])
        since = datetime(2024, 1, 1, tzinfo=timezone.utc)

        binding = CollectionBinding(client, QueryCache()).bind("devices/a/readings", [where("ts", ">=", since)])

        assert binding.error is None
        assert binding.data == [{"id": "r1"}]

    def test_subscription_survives_non_json_body(self, client, session):
        bad = make_response(payload=None)
        bad.json.side_effect = requests.exceptions.JSONDecodeError("Expecting value", "<html>proxy</html>", 0)
        good = make_response(payload=[{"id": "a"}])
        responses = iter([bad, bad])
        session.request.side_effect = lambda *args, **kwargs: next(responses, good)
        received = []
        delivered = threading.Event()

        def on_change(result):
            received.append(result)
            delivered.set()

        subscription = client.watch_collection("devices", [], on_change)
        assert delivered.wait(2)
        subscription.unsubscribe()

        assert received == [[{"id": "a"}]]
