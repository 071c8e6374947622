"""Tests for the exchange state machine and tracker."""

import logging

import httpx
import pytest

from reqdebug import (
    AuthEvent,
    DebugLog,
    ExchangeState,
    ExchangeTracker,
    RedirectEvent,
    RequestEvent,
    ResponseEvent,
    UnexpectedEventOrder,
)
from reqdebug.tracker import Exchange, advance, close, fail


def request(uri="http://localhost/a", **headers):
    return RequestEvent(uri=uri, method="GET", headers=headers)


def response(status=200):
    return ResponseEvent(status_code=status, headers={"Content-Length": "2"}, body="ok")


def redirect(uri="http://localhost/b"):
    return RedirectEvent(status_code=302, headers={"Location": "/b"}, uri=uri)


def challenge(uri="http://localhost/a"):
    return AuthEvent(status_code=401, headers={"WWW-Authenticate": 'Digest realm="x"'}, uri=uri)


@pytest.fixture
def exchange():
    return Exchange(exchange_id="exchange-1", origin="GET http://localhost/a")


class TestAdvance:
    """The reducer is pure: inputs are never modified."""

    def test_request_then_response(self, exchange):
        first = advance(exchange, request())
        assert first.exchange.state is ExchangeState.PENDING
        assert first.exchange.current_uri == "http://localhost/a"
        assert exchange.state is ExchangeState.START
        assert exchange.events == ()

        final = advance(first.exchange, response())
        assert final.exchange.state is ExchangeState.COMPLETED
        assert final.exchange.terminal
        assert final.append.kind == "response"
        assert [e.kind for e in final.exchange.events] == ["request", "response"]

    def test_redirect_cycle(self, exchange):
        state = advance(exchange, request()).exchange
        hop = advance(state, redirect())
        assert hop.exchange.state is ExchangeState.REDIRECTING
        assert hop.exchange.redirect_target == "http://localhost/b"

        follow = advance(hop.exchange, request("http://localhost/b"))
        assert follow.exchange.state is ExchangeState.PENDING
        assert follow.exchange.redirect_target is None
        assert follow.exchange.current_uri == "http://localhost/b"

    def test_challenge_cycle(self, exchange):
        state = advance(exchange, request()).exchange
        state = advance(state, challenge()).exchange
        assert state.state is ExchangeState.CHALLENGED
        assert not state.credentials_sent

        state = advance(state, request(authorization="Digest username=\"u\"")).exchange
        assert state.state is ExchangeState.PENDING
        assert state.credentials_sent

    @pytest.mark.parametrize("event", [response(), redirect(), challenge()])
    def test_answer_without_request(self, exchange, event):
        with pytest.raises(UnexpectedEventOrder) as excinfo:
            advance(exchange, event)
        assert excinfo.value.state == "start"
        assert excinfo.value.kind == event.kind

    def test_second_request_while_pending(self, exchange):
        state = advance(exchange, request()).exchange
        with pytest.raises(UnexpectedEventOrder, match="unanswered"):
            advance(state, request())

    def test_redirect_while_redirecting(self, exchange):
        state = advance(exchange, request()).exchange
        state = advance(state, redirect()).exchange
        with pytest.raises(UnexpectedEventOrder):
            advance(state, redirect())

    @pytest.mark.parametrize("event", [request(), response(), redirect(), challenge()])
    def test_terminal_states_accept_nothing(self, exchange, event):
        done = advance(advance(exchange, request()).exchange, response()).exchange
        with pytest.raises(UnexpectedEventOrder, match="already finished"):
            advance(done, event)
        with pytest.raises(UnexpectedEventOrder):
            advance(fail(exchange, OSError("boom")), event)

    def test_fail_and_close(self, exchange):
        failed = fail(exchange, httpx.ConnectError("refused"))
        assert failed.state is ExchangeState.FAILED
        assert failed.error == "ConnectError: refused"

        challenged = advance(advance(exchange, request()).exchange, challenge()).exchange
        assert close(challenged).state is ExchangeState.COMPLETED
        pending = advance(exchange, request()).exchange
        assert close(pending) is pending


class TestExchangeTracker:

    @pytest.fixture
    def log(self):
        return DebugLog()

    @pytest.fixture
    def tracker(self, log):
        return ExchangeTracker(log)

    def begin(self, tracker):
        return tracker.begin(httpx.Request("GET", "http://localhost/a"))

    def test_begin_allocates_distinct_ids(self, tracker):
        first = self.begin(tracker)
        second = self.begin(tracker)

        assert first != second
        assert tracker.in_flight() == [first, second]
        assert tracker.snapshot(first).origin == "GET http://localhost/a"
        assert tracker.snapshot(first).state is ExchangeState.START

    def test_dispatch_appends_accepted_events(self, tracker, log):
        exchange_id = self.begin(tracker)
        tracker.dispatch(exchange_id, request())
        tracker.dispatch(exchange_id, response())

        assert [e.kind for e in log.events()] == ["request", "response"]
        assert log.exchange_ids() == [exchange_id]

        finished = tracker.finish(exchange_id)
        assert finished.state is ExchangeState.COMPLETED
        assert tracker.in_flight() == []
        assert tracker.history == [finished]

    def test_protocol_violation_is_a_warning(self, tracker, log, caplog):
        exchange_id = self.begin(tracker)
        tracker.dispatch(exchange_id, request())
        tracker.dispatch(exchange_id, response())

        with caplog.at_level(logging.WARNING, logger="reqdebug.tracker"):
            result = tracker.dispatch(exchange_id, response())

        assert result.state is ExchangeState.COMPLETED
        assert len(log) == 2
        assert "unexpected 'response' event in state completed" in caplog.text

    def test_unknown_exchange(self, tracker, log, caplog):
        with caplog.at_level(logging.WARNING, logger="reqdebug.tracker"):
            assert tracker.dispatch("missing", request()) is None
        assert len(log) == 0
        assert "unknown exchange missing" in caplog.text

    def test_redirect_target_mismatch_is_reported(self, tracker, log, caplog):
        exchange_id = self.begin(tracker)
        tracker.dispatch(exchange_id, request())
        tracker.dispatch(exchange_id, redirect("http://localhost/b"))

        with caplog.at_level(logging.WARNING, logger="reqdebug.tracker"):
            tracker.dispatch(exchange_id, request("http://localhost/c"))

        assert "redirect announced http://localhost/b" in caplog.text
        assert len(log) == 3

    def test_fail_appends_nothing(self, tracker, log):
        exchange_id = self.begin(tracker)
        tracker.dispatch(exchange_id, request())
        failed = tracker.fail(exchange_id, httpx.ReadTimeout("slow"))

        assert failed.state is ExchangeState.FAILED
        assert [e.kind for e in log.events()] == ["request"]
        assert tracker.dispatch(exchange_id, response()) is None

    def test_fail_after_completion_keeps_state(self, tracker):
        exchange_id = self.begin(tracker)
        tracker.dispatch(exchange_id, request())
        tracker.dispatch(exchange_id, response())

        assert tracker.fail(exchange_id, httpx.ReadError("reset")).state is ExchangeState.COMPLETED

    def test_finish_unanswered_exchange_warns(self, tracker, caplog):
        exchange_id = self.begin(tracker)
        tracker.dispatch(exchange_id, request())

        with caplog.at_level(logging.WARNING, logger="reqdebug.tracker"):
            finished = tracker.finish(exchange_id)

        assert finished.state is ExchangeState.PENDING
        assert "without a final answer" in caplog.text

    def test_clearing_the_log_keeps_tracking(self, tracker, log):
        exchange_id = self.begin(tracker)
        tracker.dispatch(exchange_id, request())
        log.clear()
        tracker.dispatch(exchange_id, response())

        assert [e.kind for e in log.events()] == ["response"]
        assert tracker.snapshot(exchange_id).state is ExchangeState.COMPLETED

    def test_history_is_bounded(self, log):
        tracker = ExchangeTracker(log, max_history=3)
        for _ in range(5):
            exchange_id = self.begin(tracker)
            tracker.finish(exchange_id)

        assert len(tracker.history) == 3
