"""End-to-end tests of the hypermedia engine against a fake server."""

import asyncio
import json

import httpx
import pytest

from hxengine import Document, EngineSettings, HypermediaEngine
from tests.helpers import BASE_URL, EventLog, FakeServer, page

PIPELINE = ["before-request", "after-request", "before-swap", "after-swap", "after-settle"]


def text_of(engine: HypermediaEngine, element_id: str) -> str:
    return engine.document.get_by_id(element_id).get_text()


# =============================================================================
# Triggers and synchronization
# =============================================================================


class TestTriggersAndSync:
    @pytest.mark.asyncio
    async def test_debounced_search_sends_latest_value_once(self, server: FakeServer, make_engine):
        server.handle("GET", "/search", lambda r: httpx.Response(200, text=f"<p>{r.url.params['q']}</p>"))
        engine = make_engine(
            '<input id="q" name="q" hx-get="/search" hx-trigger="keyup changed delay:50ms" hx-target="#results">'
            '<div id="results"></div>'
        )
        field = engine.document.get_by_id("q")
        for typed in ("c", "ca", "cat"):
            engine.document.set_value(field, typed)
            engine.dispatch(field, "keyup")
            await asyncio.sleep(0.01)
        await engine.wait_idle()

        assert len(server.requests) == 1
        assert server.requests[0].url.params["q"] == "cat"
        assert text_of(engine, "results") == "cat"

    @pytest.mark.asyncio
    async def test_unchanged_value_does_not_refire(self, server: FakeServer, make_engine):
        server.route("GET", "/search", "<p>hit</p>")
        engine = make_engine(
            '<input id="q" name="q" value="cat" hx-get="/search" hx-trigger="keyup changed" hx-target="#results">'
            '<div id="results"></div>'
        )
        field = engine.document.get_by_id("q")
        engine.dispatch(field, "keyup")
        await engine.wait_idle()
        engine.dispatch(field, "keyup")
        await engine.wait_idle()
        assert len(server.requests) == 1

    @pytest.mark.asyncio
    async def test_abort_lets_only_the_newest_response_swap(self, server: FakeServer, make_engine):
        calls = []

        async def handler(request):
            calls.append(request)
            if len(calls) == 1:
                await asyncio.sleep(0.2)
                return httpx.Response(200, text="R1")
            return httpx.Response(200, text="R2")

        server.handle("GET", "/slow", handler)
        engine = make_engine(
            '<button id="b" hx-get="/slow" hx-target="#out" hx-sync="this:abort">go</button><div id="out"></div>'
        )
        log = EventLog(engine, ["after-swap"])
        button = engine.document.get_by_id("b")
        engine.dispatch(button, "click")
        await asyncio.sleep(0.05)
        engine.dispatch(button, "click")
        await engine.wait_idle()

        assert text_of(engine, "out") == "R2"
        assert len(log.of("after-swap")) == 1
        assert engine.coordinator.idle_count(button) == 1
        assert engine.coordinator.state(button) == "idle"

    @pytest.mark.asyncio
    async def test_drop_ignores_clicks_while_in_flight(self, server: FakeServer, make_engine):
        server.route("POST", "/save", "saved", delay=0.05)
        engine = make_engine(
            '<button id="b" hx-post="/save" hx-target="#out" hx-sync="this:drop">go</button><div id="out"></div>'
        )
        button = engine.document.get_by_id("b")
        for _ in range(3):
            engine.dispatch(button, "click")
        await engine.wait_idle()
        assert len(server.requests) == 1

    @pytest.mark.asyncio
    async def test_queue_all_runs_sequentially_in_order(self, server: FakeServer, make_engine):
        in_flight = []
        overlap = []
        arrivals = []

        async def handler(request):
            in_flight.append(request)
            arrivals.append(request)
            number = len(arrivals)
            overlap.append(len(in_flight))
            await asyncio.sleep(0.02)
            in_flight.remove(request)
            return httpx.Response(200, text=f"<i>{number}</i>")

        server.handle("GET", "/log", handler)
        engine = make_engine(
            '<div id="out"></div>'
            '<button id="b" hx-get="/log" hx-target="#out" hx-swap="beforeend" hx-sync="this:queue all">go</button>'
        )
        button = engine.document.get_by_id("b")
        for _ in range(3):
            engine.dispatch(button, "click")
        await engine.wait_idle()

        assert max(overlap) == 1
        assert [i.get_text() for i in engine.document.get_by_id("out").find_all("i")] == ["1", "2", "3"]

    @pytest.mark.asyncio
    async def test_explicit_abort(self, server: FakeServer, make_engine):
        server.route("GET", "/slow", "late", delay=1.0)
        engine = make_engine('<button id="b" hx-get="/slow">go</button>')
        button = engine.document.get_by_id("b")
        engine.dispatch(button, "click")
        await asyncio.sleep(0.01)
        assert engine.abort(button)
        await engine.wait_idle()
        assert text_of(engine, "b") == "go"
        assert engine.coordinator.state(button) == "idle"
        assert not engine.abort(button)

    @pytest.mark.asyncio
    async def test_load_trigger_fires_on_process(self, server: FakeServer, make_engine):
        server.route("GET", "/related", "<li>one</li>")
        engine = make_engine('<ul id="rel" hx-get="/related" hx-trigger="load"></ul>')
        await engine.wait_idle()
        assert text_of(engine, "rel") == "one"

    @pytest.mark.asyncio
    async def test_swapped_content_is_bound(self, server: FakeServer, make_engine):
        server.route("GET", "/first", '<button id="next" hx-get="/second" hx-target="#out">next</button>')
        server.route("GET", "/second", "done")
        engine = make_engine('<button id="b" hx-get="/first" hx-target="#box">go</button><div id="box"></div><div id="out"></div>')
        engine.dispatch(engine.document.get_by_id("b"), "click")
        await engine.wait_idle()
        engine.dispatch(engine.document.get_by_id("next"), "click")
        await engine.wait_idle()
        assert text_of(engine, "out") == "done"


# =============================================================================
# Lifecycle and errors
# =============================================================================


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_event_order(self, server: FakeServer, make_engine):
        server.route("GET", "/a", "<p>a</p>")
        engine = make_engine('<button id="b" hx-get="/a" hx-target="#out">go</button><div id="out"></div>')
        log = EventLog(engine, PIPELINE)
        engine.dispatch(engine.document.get_by_id("b"), "click")
        await engine.wait_idle()
        assert log.kinds == PIPELINE

    @pytest.mark.asyncio
    async def test_before_swap_veto(self, server: FakeServer, make_engine):
        server.route("GET", "/a", "<p>a</p>")
        engine = make_engine('<button id="b" hx-get="/a" hx-target="#out">go</button><div id="out">old</div>')
        engine.on("before-swap", lambda event: event.veto())
        engine.dispatch(engine.document.get_by_id("b"), "click")
        await engine.wait_idle()
        assert text_of(engine, "out") == "old"

    @pytest.mark.asyncio
    async def test_indicator_class_while_in_flight(self, server: FakeServer, make_engine):
        seen = []
        engine = make_engine(
            '<button id="b" hx-get="/a" hx-target="#out" hx-indicator="#spin">go</button>'
            '<div id="out"></div><span id="spin"></span>'
        )
        spinner = engine.document.get_by_id("spin")

        def handler(request):
            seen.append(list(spinner.get("class") or []))
            return httpx.Response(200, text="ok")

        server.handle("GET", "/a", handler)
        engine.dispatch(engine.document.get_by_id("b"), "click")
        await engine.wait_idle()
        assert seen == [["htmx-request"]]
        assert not spinner.has_attr("class")

    @pytest.mark.asyncio
    async def test_timeout_leaves_target_untouched(self, server: FakeServer, make_engine):
        server.route("GET", "/slow", "late", delay=1.0)
        engine = make_engine(
            '<button id="b" hx-get="/slow" hx-target="#out">go</button><div id="out">old</div>',
            engine_settings=EngineSettings(timeout=0.05, default_settle_delay=0.0),
        )
        log = EventLog(engine, ["timeout", "before-swap"])
        engine.dispatch(engine.document.get_by_id("b"), "click")
        await engine.wait_idle()
        assert log.kinds == ["timeout"]
        assert text_of(engine, "out") == "old"

    @pytest.mark.asyncio
    async def test_build_error_sends_nothing(self, server: FakeServer, make_engine):
        engine = make_engine('<button id="b" hx-get="/a" hx-target="#nowhere">go</button>')
        log = EventLog(engine, ["build-error"])
        engine.dispatch(engine.document.get_by_id("b"), "click")
        await engine.wait_idle()
        assert len(log.of("build-error")) == 1
        assert server.requests == []

    @pytest.mark.asyncio
    async def test_trigger_error_reported_at_process(self, server: FakeServer, client, settings):
        engine = HypermediaEngine(
            Document(page('<button id="b" hx-get="/a" hx-trigger="click bogus, dblclick">go</button>')),
            client,
            settings,
        )
        log = EventLog(engine, ["trigger-error"])
        engine.process()
        try:
            assert [event.detail["spec"] for event in log.of("trigger-error")] == ["click bogus"]
            assert engine.dispatch(engine.document.get_by_id("b"), "click") == 0
        finally:
            await engine.aclose()

    @pytest.mark.asyncio
    async def test_error_status_swaps_by_default(self, server: FakeServer, make_engine):
        server.route("GET", "/a", "<p>broken</p>", status=500)
        engine = make_engine('<button id="b" hx-get="/a" hx-target="#out">go</button><div id="out"></div>')
        log = EventLog(engine, ["response-error"])
        engine.dispatch(engine.document.get_by_id("b"), "click")
        await engine.wait_idle()
        assert log.of("response-error")[0].detail == {"status_code": 500}
        assert text_of(engine, "out") == "broken"

    @pytest.mark.asyncio
    async def test_swap_only_on_success(self, server: FakeServer, make_engine):
        server.route("GET", "/a", "<p>broken</p>", status=500)
        server.route("GET", "/b", "<p>forced</p>", status=422, headers={"HX-Swap-Response": "true"})
        engine = make_engine(
            '<button id="a" hx-get="/a" hx-target="#out">a</button>'
            '<button id="b" hx-get="/b" hx-target="#out">b</button><div id="out">old</div>',
            engine_settings=EngineSettings(swap_only_on_success=True, default_settle_delay=0.0),
        )
        engine.dispatch(engine.document.get_by_id("a"), "click")
        await engine.wait_idle()
        assert text_of(engine, "out") == "old"
        engine.dispatch(engine.document.get_by_id("b"), "click")
        await engine.wait_idle()
        assert text_of(engine, "out") == "forced"

    @pytest.mark.asyncio
    async def test_no_content_never_swaps(self, server: FakeServer, make_engine):
        server.route("DELETE", "/item", "", status=204, headers={"HX-Swap-Response": "true"})
        engine = make_engine('<button id="b" hx-delete="/item" hx-target="#out">x</button><div id="out">keep</div>')
        log = EventLog(engine, ["before-swap", "after-swap"])
        engine.dispatch(engine.document.get_by_id("b"), "click")
        await engine.wait_idle()
        assert log.kinds == ["before-swap"]
        assert log.events[0].detail["should_swap"] is False
        assert text_of(engine, "out") == "keep"


# =============================================================================
# Response headers
# =============================================================================


class TestResponseHeaders:
    @pytest.mark.asyncio
    async def test_retarget_and_reswap_override_element(self, server: FakeServer, make_engine):
        server.route("GET", "/a", "<i>new</i>", headers={"HX-Retarget": "#b", "HX-Reswap": "beforeend"})
        engine = make_engine(
            '<button id="go" hx-get="/a" hx-target="#a" hx-swap="outerHTML">go</button>'
            '<div id="a">a</div><div id="b">b</div>'
        )
        engine.dispatch(engine.document.get_by_id("go"), "click")
        await engine.wait_idle()
        assert text_of(engine, "a") == "a"
        assert engine.document.get_by_id("b").decode_contents() == "b<i>new</i>"

    @pytest.mark.asyncio
    async def test_reselect(self, server: FakeServer, make_engine):
        server.route("GET", "/a", '<p class="x">x</p><p class="y">y</p>', headers={"HX-Reselect": ".y"})
        engine = make_engine('<button id="go" hx-get="/a" hx-target="#out" hx-select=".x">go</button><div id="out"></div>')
        engine.dispatch(engine.document.get_by_id("go"), "click")
        await engine.wait_idle()
        assert text_of(engine, "out") == "y"

    @pytest.mark.asyncio
    async def test_server_events_after_swap_and_settle(self, server: FakeServer, make_engine):
        server.route(
            "POST",
            "/messages",
            "<li>hi</li>",
            headers={"HX-Trigger": json.dumps({"showToast": {"message": "Posted"}}), "HX-Trigger-After-Settle": "settled"},
        )
        server.route("GET", "/toast", "Posted!")
        engine = make_engine(
            '<button id="b" hx-post="/messages" hx-target="#list">post</button><ul id="list"></ul>'
            '<div id="toast" hx-get="/toast" hx-trigger="showToast from:body"></div>'
        )
        log = EventLog(engine, ["after-swap", "showToast", "after-settle", "settled"])
        engine.dispatch(engine.document.get_by_id("b"), "click")
        await engine.wait_idle()

        assert log.kinds[:4] == ["after-swap", "showToast", "after-settle", "settled"]
        assert log.of("showToast")[0].detail == {"message": "Posted"}
        assert text_of(engine, "toast") == "Posted!"

    @pytest.mark.asyncio
    async def test_push_url_header(self, server: FakeServer, make_engine):
        server.route("GET", "/a", "x", headers={"HX-Push-Url": "/pretty"})
        engine = make_engine('<button id="b" hx-get="/a" hx-target="#out">go</button><div id="out"></div>')
        engine.dispatch(engine.document.get_by_id("b"), "click")
        await engine.wait_idle()
        assert engine.document.url == f"{BASE_URL}/pretty"
        assert engine.history.stack == [f"{BASE_URL}/", f"{BASE_URL}/pretty"]

    @pytest.mark.asyncio
    async def test_push_url_false_header_cancels_element_push(self, server: FakeServer, make_engine):
        server.route("GET", "/a", "x", headers={"HX-Push-Url": "false"})
        engine = make_engine('<button id="b" hx-get="/a" hx-target="#out" hx-push-url="true">go</button><div id="out"></div>')
        engine.dispatch(engine.document.get_by_id("b"), "click")
        await engine.wait_idle()
        assert engine.history.stack == [f"{BASE_URL}/"]

    @pytest.mark.asyncio
    async def test_redirect_navigates(self, server: FakeServer, make_engine):
        server.route("POST", "/login", "", headers={"HX-Redirect": "/home"})
        server.route("GET", "/home", page('<main hx-history-elt><h1>Welcome</h1></main>', title="Home"))
        engine = make_engine(
            '<main id="main" hx-history-elt><button id="b" hx-post="/login" hx-target="#main">login</button></main>'
        )
        engine.dispatch(engine.document.get_by_id("b"), "click")
        await engine.wait_idle()
        assert engine.document.url == f"{BASE_URL}/home"
        assert engine.document.get_by_id("main").decode_contents() == "<h1>Welcome</h1>"
        assert engine.document.title == "Home"

    @pytest.mark.asyncio
    async def test_out_of_band_updates_survive_a_missing_target(self, server: FakeServer, make_engine):
        server.route(
            "POST",
            "/messages",
            '<li>m</li><span id="gone" hx-swap-oob="true">x</span><span id="count" hx-swap-oob="true">1</span>',
        )
        engine = make_engine(
            '<button id="b" hx-post="/messages" hx-target="#list">post</button><ul id="list"></ul><span id="count">0</span>'
        )
        log = EventLog(engine, ["swap-error"])
        engine.dispatch(engine.document.get_by_id("b"), "click")
        await engine.wait_idle()
        assert text_of(engine, "count") == "1"
        assert text_of(engine, "list") == "m"
        assert [event.detail["selector"] for event in log.of("swap-error")] == ["#gone"]


# =============================================================================
# History
# =============================================================================


NAV_PAGE = (
    '<main id="main" hx-history-elt>'
    '<a id="to2" hx-get="/page2" hx-target="#main" hx-push-url="true">two</a>'
    "</main>"
)


class TestHistory:
    @pytest.mark.asyncio
    async def test_back_and_forward_restore_from_cache(self, server: FakeServer, make_engine):
        server.route("GET", "/page2", '<p id="p2">page two</p>')
        engine = make_engine(NAV_PAGE)
        engine.dispatch(engine.document.get_by_id("to2"), "click")
        await engine.wait_idle()
        assert engine.document.url == f"{BASE_URL}/page2"

        assert await engine.back()
        assert engine.document.url == f"{BASE_URL}/"
        assert engine.document.get_by_id("to2") is not None
        assert await engine.forward()
        assert text_of(engine, "p2") == "page two"
        assert len(server.requests) == 1

        # The restored page is live again.
        await engine.back()
        engine.dispatch(engine.document.get_by_id("to2"), "click")
        await engine.wait_idle()
        assert len(server.requests) == 2

    @pytest.mark.asyncio
    async def test_cache_miss_refetches_with_restore_header(self, server: FakeServer, make_engine):
        server.route(
            "GET",
            "/page2",
            '<p id="p2">page two</p><a id="to3" hx-get="/page3" hx-target="#main" hx-push-url="true">three</a>',
        )
        server.route("GET", "/page3", "<p>page three</p>")
        engine = make_engine(NAV_PAGE, engine_settings=EngineSettings(history_cache_size=1, default_settle_delay=0.0))
        log = EventLog(engine, ["history-cache-miss"])
        engine.dispatch(engine.document.get_by_id("to2"), "click")
        await engine.wait_idle()
        engine.dispatch(engine.document.get_by_id("to3"), "click")
        await engine.wait_idle()

        assert await engine.back()
        refetch = server.requests_to("/page2")[-1]
        assert refetch.headers["HX-History-Restore-Request"] == "true"
        assert [event.detail["url"] for event in log.of("history-cache-miss")] == [f"{BASE_URL}/page2"]
        assert text_of(engine, "p2") == "page two"
        assert engine.history.stack == [f"{BASE_URL}/", f"{BASE_URL}/page2", f"{BASE_URL}/page3"]
        assert engine.history.cursor == 1

    @pytest.mark.asyncio
    async def test_back_at_start_is_a_no_op(self, make_engine):
        engine = make_engine(NAV_PAGE)
        assert not await engine.back()


class TestProgrammaticRequests:
    @pytest.mark.asyncio
    async def test_ajax(self, server: FakeServer, make_engine):
        server.route("POST", "/ajax", "<b>done</b>")
        engine = make_engine('<div id="out"></div>')
        ticket = await engine.ajax("POST", "/ajax", target="#out", values={"a": 1})
        assert ticket.released
        assert text_of(engine, "out") == "done"
        assert server.requests[0].content == b"a=1"

    @pytest.mark.asyncio
    async def test_navigate(self, server: FakeServer, make_engine):
        server.route("GET", "/about", page('<main hx-history-elt><p>About</p></main>', title="About"))
        engine = make_engine('<main id="main" hx-history-elt><p>Home</p></main>')
        ticket = engine.navigate("/about")
        await ticket.done
        assert engine.document.title == "About"
        assert engine.history.current_url == f"{BASE_URL}/about"
        assert engine.history.lookup(f"{BASE_URL}/").content == "<p>Home</p>"

    @pytest.mark.asyncio
    async def test_aclose_finishes_queued_requests(self, server: FakeServer, client):
        server.route("POST", "/slow", "late", delay=5)
        document = Document(page('<div id="out"></div>'), url=f"{BASE_URL}/")
        engine = HypermediaEngine(
            document, client, EngineSettings(default_settle_delay=0.0, default_sync_strategy="queue all")
        )
        first = asyncio.create_task(engine.ajax("POST", "/slow", target="#out"))
        second = asyncio.create_task(engine.ajax("POST", "/slow", target="#out"))
        await asyncio.sleep(0.05)
        assert engine.coordinator.state(document.get_by_id("out")) == "queued(1)"

        await engine.aclose()
        tickets = await asyncio.wait_for(asyncio.gather(first, second), 1)
        assert all(ticket.cancelled for ticket in tickets)
        assert len(server.requests) == 1
        assert text_of(engine, "out") == ""

    @pytest.mark.asyncio
    async def test_aclose_finishes_requests_that_never_started(self, server: FakeServer, client):
        server.route("POST", "/ajax", "<b>done</b>")
        engine = HypermediaEngine(Document(page('<div id="out"></div>')), client, EngineSettings())
        pending = asyncio.create_task(engine.ajax("POST", "/ajax", target="#out"))
        await asyncio.sleep(0)

        await engine.aclose()
        ticket = await asyncio.wait_for(pending, 1)
        assert ticket.cancelled
        assert not server.requests
