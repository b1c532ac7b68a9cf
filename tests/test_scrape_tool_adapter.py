"""
Tests for the scrape_website tool adapter (agent/scrape_tool.py).

Async flows are driven with asyncio.run; scrape functions are plain callables
so no network or scrape service is involved.
"""
import asyncio
import threading

import pytest

import core.scraper as scraper
from agent.media_sources import MediaShelf
from agent.scrape_client import scrape_in_process
from agent.scrape_tool import (
    SCRAPE_TOOL_DECLARATION,
    SCRAPE_TOOL_NAME,
    SYSTEM_INSTRUCTION,
    ScrapeToolAdapter,
)
from agent.session import TOOLCALL_EVENT, LocalAgentSession
from core.data_models import ExtractionResult, ToolCall, ToolCallEvent, ToolResponse
from utils.error_utils import ErrorKind


def _event(*calls):
    return ToolCallEvent(function_calls=[ToolCall(**c) for c in calls])


def _scrape_call(call_id, url="https://example.com", **extra):
    return {"id": call_id, "name": SCRAPE_TOOL_NAME, "args": {"url": url, **extra}}


class RecordingScraper:
    """scrape_fn stand-in that records requests and returns a fixed result."""

    def __init__(self, result=None):
        self.result = result or ExtractionResult.ok(content="Example Domain")
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return self.result


async def _run_calls(adapter, session, *calls):
    adapter.attach(session)
    session.emit_tool_call(_event(*calls))
    await adapter.wait_idle()


def test_matching_call_gets_exactly_one_success_response():
    session = LocalAgentSession()
    fake = RecordingScraper()
    adapter = ScrapeToolAdapter(scrape_fn=fake, timeout=5)

    asyncio.run(_run_calls(adapter, session, _scrape_call("call-1")))

    assert [r.url for r in fake.requests] == ["https://example.com"]
    assert session.responses() == [
        ToolResponse(id="call-1", output={"success": True, "content": "Example Domain"})
    ]
    assert adapter.outstanding == {}


def test_html_is_echoed_when_present():
    session = LocalAgentSession()
    fake = RecordingScraper(ExtractionResult.ok(content="x", html="<p>x</p>"))
    adapter = ScrapeToolAdapter(scrape_fn=fake, timeout=5)

    asyncio.run(_run_calls(adapter, session, _scrape_call("c1", include_html=True)))

    assert fake.requests[0].include_html is True
    assert session.responses()[0].output == {"success": True, "content": "x", "html": "<p>x</p>"}


def test_other_tools_are_ignored():
    session = LocalAgentSession()
    fake = RecordingScraper()
    adapter = ScrapeToolAdapter(scrape_fn=fake, timeout=5)

    asyncio.run(
        _run_calls(
            adapter,
            session,
            {"id": "other-1", "name": "get_weather", "args": {"city": "Oslo"}},
        )
    )

    assert fake.requests == []
    assert session.responses() == []


def test_mixed_event_only_claims_scrape_calls():
    session = LocalAgentSession()
    fake = RecordingScraper()
    adapter = ScrapeToolAdapter(scrape_fn=fake, timeout=5)

    asyncio.run(
        _run_calls(
            adapter,
            session,
            {"id": "w1", "name": "get_weather", "args": {}},
            _scrape_call("s1"),
        )
    )

    assert [r.id for r in session.responses()] == ["s1"]


def test_dispatch_does_not_block_the_session():
    session = LocalAgentSession()
    release = threading.Event()

    def slow_scrape(request):
        release.wait(2)
        return ExtractionResult.ok(content="late")

    adapter = ScrapeToolAdapter(scrape_fn=slow_scrape, timeout=5)

    async def scenario():
        adapter.attach(session)
        session.emit_tool_call(_event(_scrape_call("slow")))
        # the session regained control before the scrape finished
        assert session.responses() == []
        assert "slow" in adapter.outstanding
        release.set()
        await adapter.wait_idle()

    asyncio.run(scenario())
    assert [r.id for r in session.responses()] == ["slow"]


def test_out_of_order_completion_is_correlated_by_id():
    session = LocalAgentSession()
    b_answered = threading.Event()
    session.response_listeners.append(
        lambda response: b_answered.set() if response.id == "B" else None
    )

    def scrape(request):
        if request.url.endswith("/a"):
            # A finishes only after B has been answered
            assert b_answered.wait(2)
            return ExtractionResult.ok(content="page A")
        return ExtractionResult.ok(content="page B")

    adapter = ScrapeToolAdapter(scrape_fn=scrape, timeout=5)

    async def scenario():
        adapter.attach(session)
        session.emit_tool_call(_event(_scrape_call("A", url="https://example.com/a")))
        session.emit_tool_call(_event(_scrape_call("B", url="https://example.com/b")))
        await adapter.wait_idle()

    asyncio.run(scenario())

    responses = session.responses()
    assert [r.id for r in responses] == ["B", "A"]
    assert responses[0].output["content"] == "page B"
    assert responses[1].output["content"] == "page A"


def test_pipeline_failure_becomes_failure_response():
    session = LocalAgentSession()
    fake = RecordingScraper(
        ExtractionResult.failure(ErrorKind.PARSE, "Failed to parse HTML content")
    )
    adapter = ScrapeToolAdapter(scrape_fn=fake, timeout=5)

    asyncio.run(_run_calls(adapter, session, _scrape_call("c1")))

    assert session.responses() == [
        ToolResponse(id="c1", output={"success": False, "error": "Failed to parse HTML content"})
    ]


def test_raising_scrape_fn_still_gets_one_response():
    session = LocalAgentSession()

    def broken(request):
        raise RuntimeError("socket closed")

    adapter = ScrapeToolAdapter(scrape_fn=broken, timeout=5)

    asyncio.run(_run_calls(adapter, session, _scrape_call("c1")))

    responses = session.responses()
    assert len(responses) == 1
    assert responses[0].output == {
        "success": False,
        "error": "Unexpected error during web scrape: socket closed",
    }


@pytest.mark.parametrize(
    "args, message",
    [
        ({}, "URL is required"),
        ({"url": ""}, "URL is required"),
        ({"url": "not a url"}, "Invalid URL: not a url"),
    ],
)
def test_invalid_arguments_fail_without_extraction(args, message):
    session = LocalAgentSession()
    fake = RecordingScraper()
    adapter = ScrapeToolAdapter(scrape_fn=fake, timeout=5)

    asyncio.run(
        _run_calls(adapter, session, {"id": "bad", "name": SCRAPE_TOOL_NAME, "args": args})
    )

    assert fake.requests == []
    assert session.responses() == [
        ToolResponse(id="bad", output={"success": False, "error": message})
    ]


def test_timeout_synthesizes_failure_response():
    session = LocalAgentSession()

    def hanging(request):
        threading.Event().wait(0.5)
        return ExtractionResult.ok(content="too late")

    adapter = ScrapeToolAdapter(scrape_fn=hanging, timeout=0.05)

    asyncio.run(_run_calls(adapter, session, _scrape_call("slow")))

    assert session.responses() == [
        ToolResponse(
            id="slow",
            output={"success": False, "error": "Scrape timed out after 0.05 seconds"},
        )
    ]


def test_duplicate_call_id_is_answered_once():
    session = LocalAgentSession()
    fake = RecordingScraper()
    adapter = ScrapeToolAdapter(scrape_fn=fake, timeout=5)

    async def scenario():
        adapter.attach(session)
        session.emit_tool_call(_event(_scrape_call("dup")))
        session.emit_tool_call(_event(_scrape_call("dup")))
        await adapter.wait_idle()
        session.emit_tool_call(_event(_scrape_call("dup")))
        await adapter.wait_idle()

    asyncio.run(scenario())

    assert len(fake.requests) == 1
    assert [r.id for r in session.responses()] == ["dup"]


def test_new_content_callback_fires_after_success():
    session = LocalAgentSession()
    seen = []
    adapter = ScrapeToolAdapter(
        scrape_fn=RecordingScraper(),
        on_new_content=lambda content, url: seen.append((content, url)),
        timeout=5,
    )

    asyncio.run(_run_calls(adapter, session, _scrape_call("c1")))

    assert seen == [("Example Domain", "https://example.com")]


def test_new_content_callback_not_fired_on_failure():
    session = LocalAgentSession()
    seen = []
    adapter = ScrapeToolAdapter(
        scrape_fn=RecordingScraper(ExtractionResult.failure(ErrorKind.FETCH, "HTTP 500")),
        on_new_content=lambda content, url: seen.append(url),
        timeout=5,
    )

    asyncio.run(_run_calls(adapter, session, _scrape_call("c1")))

    assert seen == []
    assert session.responses()[0].output["success"] is False


def test_failing_callback_does_not_suppress_response():
    session = LocalAgentSession()

    def explode(content, url):
        raise ValueError("ui gone")

    adapter = ScrapeToolAdapter(scrape_fn=RecordingScraper(), on_new_content=explode, timeout=5)

    asyncio.run(_run_calls(adapter, session, _scrape_call("c1")))

    assert session.responses()[0].output["success"] is True


def test_attach_declares_tool_and_detach_withdraws_it():
    session = LocalAgentSession(system_instruction=SYSTEM_INSTRUCTION)
    fake = RecordingScraper()
    adapter = ScrapeToolAdapter(scrape_fn=fake, timeout=5)

    async def scenario():
        adapter.attach(session)
        assert adapter.attached
        assert session.declared_tools() == [SCRAPE_TOOL_NAME]
        config = session.build_config()
        assert config["tools"] == [{"functionDeclarations": [SCRAPE_TOOL_DECLARATION]}]
        assert SCRAPE_TOOL_NAME in config["systemInstruction"]["parts"][0]["text"]

        adapter.detach()
        assert not adapter.attached
        assert session.declared_tools() == []
        assert session.build_config()["tools"] == []
        assert session.emit_tool_call(_event(_scrape_call("after-detach"))) == 0
        await adapter.wait_idle()

    asyncio.run(scenario())

    assert fake.requests == []
    assert session.responses() == []


def test_declaration_shape():
    params = SCRAPE_TOOL_DECLARATION["parameters"]
    assert SCRAPE_TOOL_DECLARATION["name"] == "scrape_website"
    assert params["required"] == ["url"]
    assert params["properties"]["url"]["type"] == "string"
    assert params["properties"]["include_html"]["type"] == "boolean"
    assert "explicitly" in SCRAPE_TOOL_DECLARATION["description"]


def test_tool_calls_from_a_transport_thread_are_handled_on_the_loop():
    session = LocalAgentSession()
    fake = RecordingScraper()
    adapter = ScrapeToolAdapter(scrape_fn=fake, timeout=5)

    async def scenario():
        adapter.attach(session)
        await asyncio.to_thread(session.emit_tool_call, _event(_scrape_call("threaded")))
        await asyncio.sleep(0)
        await adapter.wait_idle()

    asyncio.run(scenario())

    assert [r.id for r in session.responses()] == ["threaded"]


def test_end_to_end_in_process_scrape_feeds_media_shelf(monkeypatch):
    monkeypatch.setattr(
        scraper,
        "fetch_html",
        lambda url: "<html><body><nav>x</nav><main>Example Domain</main></body></html>",
    )
    session = LocalAgentSession()
    shelf = MediaShelf()
    adapter = ScrapeToolAdapter(
        scrape_fn=scrape_in_process,
        on_new_content=shelf.add_scraped_content,
        timeout=5,
    )

    asyncio.run(_run_calls(adapter, session, _scrape_call("e2e")))

    assert session.sent == [
        {
            "functionResponses": [
                {
                    "id": "e2e",
                    "response": {"output": {"success": True, "content": "Example Domain"}},
                }
            ]
        }
    ]
    assert len(shelf.sources) == 1
    assert shelf.sources[0].url == "https://example.com"
    assert shelf.sources[0].content == "Example Domain"


def test_wire_shaped_event_dict_gets_one_response():
    session = LocalAgentSession()
    fake = RecordingScraper()
    adapter = ScrapeToolAdapter(scrape_fn=fake, timeout=5)

    async def scenario():
        adapter.attach(session)
        session.emit(TOOLCALL_EVENT, {"functionCalls": [_scrape_call("wire-1")]})
        await adapter.wait_idle()

    asyncio.run(scenario())

    assert [r.url for r in fake.requests] == ["https://example.com"]
    assert [r.id for r in session.responses()] == ["wire-1"]


def test_event_dict_without_call_list_is_a_no_op():
    session = LocalAgentSession()
    fake = RecordingScraper()
    adapter = ScrapeToolAdapter(scrape_fn=fake, timeout=5)

    async def scenario():
        adapter.attach(session)
        session.emit(TOOLCALL_EVENT, {"calls": [_scrape_call("lost")]})
        await adapter.wait_idle()

    asyncio.run(scenario())

    assert fake.requests == []
    assert session.responses() == []


def test_attach_outside_event_loop_fails_loudly():
    session = LocalAgentSession()
    adapter = ScrapeToolAdapter(scrape_fn=RecordingScraper(), timeout=5)

    with pytest.raises(RuntimeError):
        adapter.attach(session)

    assert not adapter.attached
    assert session.declared_tools() == []


def test_attach_with_explicit_loop_handles_calls_emitted_from_plain_code():
    session = LocalAgentSession()
    fake = RecordingScraper()
    adapter = ScrapeToolAdapter(scrape_fn=fake, timeout=5)

    async def drain():
        await asyncio.sleep(0)
        await adapter.wait_idle()

    loop = asyncio.new_event_loop()
    try:
        adapter.attach(session, loop=loop)
        session.emit_tool_call(_event(_scrape_call("queued")))
        assert session.responses() == []
        loop.run_until_complete(drain())
    finally:
        loop.close()

    assert [r.id for r in session.responses()] == ["queued"]


def test_answered_history_keeps_only_recent_ids():
    session = LocalAgentSession()
    fake = RecordingScraper()
    adapter = ScrapeToolAdapter(scrape_fn=fake, timeout=5, answered_history=2)

    async def scenario():
        adapter.attach(session)
        for call_id in ["a", "b", "c"]:
            session.emit_tool_call(_event(_scrape_call(call_id)))
            await adapter.wait_idle()
        session.emit_tool_call(_event(_scrape_call("c")))
        await adapter.wait_idle()

    asyncio.run(scenario())

    assert list(adapter.answered) == ["b", "c"]
    assert [r.id for r in session.responses()] == ["a", "b", "c"]


def test_page_metadata_reaches_callback_when_enabled(monkeypatch):
    monkeypatch.setattr(
        scraper,
        "fetch_html",
        lambda url: (
            "<html><head><title>Example Domain</title></head>"
            "<body><main>Body text</main></body></html>"
        ),
    )
    session = LocalAgentSession()
    shelf = MediaShelf()
    adapter = ScrapeToolAdapter(
        scrape_fn=scrape_in_process,
        on_new_content=shelf.add_scraped_content,
        timeout=5,
        pass_metadata=True,
    )

    asyncio.run(_run_calls(adapter, session, _scrape_call("meta-1")))

    assert session.responses()[0].output == {"success": True, "content": "Body text"}
    source = shelf.sources[0]
    assert source.title == "Example Domain"
    assert source.metadata.title == "Example Domain"
