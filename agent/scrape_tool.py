# agent/scrape_tool.py
#
# The `scrape_website` tool: declaration plus the adapter that answers the
# agent session's tool calls with extraction results.
#
# One tool response per matching call id, success or failure. Extraction runs
# in a worker thread so the session's event loop keeps moving; responses go
# out in completion order, correlated only by call id.

import asyncio
import os
from collections import OrderedDict
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Union

from loguru import logger

from core.data_models import (
    ExtractionRequest,
    ExtractionResult,
    PageMetadata,
    ToolCall,
    ToolCallEvent,
    ToolResponse,
)
from utils.error_utils import ScrapeValidationError, safe_execute
from agent.scrape_client import request_extraction
from agent.session import TOOLCALL_EVENT, AgentSession

SCRAPE_TOOL_NAME = "scrape_website"

SCRAPE_TOOL_DECLARATION: Dict[str, Any] = {
    "name": SCRAPE_TOOL_NAME,
    "description": (
        "Fetches a web page and returns its cleaned main text content. "
        "Only call this when the user explicitly supplies a URL."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "url": {
                "type": "string",
                "description": "The absolute URL of the website to scrape",
            },
            "include_html": {
                "type": "boolean",
                "description": "Whether to also return the cleaned HTML of the main content",
            },
        },
        "required": ["url"],
    },
}

SYSTEM_INSTRUCTION = (
    "You are my helpful assistant. When I ask you to get information from a website, "
    f'call the "{SCRAPE_TOOL_NAME}" function with the URL. '
    "Only scrape websites when explicitly asked."
)

SCRAPE_TOOL_TIMEOUT_SECONDS = float(os.getenv("SCRAPE_TOOL_TIMEOUT_SECONDS", "20"))
# answered call ids remembered for duplicate detection
ANSWERED_HISTORY_SIZE = int(os.getenv("SCRAPE_TOOL_ANSWERED_HISTORY", "1024"))

ScrapeFn = Callable[[ExtractionRequest], ExtractionResult]
ContentCallback = Callable[[str, str], None]


class CallState(str, Enum):
    DISPATCHED = "dispatched"
    RESPONDED = "responded"


def _failure_output(message: str) -> Dict[str, Any]:
    return {"success": False, "error": message}


def _success_output(result: ExtractionResult) -> Dict[str, Any]:
    output: Dict[str, Any] = {"success": True, "content": result.content or ""}
    if result.html is not None:
        output["html"] = result.html
    return output


class ScrapeToolAdapter:
    """
    Bridges `scrape_website` tool calls from an agent session to extraction.

    scrape_fn is called with an ExtractionRequest in a worker thread; the default
    posts to the scrape HTTP service. on_new_content(content, url) is a
    best-effort hook fired after each successful response; with
    pass_metadata=True it also receives metadata=PageMetadata (or None).

    Answered call ids are remembered, up to answered_history of the most
    recent, so a replayed id is not answered twice.
    """

    def __init__(
        self,
        scrape_fn: Optional[ScrapeFn] = None,
        on_new_content: Optional[ContentCallback] = None,
        timeout: Optional[float] = None,
        pass_metadata: bool = False,
        answered_history: int = ANSWERED_HISTORY_SIZE,
    ) -> None:
        self.scrape_fn: ScrapeFn = scrape_fn or request_extraction
        self.on_new_content = on_new_content
        self.pass_metadata = pass_metadata
        self.timeout = SCRAPE_TOOL_TIMEOUT_SECONDS if timeout is None else timeout
        self.session: Optional[AgentSession] = None
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.outstanding: Dict[str, CallState] = {}
        self.answered: "OrderedDict[str, None]" = OrderedDict()
        self.answered_history = max(1, answered_history)
        self.tasks: Dict[str, "asyncio.Task[None]"] = {}

    # ------------------------------------------------------------------ #
    # Subscription lifecycle
    # ------------------------------------------------------------------ #

    @property
    def attached(self) -> bool:
        return self.session is not None

    def attach(
        self,
        session: AgentSession,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        """
        Declare the tool on the session and start listening for its calls.

        Calls are handled on `loop`, defaulting to the running loop. Raises
        RuntimeError when neither exists, before anything is registered.
        """
        if self.session is session:
            return

        # raises RuntimeError outside a running loop
        loop = loop or asyncio.get_running_loop()

        if self.session is not None:
            self.detach()

        self.loop = loop
        session.register_tool(SCRAPE_TOOL_DECLARATION)
        session.on(TOOLCALL_EVENT, self.handle_tool_call)
        self.session = session
        logger.info("scrape tool attached to session")

    def detach(self) -> None:
        """Stop listening and withdraw the declaration. In-flight calls still answer."""
        if self.session is None:
            return
        self.session.off(TOOLCALL_EVENT, self.handle_tool_call)
        self.session.unregister_tool(SCRAPE_TOOL_NAME)
        self.session = None
        logger.info("scrape tool detached from session")

    # ------------------------------------------------------------------ #
    # Inbound events
    # ------------------------------------------------------------------ #

    def handle_tool_call(self, event: Union[ToolCallEvent, Dict[str, Any]]) -> None:
        """Session callback. Claims matching calls and returns without waiting."""
        if isinstance(event, dict):
            if "functionCalls" not in event and "function_calls" not in event:
                logger.warning("tool call event without a call list; keys={}", sorted(event))
            event = ToolCallEvent.model_validate(event)

        for call in event.function_calls:
            if call.name != SCRAPE_TOOL_NAME:
                continue
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None

            if running is not None and running is self.loop:
                self.dispatch(call)
            elif self.loop is not None:
                # delivered from a transport thread: hop onto the adapter's loop
                self.loop.call_soon_threadsafe(self.dispatch, call)
            else:
                logger.error("scrape tool call {} arrived with no event loop; ignoring", call.id)

    def dispatch(self, call: ToolCall) -> Optional["asyncio.Task[None]"]:
        """Start handling one call. Must run on the event loop thread."""
        if self.session is None:
            logger.warning("scrape tool call {} arrived while detached; ignoring", call.id)
            return None
        if call.id in self.outstanding or call.id in self.answered:
            logger.warning("scrape tool call {} already claimed; ignoring duplicate", call.id)
            return None

        self.outstanding[call.id] = CallState.DISPATCHED
        logger.info("scrape tool call {} dispatched: {}", call.id, call.args.get("url"))

        task = asyncio.get_running_loop().create_task(self._run_call(call, self.session))
        self.tasks[call.id] = task
        task.add_done_callback(lambda _t, call_id=call.id: self.tasks.pop(call_id, None))
        return task

    async def wait_idle(self) -> None:
        """Wait until every outstanding call has been answered."""
        while self.tasks:
            await asyncio.gather(*list(self.tasks.values()), return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Per-call flow
    # ------------------------------------------------------------------ #

    async def _run_call(self, call: ToolCall, session: AgentSession) -> None:
        try:
            output, request, result = await self._execute(call)
        except Exception as exc:  # noqa: BLE001
            logger.exception("scrape tool call {} failed unexpectedly", call.id)
            output, request, result = (
                _failure_output(f"Unexpected error during web scrape: {exc}"),
                None,
                None,
            )

        self._respond(session, call.id, output)

        if output.get("success") and request is not None:
            metadata = result.meta if result is not None else None
            self._notify(output["content"], request.url, metadata)

    async def _execute(
        self, call: ToolCall
    ) -> Tuple[Dict[str, Any], Optional[ExtractionRequest], Optional[ExtractionResult]]:
        try:
            request = ExtractionRequest.build(
                call.args.get("url"),
                call.args.get("include_html", False),
            )
        except ScrapeValidationError as exc:
            return _failure_output(exc.message), None, None

        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(self.scrape_fn, request),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            # the worker thread is not interrupted; its late result is discarded
            logger.error("scrape tool call {} timed out after {}s", call.id, self.timeout)
            return _failure_output(f"Scrape timed out after {self.timeout:g} seconds"), request, None

        if not result.success:
            logger.warning("scrape tool call {} failed: {}", call.id, result.error)
            return _failure_output(result.error or "Failed to scrape website"), request, result

        return _success_output(result), request, result

    def _respond(self, session: AgentSession, call_id: str, output: Dict[str, Any]) -> None:
        if self.outstanding.get(call_id) is not CallState.DISPATCHED:
            logger.error("scrape tool call {} already answered; dropping extra response", call_id)
            return
        self.outstanding[call_id] = CallState.RESPONDED

        try:
            session.send_tool_response([ToolResponse(id=call_id, output=output)])
            logger.info("scrape tool call {} answered (success={})", call_id, output.get("success"))
        except Exception:  # noqa: BLE001
            logger.exception("could not deliver tool response for call {}", call_id)
        finally:
            self.outstanding.pop(call_id, None)
            self._remember_answered(call_id)

    def _remember_answered(self, call_id: str) -> None:
        self.answered[call_id] = None
        while len(self.answered) > self.answered_history:
            self.answered.popitem(last=False)

    def _notify(self, content: str, url: str, metadata: Optional[PageMetadata] = None) -> None:
        if self.on_new_content is None:
            return
        if self.pass_metadata:
            safe_execute(None)(self.on_new_content)(content, url, metadata=metadata)
        else:
            safe_execute(None)(self.on_new_content)(content, url)
