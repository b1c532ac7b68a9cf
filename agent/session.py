"""
Agent session interface and an in-process implementation.

The real session (a bidirectional socket to the model backend) lives outside
this repo. Anything that exposes the AgentSession methods can host the scrape
tool; LocalAgentSession is the in-memory version used for local wiring and
tests.
"""
from typing import Any, Callable, Dict, List, Optional, Protocol

from loguru import logger

from core.data_models import ToolCallEvent, ToolResponse

TOOLCALL_EVENT = "toolcall"

Handler = Callable[[Any], None]


class AgentSession(Protocol):
    def on(self, event: str, handler: Handler) -> None: ...

    def off(self, event: str, handler: Handler) -> None: ...

    def register_tool(self, declaration: Dict[str, Any]) -> None: ...

    def unregister_tool(self, name: str) -> None: ...

    def send_tool_response(self, responses: List[ToolResponse]) -> None: ...


class LocalAgentSession:
    """Synchronous event emitter with a tool-declaration registry."""

    def __init__(self, system_instruction: Optional[str] = None) -> None:
        self.system_instruction = system_instruction
        self.subscribers: Dict[str, List[Handler]] = {}
        self.tools: Dict[str, Dict[str, Any]] = {}
        self.sent: List[Dict[str, Any]] = []
        self.response_listeners: List[Callable[[ToolResponse], None]] = []

    # -- events ---------------------------------------------------------------
    def on(self, event: str, handler: Handler) -> None:
        self.subscribers.setdefault(event, []).append(handler)

    def off(self, event: str, handler: Handler) -> None:
        handlers = self.subscribers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event: str, payload: Any) -> int:
        """Deliver payload to every handler of event; returns how many ran."""
        handlers = list(self.subscribers.get(event, []))
        if not handlers:
            logger.warning("No subscriber for session event: {}", event)
        for h in handlers:
            try:
                h(payload)
            except Exception as ex:  # noqa: BLE001
                logger.exception("Handler error for {}: {}", event, ex)
        return len(handlers)

    def emit_tool_call(self, event: ToolCallEvent) -> int:
        return self.emit(TOOLCALL_EVENT, event)

    # -- tool declarations ----------------------------------------------------
    def register_tool(self, declaration: Dict[str, Any]) -> None:
        self.tools[declaration["name"]] = declaration

    def unregister_tool(self, name: str) -> None:
        self.tools.pop(name, None)

    def declared_tools(self) -> List[str]:
        return sorted(self.tools)

    def build_config(self) -> Dict[str, Any]:
        """Session setup payload advertising the currently declared tools."""
        config: Dict[str, Any] = {
            "tools": [{"functionDeclarations": list(self.tools.values())}] if self.tools else [],
        }
        if self.system_instruction:
            config["systemInstruction"] = {"parts": [{"text": self.system_instruction}]}
        return config

    # -- responses ------------------------------------------------------------
    def send_tool_response(self, responses: List[ToolResponse]) -> None:
        self.sent.append({"functionResponses": [r.to_wire() for r in responses]})
        for response in responses:
            for listener in list(self.response_listeners):
                listener(response)

    def responses(self) -> List[ToolResponse]:
        """Every tool response sent so far, in send order."""
        out: List[ToolResponse] = []
        for message in self.sent:
            for item in message["functionResponses"]:
                out.append(ToolResponse(id=item["id"], output=item["response"]["output"]))
        return out
