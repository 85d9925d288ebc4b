"""
Celestial Agent - LLM agentic loop with the visibility tool and thread memory.

The model (DeepSeek via OpenRouter by default, any OpenAI-compatible gateway
works) decides when to call the visibility tool. We execute tool calls and feed
results back until the model gives a final answer or the step budget runs out.

Usage:
    from celestial_bot.services.celestial_agent import CelestialAgent

    agent = CelestialAgent()
    result = await agent.generate("What can I see tonight from Patna?", thread_id="telegram-42")
    print(result.text)
"""

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import openai

from celestial_bot.agents.prompts import CELESTIAL_AGENT_INSTRUCTIONS
from celestial_bot.config import get_settings, require_setting
from celestial_bot.logging_config import get_logger
from celestial_bot.services.celestial import TOOL_NAME, VISIBILITY_TOOL, run_visibility_tool
from celestial_bot.services.memory import ConversationStore, get_conversation_store

logger = get_logger("agent")

DEFAULT_RESOURCE_ID = "celestial-bot"
FALLBACK_MESSAGE = "I apologize, but I'm having trouble completing this request. Please try again."
MAX_TOOL_RESULT_CHARS = 20000


@dataclass
class AgentResult:
    """Result from agent execution."""
    text: str
    tool_calls: list[dict] = field(default_factory=list)
    steps: int = 0


async def execute_tool(tool_name: str, args: dict) -> str:
    """Execute a tool and return the result as a string."""
    if tool_name == TOOL_NAME:
        # CPU-bound ephemeris searches, keep them off the event loop
        return await asyncio.to_thread(run_visibility_tool, args)
    raise ValueError(f"Unknown tool: {tool_name}")


class CelestialAgent:
    """
    Astronomy assistant backed by an OpenAI-compatible chat completions API.

    One tool (celestial_visibility_tool), per-thread conversation memory.
    """

    def __init__(
        self,
        client: Optional[Any] = None,
        store: Optional[ConversationStore] = None,
        execute_tool_fn: Callable = execute_tool,
        instructions: str = CELESTIAL_AGENT_INSTRUCTIONS,
        model: Optional[str] = None,
        last_messages: Optional[int] = None
    ):
        """
        Args:
            client: AsyncOpenAI-compatible client (built from settings if omitted)
            store: Conversation store for thread memory
            execute_tool_fn: async function(tool_name, args) -> str
            instructions: System prompt for agent behavior
            model: Model name on the gateway
            last_messages: How many earlier thread messages to send as context
        """
        settings = get_settings()

        if client is None:
            client = openai.AsyncOpenAI(
                api_key=require_setting(settings, "openrouter_api_key"),
                base_url=settings.llm_base_url,
            )

        self.client = client
        self.store = store or get_conversation_store()
        self.execute_tool = execute_tool_fn
        self.instructions = instructions
        self.model = model or settings.llm_model
        self.last_messages = last_messages if last_messages is not None else settings.memory_last_messages
        self.tools = [VISIBILITY_TOOL]

    def _build_messages(self, thread_id: str, message: str) -> list[dict]:
        """System prompt + recent thread history + the new user message."""
        messages = [{"role": "system", "content": self.instructions}]
        for past in self.store.recent_messages(thread_id, self.last_messages):
            messages.append({"role": past.role, "content": past.content})
        messages.append({"role": "user", "content": message})
        return messages

    async def _save_exchange(self, thread_id: str, message: str, answer: str) -> None:
        """Persist the user turn together with its answer, so a failed run leaves no trace."""
        await asyncio.to_thread(
            self.store.append_messages,
            thread_id,
            [("user", message), ("assistant", answer)],
        )

    async def generate(
        self,
        message: str,
        thread_id: str,
        resource_id: str = DEFAULT_RESOURCE_ID,
        max_steps: int = 5
    ) -> AgentResult:
        """
        Run the agentic loop for one user message.

        Args:
            message: The user's message
            thread_id: Conversation thread for memory
            resource_id: Owner of the thread (the bot)
            max_steps: Max LLM calls, including the final answer

        Returns:
            AgentResult with the final text and tool call history
        """
        # SQLite calls are blocking, keep them off the event loop
        await asyncio.to_thread(self.store.get_or_create_thread, thread_id, resource_id, message)
        messages = await asyncio.to_thread(self._build_messages, thread_id, message)

        tool_calls_history = []
        step = 0

        while step < max_steps:
            step += 1
            logger.info(f"[AGENT] Step {step}/{max_steps} (thread={thread_id})")

            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                tools=self.tools,
                tool_choice="auto",
            )

            assistant_message = response.choices[0].message

            if not assistant_message.tool_calls:
                final_text = assistant_message.content or ""
                await self._save_exchange(thread_id, message, final_text)
                logger.info(f"[AGENT] Finished after {step} steps ({len(final_text)} chars)")
                return AgentResult(text=final_text, tool_calls=tool_calls_history, steps=step)

            messages.append({
                "role": "assistant",
                "content": assistant_message.content or "",
                "tool_calls": [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": tc.function.name,
                            "arguments": tc.function.arguments
                        }
                    }
                    for tc in assistant_message.tool_calls
                ]
            })

            for tool_call in assistant_message.tool_calls:
                tool_name = tool_call.function.name
                start_time = time.time()

                try:
                    tool_args = json.loads(tool_call.function.arguments or "{}")
                    logger.info(f"[AGENT] Tool call: {tool_name}({json.dumps(tool_args, ensure_ascii=False)[:200]})")
                    result = await self.execute_tool(tool_name, tool_args)
                    error = None
                except Exception as e:
                    # Return the error so the model can adapt (e.g. fix coordinates)
                    logger.warning(f"[AGENT] Tool error in {tool_name}: {e}")
                    result = json.dumps({"error": str(e)})
                    error = str(e)

                duration_ms = (time.time() - start_time) * 1000
                tool_calls_history.append({
                    "tool": tool_name,
                    "duration_ms": round(duration_ms),
                    "step": step,
                    "error": error
                })

                if len(result) > MAX_TOOL_RESULT_CHARS:
                    result = result[:MAX_TOOL_RESULT_CHARS] + f"\n... (truncated, {len(result)} total chars)"

                messages.append({
                    "role": "tool",
                    "tool_call_id": tool_call.id,
                    "content": result
                })

        logger.warning(f"[AGENT] Max steps reached ({step}) without a final answer")
        await self._save_exchange(thread_id, message, FALLBACK_MESSAGE)
        return AgentResult(text=FALLBACK_MESSAGE, tool_calls=tool_calls_history, steps=step)


# Global instance
_agent: Optional[CelestialAgent] = None


def get_celestial_agent() -> CelestialAgent:
    """Get or create celestial agent singleton."""
    global _agent
    if _agent is None:
        _agent = CelestialAgent()
    return _agent
