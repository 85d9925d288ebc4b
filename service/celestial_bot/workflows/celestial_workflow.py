"""
Celestial Telegram Workflow

Handles an incoming Telegram message in exactly two steps:
1. use-celestial-agent: the agent answers the message (may call the visibility tool)
2. send-telegram-reply: the answer is sent back to the chat

No branching and no retries. A failing step stops the run and is reported
as WorkflowStepError.
"""

from typing import Awaitable, Callable, Optional

from celestial_bot.agents.schemas import AgentStepOutput, SendResult, WorkflowInput
from celestial_bot.config import get_settings
from celestial_bot.logging_config import get_logger
from celestial_bot.services.celestial_agent import DEFAULT_RESOURCE_ID, CelestialAgent, get_celestial_agent
from celestial_bot.telegram_bot.telegram_api import send_message

logger = get_logger("workflow")

WORKFLOW_ID = "celestial-telegram-workflow"
AGENT_STEP_ID = "use-celestial-agent"
SEND_STEP_ID = "send-telegram-reply"


class WorkflowStepError(RuntimeError):
    """A workflow step failed; `cause` is the original exception."""

    def __init__(self, step_id: str, cause: Exception):
        self.step_id = step_id
        self.cause = cause
        super().__init__(f"Step '{step_id}' failed: {cause}")


async def use_celestial_agent(
    input_data: WorkflowInput,
    agent: Optional[CelestialAgent] = None
) -> AgentStepOutput:
    """Step 1: process the user's message with the celestial agent."""
    settings = get_settings()
    agent = agent or get_celestial_agent()

    logger.info(f"[WORKFLOW] Starting agent generation: thread={input_data.thread_id}, message={input_data.message[:100]!r}")

    result = await agent.generate(
        input_data.message,
        thread_id=input_data.thread_id,
        resource_id=DEFAULT_RESOURCE_ID,
        max_steps=settings.agent_max_steps,
    )

    logger.info(f"[WORKFLOW] Agent generation complete: {len(result.text)} chars, {len(result.tool_calls)} tool calls")

    return AgentStepOutput(response=result.text, chat_id=input_data.chat_id)


async def send_telegram_reply(
    input_data: AgentStepOutput,
    send_fn: Callable[..., Awaitable[dict]] = send_message
) -> SendResult:
    """Step 2: send the agent's response to Telegram."""
    logger.info(f"[WORKFLOW] Sending Telegram message: chat={input_data.chat_id}, {len(input_data.response)} chars")

    result = await send_fn(input_data.chat_id, input_data.response, parse_mode="Markdown")
    message_id = (result.get("result") or {}).get("message_id")

    logger.info(f"[WORKFLOW] Telegram message sent: message_id={message_id}")

    return SendResult(sent=True, message_id=message_id)


async def run_celestial_workflow(
    message: str,
    thread_id: str,
    chat_id: int,
    agent: Optional[CelestialAgent] = None,
    send_fn: Callable[..., Awaitable[dict]] = send_message
) -> SendResult:
    """
    Run both steps in order.

    Args:
        message: User's message text
        thread_id: Conversation thread for agent memory
        chat_id: Telegram chat to reply to
        agent: Optional agent override
        send_fn: Optional sender override

    Returns:
        SendResult of the Telegram delivery

    Raises:
        WorkflowStepError: if either step fails
    """
    input_data = WorkflowInput(message=message, thread_id=thread_id, chat_id=chat_id)

    try:
        agent_output = await use_celestial_agent(input_data, agent=agent)
    except Exception as e:
        logger.error(f"[WORKFLOW] Step {AGENT_STEP_ID} failed: {e}", exc_info=True)
        raise WorkflowStepError(AGENT_STEP_ID, e) from e

    try:
        return await send_telegram_reply(agent_output, send_fn=send_fn)
    except Exception as e:
        logger.error(f"[WORKFLOW] Step {SEND_STEP_ID} failed: {e}", exc_info=True)
        raise WorkflowStepError(SEND_STEP_ID, e) from e
