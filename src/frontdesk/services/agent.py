from dotenv import load_dotenv
from livekit.agents import (
    Agent,
    AgentSession,
    JobContext,
    JobProcess,
    WorkerOptions,
    cli,
    inference,
    function_tool,
    RunContext,
)
from livekit.plugins import silero

from frontdesk.core.config import settings
from frontdesk.core.dependencies import get_session_manager
from frontdesk.core.exceptions import SessionNotFound
from frontdesk.core.logging import get_plain_logger
from frontdesk.services.session import APOLOGY_MESSAGE, SessionManager

logger = get_plain_logger(__name__)

load_dotenv()

RECEPTIONIST_INSTRUCTIONS = f"""
## Identity

You are the voice of the {settings.business_name} front desk. You do not answer questions from your own knowledge.

## CRITICAL INSTRUCTIONS - YOU MUST FOLLOW THESE:

1. For EVERY question or request from the caller, call the answer_customer function with the caller's exact words.
2. Say the text returned by answer_customer to the caller, word for word. Do not add to it, shorten it or change it.
3. Never guess, make up information, or answer without calling answer_customer first.

## RESPONSE STYLE:
- No emojis, asterisks, or special formatting
- Sound natural like you're on a phone call

## GREETING:
When the call starts, say: "Hello! Thank you for calling {settings.business_name}. How can I help you today?"
"""


class FrontDeskAssistant(Agent):
    def __init__(self, manager: SessionManager, session_key: str) -> None:
        super().__init__(instructions=RECEPTIONIST_INSTRUCTIONS)
        self.manager = manager
        self.session_key = session_key
        logger.info(f"🔧 Agent initialized for '{session_key}'")

    @function_tool
    async def answer_customer(self, context: RunContext, question: str) -> str:
        """Get the reply for what the caller just said.

        Call this for every caller question or request.

        Args:
            question: The caller's exact words

        Returns:
            The reply to speak to the caller, word for word.
        """
        logger.info(f"🔍 Caller said: {question}")
        try:
            result = await self.manager.handle_utterance(self.session_key, question)
        except SessionNotFound:
            logger.error(f"No conversation for room '{self.session_key}'")
            return APOLOGY_MESSAGE
        except Exception as e:
            logger.error(f"Error handling utterance: {e}")
            return APOLOGY_MESSAGE

        if result.escalated:
            logger.info(f"📞 Escalated as help request #{result.help_request_id}")
        return result.reply


def prewarm(proc: JobProcess):
    """Preload models before processing jobs"""
    proc.userdata["vad"] = silero.VAD.load()


async def entrypoint(ctx: JobContext):
    """Main LiveKit agent entry point for each incoming call"""

    ctx.log_context_fields = {
        "room": ctx.room.name,
    }

    await ctx.connect()
    participant = await ctx.wait_for_participant()
    customer_phone = participant.attributes.get("sip.phoneNumber") or participant.identity

    manager = get_session_manager()
    manager.open_session(ctx.room.name, customer_phone, participant.name or None)

    async def end_call():
        manager.close_session(ctx.room.name)

    ctx.add_shutdown_callback(end_call)

    logger.info(f"🎙️ Agent started for room: {ctx.room.name}")

    session = AgentSession(
        stt=inference.STT(model="assemblyai/universal-streaming", language="en"),
        llm=inference.LLM(model="openai/gpt-4.1-mini"),
        tts=inference.TTS(
            model="cartesia/sonic-3", voice="9626c31c-bec5-4cca-baa8-f8ba9e84c8bc"
        ),
        vad=ctx.proc.userdata.get("vad") or silero.VAD.load(),
    )

    await session.start(
        agent=FrontDeskAssistant(manager, ctx.room.name),
        room=ctx.room,
    )
    await session.generate_reply(instructions="Greet the caller.")

    logger.info("✅ Agent connected and ready")


if __name__ == "__main__":
    cli.run_app(
        WorkerOptions(
            entrypoint_fnc=entrypoint,
            prewarm_fnc=prewarm
        )
    )
