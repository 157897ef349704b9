from asyncio import wait_for, TimeoutError
from fastapi import HTTPException

from core.intent import ChatTurn
from executors.base import BaseExecutor
from services.utils import json_payload


class ConversationExecutor(BaseExecutor):
    """
    Answers turns the dispatcher left unhandled.
    """

    def __init__(self, timeout: float = 30):
        self.timeout = timeout

    async def execute(self, turn: ChatTurn) -> dict:
        try:
            from agents.conversation_agent import handle_conversation

            try:
                conversation_result = await wait_for(
                    handle_conversation(turn.raw_input, turn.user_id),
                    timeout=self.timeout,
                )
            except TimeoutError:
                raise HTTPException(
                    status_code=504,
                    detail="Conversation timed out",
                )

            return {
                "type": "conversation",
                "handled": True,
                "action": "none",
                "data": json_payload(conversation_result),
                "message": conversation_result.response,
            }

        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(
                status_code=500,
                detail=str(e),
            )
