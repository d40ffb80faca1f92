import logging
from typing import List

from clients.supabase_client import SupabaseClient
from models.models import PollResult
from utils.constants import Rpc

logger = logging.getLogger(__name__)


class PollService:
    def __init__(self, backend: SupabaseClient):
        self.backend = backend

    def vote(
        self,
        message_id: str,
        option_id: str,
        voter_kind: str,
        voter_id: str,
    ) -> bool:
        if voter_kind not in ("user", "anonymous"):
            raise ValueError(f"Unknown voter kind: {voter_kind}")
        accepted = self.backend.rpc(
            Rpc.VOTE_ON_POLL.value,
            {
                "poll_message_id": message_id,
                "option_id_param": option_id,
                "voter_type_param": voter_kind,
                "voter_user_id": voter_id if voter_kind == "user" else None,
                "voter_anon_id": voter_id if voter_kind == "anonymous" else None,
            },
        )
        logger.info("Vote on poll %s option %s accepted=%s", message_id, option_id, accepted)
        return bool(accepted)

    def results(self, message_id: str) -> List[PollResult]:
        rows = self.backend.rpc(
            Rpc.GET_POLL_RESULTS.value, {"poll_message_id": message_id}
        )
        return [
            PollResult(option_id=str(r["option_id"]), vote_count=int(r["vote_count"]))
            for r in rows or []
            if r.get("option_id") is not None
        ]
