from .agent import ACTION_CONFIDENCE, KeeperAgent, build_agent
from .bounded import BehaviorHistory, KnownBotSet, TTLCache
from .coordinator import ChallengeCoordinator
from .detector import FLAG_CONFIDENCE, SignalEngine
from .gateway import ChainGateway
from .mempool import MempoolObserver
from .models import (
    CandidateTransaction,
    MEVAnalysis,
    MEVSignals,
    PendingChallengeKey,
    SubmissionResult,
)

__all__ = [
    "ACTION_CONFIDENCE",
    "FLAG_CONFIDENCE",
    "KeeperAgent",
    "build_agent",
    "BehaviorHistory",
    "KnownBotSet",
    "TTLCache",
    "ChallengeCoordinator",
    "SignalEngine",
    "ChainGateway",
    "MempoolObserver",
    "CandidateTransaction",
    "MEVAnalysis",
    "MEVSignals",
    "PendingChallengeKey",
    "SubmissionResult",
]
