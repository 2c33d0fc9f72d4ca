from reftrack.rewards.dispatcher import RewardDispatcher

__all__ = ["RewardDispatcher"]
