from questline.core.locking.learner_lock import (
    InMemoryLearnerLock,
    LearnerLock,
    RedisLearnerLock,
    build_learner_lock,
)

__all__ = ["LearnerLock", "InMemoryLearnerLock", "RedisLearnerLock", "build_learner_lock"]
