"""Scoring tunables shared by the candidate generators and the reranker.

Every weight used when scoring candidates lives here as a module-level
constant so it can be tuned and tested independently of provider logic.
The values are policy choices rather than physically meaningful numbers.
"""

# ---------------------------------------------------------------------------
# Following
# ---------------------------------------------------------------------------

FOLLOWING_BASE_SCORE = 90.0
FOLLOWING_RECENCY_WEIGHT = 10.0
FOLLOWING_LIKE_WEIGHT = 0.01
FOLLOWING_COMMENT_WEIGHT = 0.05
FOLLOWING_SHARE_WEIGHT = 0.02
FOLLOWING_POOL_SIZE = 50

# ---------------------------------------------------------------------------
# Topic affinity
# ---------------------------------------------------------------------------

TOPIC_MATCH_MULTIPLIER = 10.0
TOPIC_MATCH_CAP = 50.0
TOPIC_ENGAGEMENT_CAP = 30.0
TOPIC_LIKE_WEIGHT = 0.1
TOPIC_VIEW_WEIGHT = 0.01
TOPIC_COMMENT_WEIGHT = 0.2
TOPIC_SHARE_WEIGHT = 0.3
TOPIC_RECENCY_CAP = 20.0
TOPIC_POOL_SIZE = 100

# ---------------------------------------------------------------------------
# Trending
# ---------------------------------------------------------------------------

TRENDING_LIKE_WEIGHT = 1.5
TRENDING_COMMENT_WEIGHT = 2.0
TRENDING_SHARE_WEIGHT = 3.0
TRENDING_VIEW_WEIGHT = 0.1
TRENDING_BASE_SCORE = 40.0
TRENDING_VELOCITY_MULTIPLIER = 0.5
TRENDING_MIN_SCORE = 40.0
TRENDING_MAX_SCORE = 85.0
TRENDING_POOL_SIZE = 50

# ---------------------------------------------------------------------------
# Similar content
# ---------------------------------------------------------------------------

SIMILAR_MIN_COMPLETION = 0.7
SIMILAR_SEED_VIEWS = 20
SIMILAR_TOPIC_OVERLAP_WEIGHT = 10.0
SIMILAR_TOPIC_OVERLAP_CAP = 40.0
SIMILAR_CREATOR_SCORE = 20.0
SIMILAR_LIKE_WEIGHT = 0.1
SIMILAR_VIEW_WEIGHT = 0.01
SIMILAR_QUALITY_CAP = 20.0
SIMILAR_RECENCY_CAP = 20.0
SIMILAR_POOL_SIZE = 50

# ---------------------------------------------------------------------------
# Explore
# ---------------------------------------------------------------------------

EXPLORE_TOPIC_COUNT = 10
EXPLORE_POOL_SIZE = 30
EXPLORE_MIN_SELECTION = 5
EXPLORE_MAX_SELECTION = 10
EXPLORE_BASE_SCORE = 55.0
EXPLORE_SCORE_RANGE = 20.0
# Fallback raw score for the i-th pool item: START - i * STEP
EXPLORE_FALLBACK_START = 0.8
EXPLORE_FALLBACK_STEP = 0.05

# ---------------------------------------------------------------------------
# Interest profile
# ---------------------------------------------------------------------------

# (minimum completion, contribution) checked in order; below all -> FLOOR
COMPLETION_CONTRIBUTIONS = (
    (0.9, 3.0),
    (0.7, 2.0),
    (0.4, 1.0),
)
COMPLETION_CONTRIBUTION_FLOOR = 0.5
PROFILE_RECENT_VIEWS = 100

# ---------------------------------------------------------------------------
# Diversity reranker
# ---------------------------------------------------------------------------

DIVERSITY_PROTECTED_TOP = 3
DIVERSITY_CREATOR_PENALTY = 10.0
DIVERSITY_TOPIC_PENALTY = 15.0
DIVERSITY_EXPLORE_BOOST = 5.0
