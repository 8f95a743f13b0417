from datetime import timedelta

# --------------------------------------------------
# MATCH REQUESTS
# --------------------------------------------------

# How long a pending request waits for the target's answer
MATCH_REQUEST_TTL = timedelta(hours=24)

# Time the two parties get to meet once accepted (tracked by callers)
MEETUP_WINDOW = timedelta(minutes=30)

# Terminal records older than this are dropped by prune()
CLOSED_MATCH_RETENTION = timedelta(hours=48)

# --------------------------------------------------
# PRESENCE
# --------------------------------------------------

# A presence older than this is stale and excluded from matching
PRESENCE_FRESHNESS = timedelta(minutes=2)

# --------------------------------------------------
# PROXIMITY
# --------------------------------------------------

# Pairs strictly closer than this get marker disambiguation
PROXIMITY_THRESHOLD_METERS = 1000

# Callers alternate the top marker of each pair at this period
PROXIMITY_ALTERNATION_SECONDS = 1

# --------------------------------------------------
# MEETING POINTS
# --------------------------------------------------

MAX_CANDIDATES = 5
MIN_REAL_CANDIDATES = 3

SEARCH_RADIUS_MIN_METERS = 1000
SEARCH_RADIUS_MAX_METERS = 10000

# meters of search radius per km between the two users
SEARCH_RADIUS_PER_KM = 500

FAIRNESS_WEIGHT = 0.7
RATING_WEIGHT = 0.3
DEFAULT_RATING = 3

# ~5 km/h walking pace
WALKING_METERS_PER_MINUTE = 83.33
